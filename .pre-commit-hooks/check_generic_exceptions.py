#!/usr/bin/env python3
"""
Pre-commit hook to detect generic exception handlers in nodeswitch package code.

Backends and services translate failures into NodeSwitchError subclasses, so
handlers should name the exceptions they expect. A handler that really must
catch everything carries '# noqa: generic-exception' with a short reason.
"""

import re
import sys
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

GENERIC_EXCEPTION_PATTERNS = [
    re.compile(r"^\s*except\s+(Base)?Exception\b"),
    re.compile(r"^\s*except\s*\(\s*(Base)?Exception\b"),
    re.compile(r"^\s*except\s*:\s*(#.*)?$"),
]
PACKAGE_DIR = "nodeswitch"


def check_file(file_path: Path) -> List[Tuple[int, str]]:
    """
    Check a file for generic exception handlers.

    Returns:
        List of (line_number, line_content) tuples for violations
    """
    violations: List[Tuple[int, str]] = []

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, start=1):
                if "noqa: generic-exception" in line or "noqa:generic-exception" in line:
                    continue
                if any(pattern.search(line) for pattern in GENERIC_EXCEPTION_PATTERNS):
                    violations.append((line_num, line.rstrip()))
    except OSError as e:
        sys.stderr.write(f"Error reading {file_path}: {e}\n")
        return []

    return violations


def iter_package_files(paths: Iterable[str]) -> Iterable[Path]:
    for raw in paths:
        path = Path(raw)
        files = sorted(path.rglob("*.py")) if path.is_dir() else [path]
        for file_path in files:
            if file_path.suffix == ".py" and PACKAGE_DIR in file_path.parts:
                yield file_path


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the pre-commit hook.

    Returns:
        0 if no violations found, 1 otherwise
    """
    args = sys.argv[1:] if argv is None else argv
    if not args:
        sys.stderr.write("Usage: check_generic_exceptions.py <file-or-dir> ...\n")
        return 1

    total_violations = 0
    for file_path in iter_package_files(args):
        violations = check_file(file_path)
        if violations:
            sys.stderr.write(f"\n{file_path}:\n")
            for line_num, line_content in violations:
                sys.stderr.write(f"  Line {line_num}: {line_content}\n")
                total_violations += 1

    if total_violations > 0:
        sys.stderr.write(
            f"\n{'='*70}\n"
            f"Found {total_violations} generic exception handler(s) in nodeswitch code.\n"
            f"\n"
            f"Catch NodeSwitchError or a specific built-in (OSError, ValueError, ...).\n"
            f"If absolutely necessary, add '# noqa: generic-exception'.\n"
            f"{'='*70}\n"
        )
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
