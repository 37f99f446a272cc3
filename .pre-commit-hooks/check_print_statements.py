#!/usr/bin/env python3
"""
Pre-commit hook to detect print statements in nodeswitch package code.

Diagnostics go through nodeswitch.logging_config. The CLI's user-facing output
is the only place print is allowed, and each such line carries '# noqa: print'.
"""

import re
import sys
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

PRINT_PATTERN = re.compile(r"\bprint\s*\(")
PACKAGE_DIR = "nodeswitch"


def check_file(file_path: Path) -> List[Tuple[int, str]]:
    """
    Check a file for print calls.

    Returns:
        List of (line_number, line_content) tuples for violations
    """
    violations = []

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, start=1):
                stripped = line.strip()
                if not stripped or stripped.startswith("#"):
                    continue
                if "noqa: print" in line or "noqa:print" in line:
                    continue
                if PRINT_PATTERN.search(line):
                    violations.append((line_num, line.rstrip()))
    except OSError as e:
        sys.stderr.write(f"Error reading {file_path}: {e}\n")
        return []

    return violations


def iter_package_files(paths: Iterable[str]) -> Iterable[Path]:
    """Expand directories and keep only .py files inside the package."""
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
        sys.stderr.write("Usage: check_print_statements.py <file-or-dir> ...\n")
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
            f"Found {total_violations} print statement(s) in nodeswitch code.\n"
            f"\n"
            f"Please use the logging system instead:\n"
            f"  from nodeswitch.logging_config import get_logger\n"
            f"  logger = get_logger(__name__)\n"
            f"\n"
            f"If this is intentional CLI output, add '# noqa: print'\n"
            f"{'='*70}\n"
        )
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
