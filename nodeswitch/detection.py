"""
Backend executable detection and backend installation.

Detection probes an explicit override first, then well-known install
locations, then PATH. The first existing match wins. Version probing never
fails detection: an executable whose version output cannot be parsed is still
reported as found, with no version.

Installing a backend downloads the official install script (retrying with
backoff), verifies it against a pinned SHA-256 and runs it with the streaming
runner, yielding InstallProgress. A script without a pinned digest is never run.
"""

from __future__ import annotations

import hashlib
import os
import shlex
import shutil
import tempfile
from pathlib import Path
from typing import AsyncIterator, Callable, Iterable, List, Mapping, Optional, Sequence

from nodeswitch.config import NETWORK, PROCESS
from nodeswitch.exceptions import (
    CommandFailedError,
    InstallFailedError,
    IoError,
    NetworkError,
    NodeSwitchError,
    NotFoundError,
)
from nodeswitch.http_client import AsyncHttpClient
from nodeswitch.logging_config import get_logger
from nodeswitch.models import BackendDetection, DetectionStatus, InstallPhase, InstallProgress
from nodeswitch.parsers.common import match_progress, parse_tool_version
from nodeswitch.process_runner import ProcessRunner
from nodeswitch.progress import LineSink, run_with_progress
from nodeswitch.retry_utils import retry_async

logger = get_logger(__name__)

WSL_EXECUTABLE = "wsl.exe"

_SCRIPT_FAILURE_MARKERS = ("error:", "failed to", "command not found")
_SCRIPT_KEYWORD_PHASES = (
    ("checking", InstallPhase.RESOLVING),
    ("downloading", InstallPhase.DOWNLOADING),
    ("cloning", InstallPhase.DOWNLOADING),
    ("fetching", InstallPhase.DOWNLOADING),
    ("extracting", InstallPhase.EXTRACTING),
    ("unzip", InstallPhase.EXTRACTING),
    ("installing", InstallPhase.LINKING),
    ("appending", InstallPhase.LINKING),
    ("close and reopen", InstallPhase.LINKING),
)


def wsl_argv(distro: str, argv: Sequence[str]) -> List[str]:
    """Wrap an argv so it runs inside a WSL distribution."""
    return [WSL_EXECUTABLE, "-d", distro, "--exec", *argv]


def is_executable_file(path: Path) -> bool:
    return path.is_file()


def find_executable(
    name: str,
    override: Optional[str] = None,
    candidates: Iterable[Path] = (),
) -> Optional[str]:
    """
    Locate an executable.

    Order: explicit override, then each well-known candidate, then PATH.

    Returns:
        Absolute path of the first match, or None
    """
    if override:
        override_path = Path(override).expanduser()
        if is_executable_file(override_path):
            logger.debug(f"Using override for {name}: {override_path}")
            return str(override_path)
        logger.warning(f"Configured path for {name} does not exist: {override_path}")

    for candidate in candidates:
        if is_executable_file(candidate):
            return str(candidate)

    return shutil.which(name)


def in_path(name: str, path: str) -> bool:
    """True if resolving ``name`` through PATH lands on ``path``."""
    found = shutil.which(name)
    if found is None:
        return False
    try:
        return os.path.samefile(found, path)
    except OSError:
        return False


async def probe_version(
    runner: ProcessRunner,
    argv: Sequence[str],
    prefix: str = "",
    env: Optional[Mapping[str, str]] = None,
) -> Optional[str]:
    """Run a version command; None if it fails or prints something unparseable."""
    try:
        output = await runner.run(argv[0], argv[1:], timeout=PROCESS.QUICK_TIMEOUT_SEC, env=env)
    except NodeSwitchError as e:
        logger.debug(f"Version check failed for {argv[0]}: {e}")
        return None
    return parse_tool_version(output, prefix=prefix)


async def detect_in_wsl(
    runner: ProcessRunner,
    distro: str,
    search_paths: Sequence[str],
    version_argv: Callable[[str], List[str]],
    version_prefix: str = "",
) -> BackendDetection:
    """
    Look for a backend inside a WSL distribution.

    ``search_paths`` may reference $HOME; they are expanded by the distro's
    shell. ``version_argv`` builds the in-distro version command for a match.
    """
    checks = " ".join(f'"{path}"' for path in search_paths)
    script = f'for p in {checks}; do if [ -e "$p" ]; then echo "$p"; exit 0; fi; done; exit 1'
    try:
        argv = wsl_argv(distro, ["sh", "-c", script])
        output = await runner.run(argv[0], argv[1:], timeout=PROCESS.QUICK_TIMEOUT_SEC)
    except NodeSwitchError as e:
        logger.info(f"Backend not found in WSL distro {distro}: {e}")
        return BackendDetection.not_found(distro=distro)

    path = output.strip().splitlines()[-1].strip() if output.strip() else ""
    if not path:
        return BackendDetection.not_found(distro=distro)

    version = await probe_version(runner, wsl_argv(distro, version_argv(path)), version_prefix)
    return BackendDetection(
        DetectionStatus.FOUND_IN_WSL,
        path=path,
        version=version,
        distro=distro,
    )


def _require_digest(url: str, sha256: Optional[str], backend: Optional[str] = None) -> str:
    if not sha256:
        raise NotFoundError(
            f"No pinned SHA-256 for {url}; refusing to run an unverified install script",
            backend=backend,
        )
    return sha256


async def download_install_script(
    client: AsyncHttpClient,
    url: str,
    sha256: Optional[str],
) -> bytes:
    """
    Download an install script, retrying transient failures, and verify it.

    Raises:
        NotFoundError: No digest was given, the script could not be downloaded,
            or it failed verification
    """
    expected = _require_digest(url, sha256)

    async def fetch() -> bytes:
        response = await client.get_ok(url, timeout=NETWORK.DOWNLOAD_TIMEOUT_SEC)
        return response.content

    try:
        content = await retry_async(
            fetch,
            max_retries=NETWORK.DOWNLOAD_RETRY_ATTEMPTS,
            base_delay=NETWORK.DOWNLOAD_RETRY_BASE_DELAY_SEC,
            exceptions=(NetworkError,),
        )
    except NetworkError as e:
        raise NotFoundError(f"Could not download install script: {e}") from e

    if not content.strip():
        raise NotFoundError(f"Install script at {url} is empty")

    actual = hashlib.sha256(content).hexdigest()
    if actual != expected.lower():
        raise NotFoundError(
            f"Install script checksum mismatch for {url}: expected {expected.lower()}, got {actual}"
        )
    logger.info(f"Verified install script checksum for {url}")

    return content


def parse_script_progress_line(line: str) -> Optional[InstallProgress]:
    """Map a line of install-script output to a progress value, or None."""
    return match_progress(line, _SCRIPT_FAILURE_MARKERS, _SCRIPT_KEYWORD_PHASES)


async def run_install_script(
    runner: ProcessRunner,
    client: AsyncHttpClient,
    url: str,
    sha256: Optional[str],
    script_args: Sequence[str] = (),
    env: Optional[Mapping[str, str]] = None,
    backend: Optional[str] = None,
) -> AsyncIterator[InstallProgress]:
    """
    Download an install script and run it with bash, yielding progress.

    The official scripts upgrade in place, so running this again is safe.

    Raises:
        NotFoundError: bash is missing, no digest was given, or the script could
            not be obtained or verified
        InstallFailedError: The script ran and exited non-zero
        CommandTimeoutError: The script exceeded the backend install timeout
    """
    bash = shutil.which("bash")
    if bash is None:
        raise NotFoundError("bash is required to run the install script", backend=backend)
    _require_digest(url, sha256, backend)

    yield InstallProgress(InstallPhase.RESOLVING, message=f"Downloading {url}")
    content = await download_install_script(client, url, sha256)

    fd, script_name = tempfile.mkstemp(prefix="nodeswitch-install-", suffix=".sh")
    script_path = Path(script_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(content)

        async def command(sink: LineSink) -> None:
            await runner.stream(
                bash,
                [str(script_path), *script_args],
                sink,
                timeout=PROCESS.BACKEND_INSTALL_TIMEOUT_SEC,
                env=env,
            )

        async def finish() -> InstallProgress:
            return InstallProgress(InstallPhase.DONE, percent=100.0, message="Install complete")

        def translate(error: NodeSwitchError) -> NodeSwitchError:
            if isinstance(error, IoError):
                return NotFoundError(error.detail, backend=backend)
            if isinstance(error, CommandFailedError):
                return InstallFailedError(error.stderr, backend=backend)
            return error

        logger.info(f"Running install script from {url}: bash {shlex.join(script_args)}")
        async for progress in run_with_progress(
            command, parse_script_progress_line, finish, translate
        ):
            yield progress
    finally:
        script_path.unlink(missing_ok=True)
