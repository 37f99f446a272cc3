"""
Custom exceptions for nodeswitch.

Every failure that crosses a backend or service boundary is one of the classes
below. Raw OSError, httpx and JSON errors are translated at the boundary so that
callers only ever need to handle NodeSwitchError.

The fnm and nvm backends share the same error shapes; ``backend`` records which
tool produced the error when that matters for the message.
"""

from typing import Optional, Sequence


class NodeSwitchError(Exception):
    """
    Base exception for all nodeswitch errors.

    Catching this lets callers handle every domain failure in one place while
    KeyboardInterrupt, SystemExit and cancellation still propagate.
    """

    pass


class BackendError(NodeSwitchError):
    """
    Base class for errors raised by a version manager backend.

    Args:
        message: Human-readable error description
        backend: Name of the backend that failed ("fnm" or "nvm"), optional
    """

    def __init__(self, message: str, backend: Optional[str] = None):
        self.backend = backend
        self.detail = message
        if backend:
            super().__init__(f"[{backend}] {message}")
        else:
            super().__init__(message)


class NotFoundError(BackendError):
    """Raised when the backend executable (or a prerequisite such as bash) is missing."""

    pass


class CommandFailedError(BackendError):
    """
    Raised when a backend command exits with a non-zero status.

    Args:
        stderr: Captured stderr (or stdout when stderr was empty)
        exit_code: Process exit code, if known
        command: The argv that was executed, if known
    """

    def __init__(
        self,
        stderr: str,
        exit_code: Optional[int] = None,
        command: Optional[Sequence[str]] = None,
        backend: Optional[str] = None,
    ):
        self.stderr = stderr
        self.exit_code = exit_code
        self.command = list(command) if command else None
        parts = [f"Command failed: {stderr.strip()}"]
        if exit_code is not None:
            parts.append(f"Exit code: {exit_code}")
        if self.command:
            parts.append(f"Command: {' '.join(self.command)}")
        super().__init__(" | ".join(parts), backend=backend)


class ParseError(BackendError):
    """
    Raised when tool output or a version string cannot be parsed.

    Args:
        message: What failed to parse
        text: The offending input, optional
    """

    def __init__(self, message: str, text: Optional[str] = None, backend: Optional[str] = None):
        self.text = text
        if text is not None:
            message = f"{message}: {text!r}"
        super().__init__(message, backend=backend)


class InstallFailedError(BackendError):
    """
    Raised when installing a Node version (or a backend) fails.

    Args:
        message: Human-readable error description
        version: The version that failed to install, optional
    """

    def __init__(self, message: str, version: Optional[str] = None, backend: Optional[str] = None):
        self.version = version
        if version:
            message = f"Installation failed: {message} (version: {version})"
        else:
            message = f"Installation failed: {message}"
        super().__init__(message, backend=backend)


class NetworkError(BackendError):
    """
    Raised when an HTTP request fails or returns a non-success status.

    Args:
        message: Human-readable error description
        url: The URL that failed, optional
        status_code: HTTP status code if applicable, optional
        body: Leading snippet of the response body, optional
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        self.url = url
        self.status_code = status_code
        self.body = body
        error_parts = [message]
        if url:
            error_parts.append(f"URL: {url}")
        if status_code:
            error_parts.append(f"Status: {status_code}")
        if body:
            error_parts.append(f"Body: {body}")
        super().__init__(" | ".join(error_parts))


class IoError(BackendError):
    """
    Raised when a process cannot be spawned or a file operation fails.

    Args:
        message: Human-readable error description
        not_found: True when the executable itself does not exist
    """

    def __init__(self, message: str, not_found: bool = False, backend: Optional[str] = None):
        self.not_found = not_found
        super().__init__(message, backend=backend)


class CommandTimeoutError(BackendError):
    """
    Raised when a backend command exceeds its deadline and was killed.

    Args:
        timeout: The deadline in seconds
        command: The argv that was executed, optional
    """

    def __init__(
        self,
        timeout: float,
        command: Optional[Sequence[str]] = None,
        backend: Optional[str] = None,
    ):
        self.timeout = timeout
        self.command = list(command) if command else None
        message = f"Timeout waiting for command after {timeout:g}s"
        if self.command:
            message += f" | Command: {' '.join(self.command)}"
        super().__init__(message, backend=backend)


class VersionNotFoundError(BackendError):
    """Raised when an operation targets a Node version that is not installed."""

    def __init__(self, version: str, backend: Optional[str] = None):
        self.version = version
        super().__init__(f"Version not found: {version}", backend=backend)


class UnsupportedError(BackendError):
    """Raised when the selected backend does not support an operation."""

    def __init__(self, operation: str, backend: Optional[str] = None):
        self.operation = operation
        super().__init__(f"Operation not supported by this backend: {operation}", backend=backend)
