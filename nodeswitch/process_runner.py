"""
Async subprocess execution for backend commands.

Every backend command goes through ProcessRunner so that timeouts, cancellation
and spawn failures behave the same for fnm, nvm.sh and nvm-windows:

- argv is always passed as a list, never through a shell string
- a timed-out or cancelled command has its whole process tree killed
- spawn failures become IoError; non-zero exits become CommandFailedError
"""

from __future__ import annotations

import asyncio
import codecs
import inspect
import os
import re
import sys
from typing import Awaitable, Callable, List, Mapping, Optional, Sequence, Union

import psutil

from nodeswitch.config import PROCESS
from nodeswitch.exceptions import CommandFailedError, CommandTimeoutError, IoError
from nodeswitch.logging_config import get_logger

logger = get_logger(__name__)

# Windows: do not flash a console window for each child
CREATE_NO_WINDOW = 0x08000000

LineSink = Callable[[str], Union[None, Awaitable[None]]]

# Progress bars redraw with bare carriage returns
_LINE_SPLIT_RE = re.compile(r"\r\n|\r|\n")


def kill_process_tree(pid: int) -> None:
    """
    Kill a process and every descendant.

    Children are collected before the parent dies so they cannot be reparented
    out of reach. Processes that already exited are ignored.
    """
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return

    try:
        procs = parent.children(recursive=True)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        procs = []
    procs.append(parent)

    for proc in procs:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied as e:
            logger.warning(f"Could not kill PID {proc.pid}: {e}")

    logger.debug("Killed process tree rooted at PID %d (%d processes)", pid, len(procs))


class ProcessRunner:
    """
    Runs backend executables with a deadline.

    Args:
        backend: Backend name recorded on raised errors
        hide_window: Suppress console windows on Windows (no-op elsewhere)
        extra_env: Variables merged over os.environ for every command
    """

    def __init__(
        self,
        backend: Optional[str] = None,
        hide_window: bool = True,
        extra_env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.backend = backend
        self.hide_window = hide_window
        self.extra_env = dict(extra_env or {})

    def _build_env(self, env: Optional[Mapping[str, str]]) -> dict[str, str]:
        merged = dict(os.environ)
        merged.update(self.extra_env)
        if env:
            merged.update(env)
        return merged

    async def _spawn(
        self,
        argv: List[str],
        env: Optional[Mapping[str, str]],
        merge_stderr: bool,
    ) -> asyncio.subprocess.Process:
        kwargs = {}
        if self.hide_window and sys.platform == "win32":
            kwargs["creationflags"] = CREATE_NO_WINDOW

        logger.info("Running: %s", " ".join(argv))
        try:
            return await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT if merge_stderr else asyncio.subprocess.PIPE,
                env=self._build_env(env),
                **kwargs,
            )
        except FileNotFoundError as e:
            raise IoError(
                f"Executable not found: {argv[0]}", not_found=True, backend=self.backend
            ) from e
        except OSError as e:
            raise IoError(f"Failed to start {argv[0]}: {e}", backend=self.backend) from e

    async def _reap(self, process: asyncio.subprocess.Process) -> None:
        """Kill the tree if it is still running and wait for the child to exit."""
        if process.returncode is not None:
            return
        kill_process_tree(process.pid)
        # Must finish even if the task is cancelled again
        await asyncio.shield(process.wait())

    async def run(
        self,
        executable: str,
        args: Sequence[str] = (),
        timeout: Optional[float] = PROCESS.QUICK_TIMEOUT_SEC,
        env: Optional[Mapping[str, str]] = None,
    ) -> str:
        """
        Run a command to completion and return its stdout.

        Raises:
            IoError: The process could not be spawned
            CommandFailedError: Non-zero exit (message is stderr, or stdout if stderr is empty)
            CommandTimeoutError: The deadline passed; the process tree was killed
        """
        argv = [executable, *args]
        process = await self._spawn(argv, env, merge_stderr=False)

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), timeout)
        except asyncio.TimeoutError:
            await self._reap(process)
            logger.error(f"Command timed out after {timeout}s: {' '.join(argv)}")
            raise CommandTimeoutError(timeout or 0, argv, backend=self.backend) from None
        finally:
            await self._reap(process)

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        logger.debug("Exit code %s (%d bytes stdout)", process.returncode, len(stdout_bytes))

        if process.returncode != 0:
            message = stderr.strip() or stdout.strip()
            logger.error(f"Command failed ({process.returncode}): {' '.join(argv)}: {message}")
            raise CommandFailedError(message, process.returncode, argv, backend=self.backend)
        return stdout

    async def stream(
        self,
        executable: str,
        args: Sequence[str],
        on_line: LineSink,
        timeout: Optional[float] = PROCESS.INSTALL_TIMEOUT_SEC,
        env: Optional[Mapping[str, str]] = None,
    ) -> str:
        """
        Run a command, feeding each output line to ``on_line`` as it arrives.

        stderr is merged into stdout. ``on_line`` may be a plain function or a
        coroutine function. Returns the full captured output.

        Raises:
            IoError: The process could not be spawned
            CommandFailedError: Non-zero exit (message is the tail of the output)
            CommandTimeoutError: The deadline passed; the process tree was killed
        """
        argv = [executable, *args]
        process = await self._spawn(argv, env, merge_stderr=True)
        captured: List[str] = []

        async def emit(line: str) -> None:
            line = line.strip()
            if not line:
                return
            captured.append(line)
            result = on_line(line)
            if inspect.isawaitable(result):
                await result

        async def pump() -> int:
            assert process.stdout is not None
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            buffer = ""
            while True:
                chunk = await process.stdout.read(4096)
                if not chunk:
                    break
                buffer += decoder.decode(chunk)
                *lines, buffer = _LINE_SPLIT_RE.split(buffer)
                for line in lines:
                    await emit(line)
            buffer += decoder.decode(b"", final=True)
            await emit(buffer)
            return await process.wait()

        try:
            returncode = await asyncio.wait_for(pump(), timeout)
        except asyncio.TimeoutError:
            await self._reap(process)
            logger.error(f"Command timed out after {timeout}s: {' '.join(argv)}")
            raise CommandTimeoutError(timeout or 0, argv, backend=self.backend) from None
        finally:
            # Covers cancellation and sink errors too
            await self._reap(process)

        logger.debug("Exit code %s (%d lines)", returncode, len(captured))
        if returncode != 0:
            tail = "\n".join(captured[-PROCESS.ERROR_TAIL_LINES :])
            logger.error(f"Command failed ({returncode}): {' '.join(argv)}")
            raise CommandFailedError(tail, returncode, argv, backend=self.backend)
        return "\n".join(captured)
