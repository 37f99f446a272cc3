"""Unit tests for the install progress pipeline."""

import asyncio

import pytest

from nodeswitch.exceptions import CommandFailedError, InstallFailedError
from nodeswitch.models import InstallPhase, InstallProgress
from nodeswitch.parsers.fnm import parse_progress_line
from nodeswitch.progress import run_with_progress

DONE = InstallProgress(InstallPhase.DONE, percent=100.0, message="done")


async def _done():
    return DONE


def _command(lines, error=None):
    async def command(sink):
        for line in lines:
            await sink(line)
        if error is not None:
            raise error

    return command


async def _collect(stream):
    seen = []
    async for progress in stream:
        seen.append(progress)
    return seen


@pytest.mark.unit
class TestRunWithProgress:
    """Tests for run_with_progress()."""

    def test_success_ends_with_done(self):
        """Parsed lines are yielded in order and the stream ends with DONE."""
        lines = ["Installing Node v20.11.0", "noise", "Downloading 50%", "Extracting"]

        seen = asyncio.run(_collect(run_with_progress(_command(lines), parse_progress_line, _done)))

        assert [p.phase for p in seen] == [
            InstallPhase.RESOLVING,
            InstallPhase.DOWNLOADING,
            InstallPhase.EXTRACTING,
            InstallPhase.DONE,
        ]
        assert seen[1].percent == 50.0
        assert seen[-1] is DONE

    def test_failure_yields_failed_then_raises(self):
        """A failing command yields FAILED before the error is raised."""
        seen = []

        async def scenario():
            stream = run_with_progress(
                _command(["Downloading 10%"], CommandFailedError("boom", 1)),
                parse_progress_line,
                _done,
            )
            async for progress in stream:
                seen.append(progress)

        with pytest.raises(CommandFailedError):
            asyncio.run(scenario())

        assert [p.phase for p in seen] == [InstallPhase.DOWNLOADING, InstallPhase.FAILED]
        assert "boom" in seen[-1].message

    def test_errors_are_translated(self):
        """The translate hook maps domain errors before they are raised."""

        def translate(error):
            return InstallFailedError(error.stderr, version="v20.11.0")

        stream = run_with_progress(
            _command([], CommandFailedError("exit 1")), parse_progress_line, _done, translate
        )
        with pytest.raises(InstallFailedError, match="v20.11.0"):
            asyncio.run(_collect(stream))

    def test_parser_failures_are_not_terminal(self):
        """Only the exit status ends the stream; error lines are dropped."""
        lines = ["error: transient warning", "Using Node v20.11.0"]

        seen = asyncio.run(_collect(run_with_progress(_command(lines), parse_progress_line, _done)))

        assert [p.phase for p in seen] == [InstallPhase.LINKING, InstallPhase.DONE]

    def test_closing_early_cancels_command(self):
        """Closing the generator cancels the running command."""
        cancelled = asyncio.Event()

        async def command(sink):
            try:
                await sink("Downloading 1%")
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        async def scenario():
            stream = run_with_progress(command, parse_progress_line, _done)
            first = await stream.__anext__()
            await stream.aclose()
            return first

        first = asyncio.run(scenario())
        assert first.phase is InstallPhase.DOWNLOADING
        assert cancelled.is_set()

    def test_command_waits_for_consumer(self):
        """No further output is read until the consumer takes the previous value."""
        read = []

        async def command(sink):
            for n in range(50):
                read.append(n)
                await sink(f"Downloading {n}%")

        async def scenario():
            lines_read = []
            async for progress in run_with_progress(command, parse_progress_line, _done):
                if progress.phase is InstallPhase.DOWNLOADING:
                    lines_read.append(len(read))
                await asyncio.sleep(0.01)
            return lines_read

        assert asyncio.run(scenario()) == list(range(1, 51))

    def test_unexpected_exception_forwarded(self):
        """Non-domain errors still surface to the consumer."""
        stream = run_with_progress(_command([], RuntimeError("bug")), parse_progress_line, _done)
        with pytest.raises(RuntimeError, match="bug"):
            asyncio.run(_collect(stream))
