"""
Tests for nodeswitch/process_runner.py

These spawn the running Python interpreter as a portable child process.
"""

import asyncio
import gc
import logging
import sys
import time
from unittest.mock import patch

import psutil
import pytest

from nodeswitch.backends import FnmBackend
from nodeswitch.exceptions import CommandFailedError, CommandTimeoutError, IoError
from nodeswitch.models import InstallPhase, NodeVersion
from nodeswitch.process_runner import ProcessRunner, kill_process_tree

SPAWN_GRANDCHILD = (
    "import subprocess, sys, time\n"
    "child = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)'])\n"
    "print(child.pid, flush=True)\n"
    "time.sleep(60)\n"
)

FAKE_FNM_INSTALL = (
    "import time\n"
    "print('Installing Node v20.11.0', flush=True)\n"
    "print('Downloading 10%', flush=True)\n"
    "time.sleep(60)\n"
)


class RecordingRunner(ProcessRunner):
    """ProcessRunner that keeps the processes it spawns."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.processes = []

    async def _spawn(self, argv, env, merge_stderr):
        process = await super()._spawn(argv, env, merge_stderr)
        self.processes.append(process)
        return process


def _gone(pid: int, wait: float = 5.0) -> bool:
    """True once ``pid`` no longer exists or is a zombie."""
    deadline = time.monotonic() + wait
    while time.monotonic() < deadline:
        try:
            if psutil.Process(pid).status() == psutil.STATUS_ZOMBIE:
                return True
        except psutil.NoSuchProcess:
            return True
        time.sleep(0.05)
    return False


@pytest.mark.integration
class TestRun:
    """Tests for ProcessRunner.run()."""

    def test_returns_stdout(self, python_exe):
        output = asyncio.run(ProcessRunner().run(python_exe, ["-c", "print('hello')"]))
        assert output.strip() == "hello"

    def test_nonzero_exit_uses_stderr(self, python_exe):
        """A failing command reports its stderr and exit code."""
        script = "import sys; print('out'); sys.stderr.write('bad thing'); sys.exit(3)"

        with pytest.raises(CommandFailedError) as exc_info:
            asyncio.run(ProcessRunner(backend="fnm").run(python_exe, ["-c", script]))

        assert exc_info.value.exit_code == 3
        assert exc_info.value.stderr == "bad thing"
        assert exc_info.value.backend == "fnm"

    def test_nonzero_exit_falls_back_to_stdout(self, python_exe):
        """nvm-windows prints errors on stdout."""
        script = "import sys; print('only stdout'); sys.exit(1)"

        with pytest.raises(CommandFailedError) as exc_info:
            asyncio.run(ProcessRunner().run(python_exe, ["-c", script]))
        assert exc_info.value.stderr == "only stdout"

    def test_missing_executable(self, tmp_path):
        """Spawning a missing executable is a not-found IoError."""
        with pytest.raises(IoError) as exc_info:
            asyncio.run(ProcessRunner().run(str(tmp_path / "no-such-tool")))
        assert exc_info.value.not_found is True

    def test_env_is_passed(self, python_exe):
        """Per-call env is merged over the runner's extra env."""
        runner = ProcessRunner(extra_env={"NS_A": "runner", "NS_B": "runner"})
        script = "import os; print(os.environ['NS_A'], os.environ['NS_B'])"

        output = asyncio.run(runner.run(python_exe, ["-c", script], env={"NS_B": "call"}))
        assert output.split() == ["runner", "call"]

    @pytest.mark.slow
    def test_timeout_kills_process(self, python_exe):
        """A hung command times out promptly."""
        started = time.monotonic()
        with pytest.raises(CommandTimeoutError) as exc_info:
            asyncio.run(
                ProcessRunner().run(python_exe, ["-c", "import time; time.sleep(60)"], timeout=1)
            )
        assert time.monotonic() - started < 10
        assert exc_info.value.timeout == 1


@pytest.mark.integration
class TestStream:
    """Tests for ProcessRunner.stream()."""

    def test_lines_split_on_carriage_returns(self, python_exe):
        """Progress redraws with \\r are delivered as separate lines."""
        script = "import sys; sys.stdout.write('a 10%\\rb 50%\\r\\nc\\n\\n')"
        lines = []

        output = asyncio.run(ProcessRunner().stream(python_exe, ["-c", script], lines.append))

        assert lines == ["a 10%", "b 50%", "c"]
        assert output == "a 10%\nb 50%\nc"

    def test_stderr_is_merged(self, python_exe):
        script = "import sys; sys.stderr.write('from stderr\\n')"
        lines = []
        asyncio.run(ProcessRunner().stream(python_exe, ["-c", script], lines.append))
        assert lines == ["from stderr"]

    def test_async_sink(self, python_exe):
        """Coroutine sinks are awaited."""
        seen = []

        async def sink(line):
            await asyncio.sleep(0)
            seen.append(line)

        asyncio.run(ProcessRunner().stream(python_exe, ["-c", "print('x'); print('y')"], sink))
        assert seen == ["x", "y"]

    def test_failure_reports_tail(self, python_exe):
        """A failed stream reports the last output lines."""
        script = "import sys\nfor i in range(30): print(f'line {i}')\nsys.exit(2)"

        with pytest.raises(CommandFailedError) as exc_info:
            asyncio.run(ProcessRunner().stream(python_exe, ["-c", script], lambda line: None))

        assert exc_info.value.exit_code == 2
        tail = exc_info.value.stderr.splitlines()
        assert len(tail) == 20
        assert tail[-1] == "line 29"

    @pytest.mark.slow
    def test_timeout_kills_tree(self, python_exe):
        """No descendant survives a timed-out stream."""
        pids = []
        runner = ProcessRunner()

        with pytest.raises(CommandTimeoutError):
            asyncio.run(
                runner.stream(
                    python_exe,
                    ["-c", SPAWN_GRANDCHILD],
                    lambda line: pids.append(int(line)),
                    timeout=2,
                )
            )

        assert len(pids) == 1
        assert _gone(pids[0])

    @pytest.mark.slow
    def test_cancellation_kills_process(self, python_exe):
        """Cancelling the awaiting task kills the child and waits for it."""
        pids = []
        runner = RecordingRunner()

        async def scenario():
            started = asyncio.Event()

            def on_line(line):
                pids.append(int(line))
                started.set()

            task = asyncio.create_task(
                runner.stream(python_exe, ["-c", SPAWN_GRANDCHILD], on_line)
            )
            await asyncio.wait_for(started.wait(), 10)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return runner.processes[0].returncode

        assert asyncio.run(scenario()) is not None
        assert _gone(pids[0])


@pytest.mark.integration
@pytest.mark.slow
@pytest.mark.skipif(sys.platform == "win32", reason="needs a shebang script")
class TestCancelledInstall:
    """A cancelled install leaves nothing behind for the closed event loop."""

    def test_child_reaped_before_loop_closes(self, tmp_path, monkeypatch, caplog):
        """The killed child is awaited, so no transport outlives the loop."""
        unraisable = []
        monkeypatch.setattr(sys, "unraisablehook", unraisable.append)
        fnm = tmp_path / "fnm"
        fnm.write_text(f"#!{sys.executable}\n{FAKE_FNM_INSTALL}", encoding="utf-8")
        fnm.chmod(0o755)
        runner = RecordingRunner(backend="fnm")
        backend = FnmBackend(executable=str(fnm), runner=runner)

        async def scenario():
            downloading = asyncio.Event()

            async def consume():
                async for progress in backend.install(NodeVersion(20, 11, 0)):
                    if progress.phase is InstallPhase.DOWNLOADING:
                        downloading.set()

            task = asyncio.create_task(consume())
            await asyncio.wait_for(downloading.wait(), 10)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return runner.processes[0]

        with caplog.at_level(logging.WARNING, logger="asyncio"):
            process = asyncio.run(scenario())
            gc.collect()

        assert process.returncode is not None
        assert _gone(process.pid)
        assert unraisable == []
        assert "is closed" not in caplog.text


@pytest.mark.unit
class TestKillProcessTree:
    """Tests for kill_process_tree()."""

    def test_missing_process_ignored(self):
        with patch("nodeswitch.process_runner.psutil.Process", side_effect=psutil.NoSuchProcess(1)):
            kill_process_tree(1)

    def test_children_killed_before_parent(self, mocker):
        """Children are collected first and every process is killed."""
        child = mocker.MagicMock(pid=11)
        parent = mocker.MagicMock(pid=10)
        parent.children.return_value = [child]
        mocker.patch("nodeswitch.process_runner.psutil.Process", return_value=parent)

        kill_process_tree(10)

        parent.children.assert_called_once_with(recursive=True)
        child.kill.assert_called_once()
        parent.kill.assert_called_once()

    def test_vanished_child_skipped(self, mocker):
        child = mocker.MagicMock(pid=11)
        child.kill.side_effect = psutil.NoSuchProcess(11)
        parent = mocker.MagicMock(pid=10)
        parent.children.return_value = [child]
        mocker.patch("nodeswitch.process_runner.psutil.Process", return_value=parent)

        kill_process_tree(10)
        parent.kill.assert_called_once()
