"""
Install progress pipeline.

A streaming command runs in a producer task; each output line is mapped to an
InstallProgress by a variant-specific parser and handed over an asyncio.Queue.
The producer waits until the consumer asks for the next value before it reads
more output. The consumer side is an async generator that yields values in
order, ends with DONE, or yields FAILED and then raises the domain error.

Closing the generator (or cancelling the task iterating it) cancels the
producer, which kills the running process.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

from nodeswitch.exceptions import NodeSwitchError
from nodeswitch.logging_config import get_logger
from nodeswitch.models import InstallPhase, InstallProgress

logger = get_logger(__name__)

LineParser = Callable[[str], Optional[InstallProgress]]
LineSink = Callable[[str], Awaitable[None]]
ErrorTranslator = Callable[[NodeSwitchError], NodeSwitchError]

_QueueItem = Union[InstallProgress, BaseException, None]


def _identity(error: NodeSwitchError) -> NodeSwitchError:
    return error


async def run_with_progress(
    command: Callable[[LineSink], Awaitable[object]],
    parse_line: LineParser,
    finish: Callable[[], Awaitable[InstallProgress]],
    translate: ErrorTranslator = _identity,
) -> AsyncIterator[InstallProgress]:
    """
    Run ``command`` and yield its progress.

    Args:
        command: Coroutine factory taking a line sink; typically wraps
            ProcessRunner.stream
        parse_line: Maps one output line to progress, or None to ignore it
        finish: Called after a successful exit to build the DONE value
        translate: Maps domain errors from the command to the error to raise

    Yields:
        Progress values in the order the lines arrived, then DONE.
        On failure, a FAILED value followed by the raised error.
    """
    queue: asyncio.Queue[_QueueItem] = asyncio.Queue()

    async def sink(line: str) -> None:
        progress = parse_line(line)
        if progress is None:
            return
        # Terminal phases come only from the exit status
        if progress.phase.is_terminal:
            logger.warning(f"Install reported: {progress.message}")
            return
        await queue.put(progress)
        # Hold the stream until the consumer asks for the next value
        await queue.join()

    async def produce() -> None:
        try:
            await command(sink)
            await queue.put(await finish())
        except NodeSwitchError as e:
            await queue.put(translate(e))
        except Exception as e:  # noqa: generic-exception - forwarded to the consumer
            await queue.put(e)
        await queue.put(None)

    producer = asyncio.create_task(produce())
    try:
        while True:
            item = await queue.get()
            if item is None:
                break
            if isinstance(item, BaseException):
                logger.error(f"Install failed: {item}")
                yield InstallProgress(InstallPhase.FAILED, message=str(item))
                raise item
            yield item
            queue.task_done()
    finally:
        if not producer.done():
            logger.info("Install stream closed early, cancelling command")
            producer.cancel()
            await asyncio.wait({producer})
