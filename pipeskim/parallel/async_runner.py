"""
Asyncio flavour of the bounded runner.

Same contract as ``BoundedRunner`` for callers already inside an event loop:
``await runner.submit(item)`` in a loop, then ``await runner.drain()``.
Subprocess items use ``asyncio.create_subprocess_exec``; async callables
are awaited directly and plain callables run in the loop's default executor
(an awaitable they return is awaited as well).
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import time
from typing import Any, Dict, Iterable, Optional, Set

from ..errors import RunnerClosedError, RunnerStartError
from ..types import BatchResult, ItemOutcome, RunnerState, WorkItem
from .runner import (
    DEFAULT_MAX_CONCURRENT,
    RunnerConfig,
    failure_message,
    is_async_callable,
    open_output,
    validate_budget,
)

logger = logging.getLogger(__name__)


class AsyncBoundedRunner:
    """
    Bounded parallel runner driven by asyncio tasks.

    Example:
        >>> async with AsyncBoundedRunner(max_concurrent=2) as runner:
        ...     for bucket in buckets:
        ...         await runner.submit(WorkItem(["aws", "s3", "ls"], (f"s3://{bucket}",)))
        >>> runner.state
        <RunnerState.DONE: 'done'>
    """

    def __init__(
        self,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        timeout_per_item: float | None = None,
    ) -> None:
        self._config = RunnerConfig(
            max_concurrent=validate_budget(max_concurrent),
            timeout_per_item=timeout_per_item,
        )
        self._state = RunnerState.IDLE
        self._tasks: Set[asyncio.Task] = set()
        self._submitted = 0
        self._running = 0
        self._peak_running = 0
        self._outcomes: Dict[int, ItemOutcome] = {}
        self._start_time: float | None = None

    @property
    def config(self) -> RunnerConfig:
        return self._config

    @property
    def state(self) -> RunnerState:
        return self._state

    @property
    def running_count(self) -> int:
        return self._running

    @property
    def peak_running(self) -> int:
        return self._peak_running

    async def submit(self, item: WorkItem) -> None:
        """Start ``item``; if over budget, wait until one running item finishes."""
        if self._state in (RunnerState.DRAINING, RunnerState.DONE):
            raise RunnerClosedError(f"Runner is {self._state.value}; start a new batch")
        if self._state is RunnerState.IDLE:
            self._state = RunnerState.SUBMITTING
            self._start_time = time.time()

        index = self._submitted
        label = item.display_label(index)
        timeout = item.timeout if item.timeout is not None else self._config.timeout_per_item

        if item.is_callable:
            work = self._run_callable(item, index, label, timeout)
        else:
            process, output = await self._spawn(item, label)
            work = self._watch_process(process, output, index, label, timeout)

        self._submitted += 1
        self._running += 1
        self._peak_running = max(self._peak_running, self._running)
        task = asyncio.create_task(work, name=f"pipeskim-{label}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        if self._running > self._config.max_concurrent:
            pending = {t for t in self._tasks if not t.done()}
            if pending:
                await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)

    async def drain(self) -> BatchResult:
        """Wait for all submitted items and return their outcomes."""
        if self._state is not RunnerState.DONE:
            self._state = RunnerState.DRAINING
            while self._tasks:
                await asyncio.gather(*self._tasks)
            self._state = RunnerState.DONE
            if self._outcomes:
                result = self._result()
                logger.info(
                    "Batch complete: %d/%d succeeded, %.1fs total, peak %d running",
                    result.success_count,
                    len(result.outcomes),
                    result.total_time_ms / 1000,
                    result.peak_running,
                )
        return self._result()

    def _result(self) -> BatchResult:
        elapsed = (time.time() - self._start_time) * 1000 if self._start_time else 0.0
        return BatchResult(
            outcomes=[self._outcomes[i] for i in sorted(self._outcomes)],
            total_time_ms=elapsed,
            peak_running=self._peak_running,
        )

    async def _spawn(self, item: WorkItem, label: str) -> tuple[asyncio.subprocess.Process, Any]:
        argv = item.argv()
        try:
            output = open_output(item)
        except OSError as e:
            raise RunnerStartError(f"Cannot open output for {label}: {e}", label=label) from e
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=output,
                stdin=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            if output is not None:
                output.close()
            raise RunnerStartError(f"Cannot start {argv[0]!r} for {label}: {e}", label=label) from e
        logger.debug("Started %s (pid %d): %s", label, process.pid, argv)
        return process, output

    async def _watch_process(
        self,
        process: asyncio.subprocess.Process,
        output: Any,
        index: int,
        label: str,
        timeout: float | None,
    ) -> None:
        start = time.time()
        outcome = ItemOutcome(index=index, label=label, success=False)
        try:
            try:
                returncode = await asyncio.wait_for(process.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
                outcome.returncode = process.returncode
                outcome.error = f"Timeout after {timeout}s"
            else:
                outcome.returncode = returncode
                outcome.success = returncode == 0
                if not outcome.success:
                    outcome.error = failure_message(returncode)
        finally:
            if output is not None:
                output.close()
            outcome.latency_ms = (time.time() - start) * 1000
            self._finish(outcome)

    async def _run_callable(
        self,
        item: WorkItem,
        index: int,
        label: str,
        timeout: float | None,
    ) -> None:
        start = time.time()
        outcome = ItemOutcome(index=index, label=label, success=False)
        try:
            if is_async_callable(item.command):
                await asyncio.wait_for(item.command(*item.args), timeout=timeout)  # type: ignore[operator]
            else:
                loop = asyncio.get_running_loop()
                result = await loop.run_in_executor(None, functools.partial(item.command, *item.args))  # type: ignore[arg-type]
                if inspect.isawaitable(result):
                    await asyncio.wait_for(result, timeout=timeout)
                elif timeout is not None:
                    logger.debug("Timeout ignored for callable item %s", label)
            outcome.success = True
        except asyncio.TimeoutError:
            outcome.error = f"Timeout after {timeout}s"
        except Exception as e:
            outcome.error = str(e) or type(e).__name__
        finally:
            outcome.latency_ms = (time.time() - start) * 1000
            self._finish(outcome)

    def _finish(self, outcome: ItemOutcome) -> None:
        if not outcome.success:
            logger.warning("Item %s failed: %s", outcome.label, (outcome.error or "")[:200])
        self._outcomes[outcome.index] = outcome
        self._running -= 1

    async def __aenter__(self) -> "AsyncBoundedRunner":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.drain()


async def run_batch_async(
    items: Iterable[WorkItem],
    max_concurrent: int = DEFAULT_MAX_CONCURRENT,
    timeout_per_item: Optional[float] = None,
) -> BatchResult:
    """Submit every item to a fresh async runner and drain it."""
    async with AsyncBoundedRunner(max_concurrent, timeout_per_item=timeout_per_item) as runner:
        for item in items:
            await runner.submit(item)
    return await runner.drain()
