"""
Bounded Parallel Runner for pipeskim.

Starts one unit of work per submitted item while capping how many run at the
same time, so a fan-out over hundreds of resource ids does not exhaust local
processes or trip a remote API's throttling.

Semantics:
    - ``submit`` starts the item right away, then, if more than
      ``max_concurrent`` items are running, blocks until at least one of
      them finishes (soft cap: at most ``max_concurrent + 1`` run at once)
    - ``drain`` blocks until every submitted item has finished
    - A failing item never raises and never cancels its siblings; its
      outcome is recorded in the ``BatchResult`` returned by ``drain``
    - Failure to start an item at all raises ``RunnerStartError``

Subprocess items are spawned from the submitting thread so spawn failures
surface immediately; a watcher thread then waits for each process. Callable
items run in their own thread.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Awaitable, Dict, Iterable, Optional

from ..errors import RunnerClosedError, RunnerStartError
from ..types import BatchResult, ItemOutcome, RunnerState, WorkItem

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT = 10


@dataclass
class RunnerConfig:
    """Configuration for a bounded runner.

    Attributes:
        max_concurrent: Concurrency budget for the batch
        timeout_per_item: Default per-item timeout in seconds (None = no limit)
    """

    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    timeout_per_item: float | None = None


def validate_budget(max_concurrent: int) -> int:
    if isinstance(max_concurrent, bool) or not isinstance(max_concurrent, int):
        raise ValueError(f"max_concurrent must be an integer, got {max_concurrent!r}")
    if max_concurrent < 1:
        raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")
    return max_concurrent


def open_output(item: WorkItem) -> Optional[IO[bytes]]:
    """Open the item's stdout slot for writing, creating parent directories."""
    if item.stdout_path is None:
        return None
    path = Path(item.stdout_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path.open("wb")


def is_async_callable(command: Any) -> bool:
    """True for coroutine functions and objects with an ``async def __call__``."""
    return inspect.iscoroutinefunction(command) or inspect.iscoroutinefunction(
        getattr(command, "__call__", None)
    )


async def await_with_timeout(awaitable: Awaitable[Any], timeout: float | None) -> Any:
    return await asyncio.wait_for(awaitable, timeout=timeout)


def failure_message(returncode: int) -> str:
    if returncode < 0:
        return f"Killed by signal {-returncode}"
    return f"Exited with status {returncode}"


class BoundedRunner:
    """
    Thread-based bounded parallel runner for one batch.

    Example:
        >>> runner = BoundedRunner(max_concurrent=4)
        >>> for stack in stacks:
        ...     runner.submit(WorkItem("aws cloudformation delete-stack --stack-name", (stack,)))
        >>> result = runner.drain()
        >>> print(f"{result.failure_count} failed")

    A runner handles exactly one batch. Once ``drain`` has returned it is in
    the ``DONE`` state and further submissions raise ``RunnerClosedError``.
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
        self._cond = threading.Condition()
        self._state = RunnerState.IDLE
        self._submitted = 0
        self._running = 0
        self._completed = 0
        self._peak_running = 0
        self._outcomes: Dict[int, ItemOutcome] = {}
        self._start_time: float | None = None

    @property
    def config(self) -> RunnerConfig:
        return self._config

    @property
    def state(self) -> RunnerState:
        with self._cond:
            return self._state

    @property
    def running_count(self) -> int:
        """Number of items started and not yet finished."""
        with self._cond:
            return self._running

    @property
    def peak_running(self) -> int:
        with self._cond:
            return self._peak_running

    def submit(self, item: WorkItem) -> None:
        """
        Start ``item`` and, if the budget is exceeded, wait for one completion.

        Raises:
            RunnerStartError: The process or thread could not be started.
            RunnerClosedError: The batch is already draining or done.
        """
        with self._cond:
            if self._state in (RunnerState.DRAINING, RunnerState.DONE):
                raise RunnerClosedError(f"Runner is {self._state.value}; start a new batch")
            if self._state is RunnerState.IDLE:
                self._state = RunnerState.SUBMITTING
                self._start_time = time.time()
                logger.debug("Batch started: max_concurrent=%d", self._config.max_concurrent)
            index = self._submitted
            self._submitted += 1
            self._running += 1
            self._peak_running = max(self._peak_running, self._running)

        label = item.display_label(index)
        try:
            self._start(item, index, label)
        except BaseException:
            self._forget()
            raise

        with self._cond:
            if self._running > self._config.max_concurrent:
                seen = self._completed
                logger.debug(
                    "Budget saturated (%d running), waiting for a completion",
                    self._running,
                )
                self._cond.wait_for(lambda: self._completed > seen)

    def drain(self) -> BatchResult:
        """Wait for every submitted item to finish and return their outcomes."""
        with self._cond:
            if self._state is RunnerState.DONE:
                return self._result()
            self._state = RunnerState.DRAINING
            self._cond.wait_for(lambda: self._running == 0)
            self._state = RunnerState.DONE
            result = self._result()

        if result.outcomes:
            logger.info(
                "Batch complete: %d/%d succeeded, %.1fs total, peak %d running",
                result.success_count,
                len(result.outcomes),
                result.total_time_ms / 1000,
                result.peak_running,
            )
        return result

    def _result(self) -> BatchResult:
        elapsed = (time.time() - self._start_time) * 1000 if self._start_time else 0.0
        return BatchResult(
            outcomes=[self._outcomes[i] for i in sorted(self._outcomes)],
            total_time_ms=elapsed,
            peak_running=self._peak_running,
        )

    def _forget(self) -> None:
        # The item never started; undo its bookkeeping.
        with self._cond:
            self._running -= 1
            self._submitted -= 1
            self._cond.notify_all()

    def _start(self, item: WorkItem, index: int, label: str) -> None:
        timeout = item.timeout if item.timeout is not None else self._config.timeout_per_item
        if item.is_callable:
            target: Any = self._run_callable
            args: tuple = (item, index, label, timeout)
        else:
            process, output = self._spawn(item, label)
            target = self._watch_process
            args = (process, output, index, label, timeout)

        thread = threading.Thread(
            target=target,
            args=args,
            name=f"pipeskim-{label}",
        )
        try:
            thread.start()
        except RuntimeError as e:
            if not item.is_callable:
                process.kill()
                process.wait()
                if output is not None:
                    output.close()
            raise RunnerStartError(f"Cannot start worker thread for {label}: {e}", label=label) from e

    def _spawn(self, item: WorkItem, label: str) -> tuple[subprocess.Popen, Optional[IO[bytes]]]:
        argv = item.argv()
        try:
            output = open_output(item)
        except OSError as e:
            raise RunnerStartError(f"Cannot open output for {label}: {e}", label=label) from e
        try:
            process = subprocess.Popen(argv, stdout=output, stdin=subprocess.DEVNULL)
        except OSError as e:
            if output is not None:
                output.close()
            raise RunnerStartError(f"Cannot start {argv[0]!r} for {label}: {e}", label=label) from e
        logger.debug("Started %s (pid %d): %s", label, process.pid, argv)
        return process, output

    def _watch_process(
        self,
        process: subprocess.Popen,
        output: Optional[IO[bytes]],
        index: int,
        label: str,
        timeout: float | None,
    ) -> None:
        start = time.time()
        outcome = ItemOutcome(index=index, label=label, success=False)
        try:
            try:
                returncode = process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()
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

    def _run_callable(self, item: WorkItem, index: int, label: str, timeout: float | None) -> None:
        start = time.time()
        outcome = ItemOutcome(index=index, label=label, success=False)
        try:
            result = item.command(*item.args)  # type: ignore[operator]
            if inspect.isawaitable(result):
                # Async commands get a private event loop in this worker thread.
                asyncio.run(await_with_timeout(result, timeout))
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
        with self._cond:
            self._outcomes[outcome.index] = outcome
            self._running -= 1
            self._completed += 1
            self._cond.notify_all()

    def __enter__(self) -> "BoundedRunner":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Never leave items behind, even when the submitting loop raised."""
        self.drain()


def run_batch(
    items: Iterable[WorkItem],
    max_concurrent: int = DEFAULT_MAX_CONCURRENT,
    timeout_per_item: float | None = None,
) -> BatchResult:
    """
    Submit every item to a fresh runner and drain it.

    Example:
        >>> from pipeskim.parallel import run_batch
        >>> result = run_batch(items, max_concurrent=5)
    """
    with BoundedRunner(max_concurrent, timeout_per_item=timeout_per_item) as runner:
        for item in items:
            runner.submit(item)
    return runner.drain()
