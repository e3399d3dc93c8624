"""Tests for the asyncio bounded runner."""

from __future__ import annotations

import asyncio
import sys
import time
from pathlib import Path

import pytest

from pipeskim.errors import RunnerClosedError, RunnerStartError
from pipeskim.parallel.async_runner import AsyncBoundedRunner, run_batch_async
from pipeskim.types import RunnerState, WorkItem


class AsyncTracker:
    def __init__(self) -> None:
        self.current = 0
        self.peak = 0

    async def __call__(self, duration: float, fail: bool = False) -> None:
        self.current += 1
        self.peak = max(self.peak, self.current)
        try:
            await asyncio.sleep(duration)
            if fail:
                raise ValueError("bad resource")
        finally:
            self.current -= 1


class TestAsyncBoundedRunner:
    """Tests for AsyncBoundedRunner."""

    @pytest.mark.asyncio
    async def test_soft_cap(self) -> None:
        tracker = AsyncTracker()
        runner = AsyncBoundedRunner(max_concurrent=2)
        for _ in range(8):
            await runner.submit(WorkItem(tracker, (0.02,)))
        result = await runner.drain()

        assert tracker.peak <= 3
        assert result.peak_running <= 3
        assert result.success_count == 8
        assert runner.running_count == 0

    @pytest.mark.asyncio
    async def test_under_budget_never_blocks(self) -> None:
        tracker = AsyncTracker()
        runner = AsyncBoundedRunner(max_concurrent=5)
        start = time.time()
        for _ in range(5):
            await runner.submit(WorkItem(tracker, (0.5,)))
        assert time.time() - start < 0.3
        assert runner.running_count == 5
        await runner.drain()

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self) -> None:
        tracker = AsyncTracker()
        async with AsyncBoundedRunner(max_concurrent=2) as runner:
            await runner.submit(WorkItem(tracker, (0.01,), label="ok-1"))
            await runner.submit(WorkItem(tracker, (0.01, True), label="bad"))
            await runner.submit(WorkItem(tracker, (0.01,), label="ok-2"))
        result = await runner.drain()

        assert runner.state == RunnerState.DONE
        assert result.success_count == 2
        assert result.failed[0].label == "bad"
        assert result.failed[0].error == "bad resource"

    @pytest.mark.asyncio
    async def test_coroutine_timeout(self) -> None:
        tracker = AsyncTracker()
        runner = AsyncBoundedRunner(max_concurrent=1, timeout_per_item=0.05)
        await runner.submit(WorkItem(tracker, (10,), label="slow"))
        result = await runner.drain()

        assert not result.outcomes[0].success
        assert "Timeout" in (result.outcomes[0].error or "")
        assert tracker.current == 0

    @pytest.mark.asyncio
    async def test_plain_callable_runs_in_executor(self) -> None:
        seen: list[str] = []
        result = await run_batch_async(
            [WorkItem(seen.append, ("a",)), WorkItem(seen.append, ("b",))],
            max_concurrent=1,
        )
        assert sorted(seen) == ["a", "b"]
        assert result.success_count == 2

    @pytest.mark.asyncio
    async def test_subprocess_slots(self, tmp_path: Path) -> None:
        code = "import sys; print(sys.argv[1])"
        items = [
            WorkItem(
                [sys.executable, "-c", code],
                (f"i-{n}",),
                stdout_path=tmp_path / f"i-{n}.out",
            )
            for n in range(4)
        ]
        items.append(WorkItem([sys.executable, "-c", "raise SystemExit(2)"], label="broken"))

        result = await run_batch_async(items, max_concurrent=2)

        assert result.failure_count == 1
        assert result.failed[0].returncode == 2
        for n in range(4):
            assert (tmp_path / f"i-{n}.out").read_text().strip() == f"i-{n}"

    @pytest.mark.asyncio
    async def test_subprocess_timeout(self) -> None:
        runner = AsyncBoundedRunner(max_concurrent=1)
        await runner.submit(
            WorkItem([sys.executable, "-c", "import time; time.sleep(30)"], label="slow", timeout=0.2)
        )
        result = await runner.drain()
        assert result.outcomes[0].error == "Timeout after 0.2s"

    @pytest.mark.asyncio
    async def test_spawn_failure(self, tmp_path: Path) -> None:
        runner = AsyncBoundedRunner(max_concurrent=1)
        with pytest.raises(RunnerStartError):
            await runner.submit(WorkItem([str(tmp_path / "missing")]))
        assert runner.running_count == 0
        result = await runner.drain()
        assert result.outcomes == []

    @pytest.mark.asyncio
    async def test_submit_after_drain(self) -> None:
        runner = AsyncBoundedRunner()
        await runner.drain()
        with pytest.raises(RunnerClosedError):
            await runner.submit(WorkItem(asyncio.sleep, (0,)))

    @pytest.mark.asyncio
    async def test_awaitable_returned_by_plain_callable_is_awaited(self) -> None:
        done: list[str] = []

        async def tag(name: str) -> None:
            await asyncio.sleep(0.01)
            done.append(name)

        result = await run_batch_async(
            [WorkItem(lambda: tag("vol-1")), WorkItem(lambda: tag("vol-2"))],
            max_concurrent=2,
        )
        assert sorted(done) == ["vol-1", "vol-2"]
        assert result.success_count == 2
