"""
pipeskim Parallel Processing Module.

Runs one unit of work per input item while capping how many run at once.

Key Components:
    - BoundedRunner: thread/subprocess runner with ``submit``/``drain``
    - AsyncBoundedRunner: the same contract for asyncio callers
    - render_command: builds a per-token argv from a command template

Example:
    >>> from pipeskim.parallel import BoundedRunner
    >>> runner = BoundedRunner(max_concurrent=10)
    >>> for instance_id in ids:
    ...     runner.submit(WorkItem(["aws", "ec2", "stop-instances", "--instance-ids"], (instance_id,)))
    >>> result = runner.drain()
"""

from .async_runner import AsyncBoundedRunner, run_batch_async
from .command import output_path_for, render_command
from .runner import DEFAULT_MAX_CONCURRENT, BoundedRunner, RunnerConfig, run_batch

__all__ = [
    "DEFAULT_MAX_CONCURRENT",
    "AsyncBoundedRunner",
    "BoundedRunner",
    "RunnerConfig",
    "output_path_for",
    "render_command",
    "run_batch",
    "run_batch_async",
]
