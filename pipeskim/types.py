from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

Command = Union[str, Sequence[str], Callable[..., Any]]


class RunnerState(Enum):
    """Lifecycle of one batch submitted to a bounded runner."""

    IDLE = "idle"
    SUBMITTING = "submitting"
    DRAINING = "draining"
    DONE = "done"


@dataclass(frozen=True)
class WorkItem:
    """
    One independent unit of execution.

    Attributes:
        command: argv string/sequence run as a subprocess, or a callable
            invoked as ``command(*args)``
        args: positional arguments appended to the argv or passed to the callable
        label: name used in logs and outcomes
        stdout_path: file receiving the subprocess's stdout
        timeout: seconds before the item is killed (subprocesses) or
            cancelled (coroutines); None waits forever
    """

    command: Command
    args: Tuple[Any, ...] = ()
    label: Optional[str] = None
    stdout_path: Optional[Path] = None
    timeout: Optional[float] = None

    @property
    def is_callable(self) -> bool:
        return callable(self.command)

    def argv(self) -> List[str]:
        if self.is_callable:
            raise TypeError("callable work items have no argv")
        if isinstance(self.command, str):
            head = shlex.split(self.command)
        else:
            head = [str(part) for part in self.command]
        return head + [str(arg) for arg in self.args]

    def display_label(self, index: int) -> str:
        if self.label:
            return self.label
        if self.args:
            return str(self.args[0])
        return f"item_{index}"


@dataclass
class ItemOutcome:
    """Observed result of one work item.

    Attributes:
        index: Submission position
        label: Item label
        success: Whether the item completed cleanly
        returncode: Process exit status (None for callables)
        error: Error message for failures
        latency_ms: Wall time from start to completion
    """

    index: int
    label: str
    success: bool
    returncode: int | None = None
    error: str | None = None
    latency_ms: float = 0.0


@dataclass
class BatchResult:
    """Aggregated outcomes of a drained batch."""

    outcomes: List[ItemOutcome] = field(default_factory=list)
    total_time_ms: float = 0.0
    peak_running: int = 0

    @property
    def success_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def failure_count(self) -> int:
        return len(self.outcomes) - self.success_count

    @property
    def failed(self) -> List[ItemOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]
