"""
pipeskim: pipe-friendly id skimming and bounded parallel fan-out.

Resource-listing commands print ids in their first column; ``extract`` turns
such output (header lines starting with ``#`` included) into an argument
string, and ``BoundedRunner`` runs one command per id without starting more
than a fixed number at once.
"""

from .errors import ConfigError, PipeskimError, RunnerClosedError, RunnerStartError, SkimReadError
from .parallel import AsyncBoundedRunner, BoundedRunner, render_command, run_batch, run_batch_async
from .skim import extract, skim_lines
from .types import BatchResult, ItemOutcome, RunnerState, WorkItem

__version__ = "0.1.0"

__all__ = [
    "AsyncBoundedRunner",
    "BatchResult",
    "BoundedRunner",
    "ConfigError",
    "ItemOutcome",
    "PipeskimError",
    "RunnerClosedError",
    "RunnerStartError",
    "RunnerState",
    "SkimReadError",
    "WorkItem",
    "extract",
    "render_command",
    "run_batch",
    "run_batch_async",
    "skim_lines",
]
