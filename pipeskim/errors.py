"""Exceptions raised by pipeskim."""


class PipeskimError(Exception):
    """Base class for pipeskim errors."""


class SkimReadError(PipeskimError):
    """The input stream was readable but reading it failed."""


class RunnerStartError(PipeskimError):
    """A work item could not be started at all (spawn/thread failure)."""

    def __init__(self, message: str, *, label: str | None = None) -> None:
        super().__init__(message)
        self.label = label


class RunnerClosedError(PipeskimError):
    """Raised when submitting to a runner whose batch is already drained."""


class ConfigError(PipeskimError):
    """Invalid environment or YAML configuration."""
