import logging
import sys
from pathlib import Path
from typing import Optional, Union


def setup_logging(
    level: Union[str, int] = "INFO",
    log_file: Optional[str] = None,
    force: bool = False,
) -> None:
    """
    Configure logging for the pipeskim command.

    Parameters
    ----------
    level:
        Logging level name (e.g., "INFO", "DEBUG") or numeric level.
    log_file:
        Optional path to log output. When not provided, logs go to stderr;
        stdout carries skimmed ids and must stay pipeable.
    force:
        Replace handlers installed by an earlier call.
    """

    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    handler: logging.Handler
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)

    logging.basicConfig(
        level=level,
        format="[%(levelname)s] %(name)s - %(message)s",
        handlers=[handler],
        force=force,
    )
