"""Runtime settings from the environment and YAML batch files."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Union

import yaml
from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError
from .parallel.runner import DEFAULT_MAX_CONCURRENT

logger = logging.getLogger(__name__)

ENV_PREFIX = "PIPESKIM_"


@dataclass
class Settings:
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    timeout: Optional[float] = None
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, dotenv_path: Union[str, Path, None] = None) -> "Settings":
        """
        Load settings from ``PIPESKIM_*`` variables.

        A ``.env`` file is read first (``dotenv_path`` or the one found by
        searching up from the working directory); variables already present
        in the environment win.
        """
        load_dotenv(dotenv_path or find_dotenv(usecwd=True), override=False)
        return cls(
            max_concurrent=_budget(_env_int("MAX_CONCURRENT", DEFAULT_MAX_CONCURRENT)),
            timeout=_env_float("TIMEOUT"),
            log_level=os.getenv(ENV_PREFIX + "LOG_LEVEL", "INFO"),
            log_file=os.getenv(ENV_PREFIX + "LOG_FILE") or None,
        )


@dataclass
class BatchConfig:
    command: Union[str, List[str]]
    max_concurrent: Optional[int] = None
    timeout: Optional[float] = None
    output_dir: Optional[str] = None
    items: List[str] = field(default_factory=list)


_BATCH_KEYS = {"command", "max_concurrent", "timeout", "output_dir", "items"}


def load_batch_config(path: Union[str, Path]) -> BatchConfig:
    """
    Read a YAML batch description, e.g.::

        command: aws ec2 describe-instance-attribute --attribute userData --instance-id {}
        max_concurrent: 5
        output_dir: userdata/
        items: [i-0123456789abcdef0]
    """
    try:
        data = yaml.safe_load(Path(path).read_text())
    except OSError as e:
        raise ConfigError(f"Cannot read batch config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Batch config {path} must be a mapping")
    command = data.get("command")
    if not command or not isinstance(command, (str, list)):
        raise ConfigError(f"Batch config {path} needs a 'command' string or list")

    max_concurrent = data.get("max_concurrent")
    if max_concurrent is not None:
        max_concurrent = _budget(max_concurrent)
    timeout = data.get("timeout")
    if timeout is not None:
        timeout = _to_float("timeout", timeout)
    items = data.get("items") or []
    if not isinstance(items, list):
        raise ConfigError(f"'items' in {path} must be a list")
    unknown = sorted(str(key) for key in data if key not in _BATCH_KEYS)
    if unknown:
        logger.warning("Ignoring unknown keys in %s: %s", path, ", ".join(unknown))

    return BatchConfig(
        command=command if isinstance(command, str) else [str(part) for part in command],
        max_concurrent=max_concurrent,
        timeout=timeout,
        output_dir=data.get("output_dir"),
        items=[str(item) for item in items],
    )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from e


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return None
    return _to_float(ENV_PREFIX + name, raw)


def _to_float(name: str, value: Any) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e
    if result <= 0:
        raise ConfigError(f"{name} must be positive, got {value!r}")
    return result


def _budget(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(f"max_concurrent must be a positive integer, got {value!r}")
    return value
