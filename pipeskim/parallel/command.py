"""Per-token command rendering."""

from __future__ import annotations

import re
import shlex
from pathlib import Path
from typing import List, Sequence, Union

PLACEHOLDER = "{}"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def render_command(template: Union[str, Sequence[str]], token: str) -> List[str]:
    """
    Build the argv for one token.

    Every ``{}`` in the template is replaced with the token. When no element
    contains ``{}`` the token is appended as the last argument, the same way
    ``xargs -n1`` would call the command.

    Example:
        >>> render_command("aws ec2 describe-instances --instance-ids {}", "i-1")
        ['aws', 'ec2', 'describe-instances', '--instance-ids', 'i-1']
        >>> render_command(["stack-delete"], "my-stack")
        ['stack-delete', 'my-stack']
    """
    parts = shlex.split(template) if isinstance(template, str) else [str(p) for p in template]
    if not parts:
        raise ValueError("Command template is empty")
    if any(PLACEHOLDER in part for part in parts):
        return [part.replace(PLACEHOLDER, token) for part in parts]
    return parts + [token]


def output_path_for(output_dir: Union[str, Path], token: str, suffix: str = ".out") -> Path:
    """Return the output slot for a token; tokens like ARNs are made filename-safe."""
    name = _UNSAFE_FILENAME_CHARS.sub("_", token).strip("._") or "item"
    return Path(output_dir) / f"{name}{suffix}"
