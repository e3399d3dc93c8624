"""
Stdin skimming.

Resource-listing commands print one resource per line with the identifier in
the first column, optionally preceded by ``#`` header lines meant for humans:

    # INSTANCE_ID          STATE     NAME
    i-0123456789abcdef0    running   web-1
    i-0fedcba9876543210    stopped   web-2

Downstream commands take identifiers positionally, so ``extract`` turns such
a stream into ``"i-0123456789abcdef0 i-0fedcba9876543210"``, with any
explicitly passed arguments placed first.

Example:
    >>> import io
    >>> extract("i-explicit", stream=io.StringIO("# ID\\ni-1 x\\ni-2 y\\n"))
    'i-explicit i-1 i-2'
"""

from __future__ import annotations

import logging
import sys
from typing import IO, Iterable, Iterator, List, Optional

from .errors import SkimReadError

logger = logging.getLogger(__name__)

COMMENT_MARKER = "#"

_USE_STDIN = object()


def is_comment(line: str) -> bool:
    """A line is a header/comment line iff its first character is ``#``."""
    return line.startswith(COMMENT_MARKER)


def first_token(line: str) -> Optional[str]:
    """Return the first whitespace-delimited field, or None for blank lines."""
    fields = line.split(None, 1)
    return fields[0] if fields else None


def skim_lines(lines: Iterable[str]) -> Iterator[str]:
    """Yield the first token of every data line, in input order."""
    for line in lines:
        if is_comment(line):
            continue
        token = first_token(line)
        if token is not None:
            yield token


def is_readable(stream: Optional[IO[str]]) -> bool:
    """
    Decide whether a stream carries piped data.

    An absent stream, a closed stream or an interactive terminal yields no
    data; the caller is typing commands rather than piping resource lists.
    """
    if stream is None:
        return False
    if getattr(stream, "closed", False):
        return False
    isatty = getattr(stream, "isatty", None)
    if isatty is None:
        return True
    try:
        return not isatty()
    except ValueError:
        # isatty() on a detached/closed underlying buffer
        return False


def read_tokens(stream: Optional[IO[str]]) -> List[str]:
    """Read all first tokens from ``stream``; empty when it is not readable."""
    if not is_readable(stream):
        return []
    try:
        tokens = list(skim_lines(stream))
    except (OSError, UnicodeDecodeError) as e:
        raise SkimReadError(f"Failed to read input stream: {e}") from e
    logger.debug("Skimmed %d token(s) from input", len(tokens))
    return tokens


def normalize(words: Iterable[str]) -> str:
    """Join words with single spaces, collapsing any inner whitespace runs."""
    return " ".join(" ".join(words).split())


def extract(*explicit_args: str, stream: Optional[IO[str]] = _USE_STDIN) -> str:  # type: ignore[assignment]
    """
    Build the argument string for a downstream command.

    Args:
        explicit_args: Arguments given directly by the caller; they come first.
        stream: Line stream to skim. Defaults to ``sys.stdin``; pass None to
            skip reading entirely.

    Returns:
        Explicit arguments followed by one token per data line, separated by
        single spaces with no leading or trailing whitespace.

    Raises:
        SkimReadError: The stream looked readable but reading it failed.
    """
    if stream is _USE_STDIN:
        stream = sys.stdin
    return normalize([*explicit_args, *read_tokens(stream)])
