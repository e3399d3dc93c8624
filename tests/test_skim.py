import io

import pytest

from pipeskim.errors import SkimReadError
from pipeskim.skim import extract, first_token, is_comment, is_readable, read_tokens, skim_lines


class TtyStream(io.StringIO):
    def isatty(self) -> bool:
        return True


class BrokenStream(io.StringIO):
    def __iter__(self):
        raise OSError("input/output error")


def test_mixed_comments_and_data():
    stream = io.StringIO("# Comment\nID1\n# Another\nID2")
    assert extract(stream=stream) == "ID1 ID2"


def test_comment_free_input_unchanged():
    assert extract(stream=io.StringIO("ID1\nID2")) == "ID1 ID2"


def test_comment_only_input_yields_empty_string():
    assert extract(stream=io.StringIO("# HEADER\n# Another")) == ""


def test_comment_only_input_keeps_explicit_args():
    assert extract("stack-a", stream=io.StringIO("# HEADER\n")) == "stack-a"


def test_empty_input_returns_explicit_args_trimmed():
    assert extract(" a ", "b  c", stream=io.StringIO("")) == "a b c"
    assert extract(stream=io.StringIO("")) == ""


def test_explicit_args_come_first():
    listing = (
        "# INSTANCE_ID          STATE     NAME\n"
        "i-0123456789abcdef0    running   web-1\n"
        "i-0fedcba9876543210\tstopped\tweb-2\n"
    )
    result = extract("i-explicit", stream=io.StringIO(listing))
    assert result == "i-explicit i-0123456789abcdef0 i-0fedcba9876543210"


def test_blank_and_whitespace_lines_contribute_nothing():
    stream = io.StringIO("\nID1\n   \n\t\nID2 extra\n")
    assert extract(stream=stream) == "ID1 ID2"


def test_only_leading_hash_marks_a_comment():
    # An indented hash is data, and a mid-line hash is not stripped.
    stream = io.StringIO("  #notacomment x\nID1#tail y\n")
    assert extract(stream=stream) == "#notacomment ID1#tail"


def test_quotes_are_not_honored():
    assert extract(stream=io.StringIO('"my stack" other\n')) == '"my'


def test_terminal_stream_is_not_read():
    stream = TtyStream("ID1\nID2\n")
    assert extract("x", stream=stream) == "x"
    assert stream.tell() == 0


def test_absent_or_closed_stream_yields_explicit_only():
    closed = io.StringIO("ID1\n")
    closed.close()
    assert extract("a", stream=None) == "a"
    assert extract("a", stream=closed) == "a"


def test_defaults_to_stdin(monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO("# H\nvol-1\nvol-2\n"))
    assert extract() == "vol-1 vol-2"


def test_read_failure_is_raised():
    with pytest.raises(SkimReadError):
        extract(stream=BrokenStream("ID1\n"))


def test_undecodable_input_is_a_read_failure():
    stream = io.TextIOWrapper(io.BytesIO(b"# H\ni-1\n\xff\xfe bad\n"), encoding="utf-8")
    with pytest.raises(SkimReadError) as excinfo:
        extract(stream=stream)
    assert isinstance(excinfo.value.__cause__, UnicodeDecodeError)


def test_idempotent_for_identical_input():
    text = "# H\nID1 a\n\nID2 b\n"
    first = extract("x", stream=io.StringIO(text))
    second = extract("x", stream=io.StringIO(text))
    assert first == second == "x ID1 ID2"


def test_skim_lines_preserves_order():
    lines = ["b-2\n", "# h\n", "a-1\n", "c-3 z\n"]
    assert list(skim_lines(lines)) == ["b-2", "a-1", "c-3"]


def test_helpers():
    assert is_comment("# x")
    assert not is_comment(" # x")
    assert first_token("  ami-1  foo") == "ami-1"
    assert first_token("   ") is None
    assert not is_readable(None)
    assert is_readable(io.StringIO(""))
    assert read_tokens(TtyStream("a\n")) == []
