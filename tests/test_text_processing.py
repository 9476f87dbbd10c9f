"""Tests for prompt splitting and output clean-up helpers."""

from graphfill.provider import FimProvider
from graphfill.text_processing import fix_bad_completion_start, first_line, get_head_and_tail


def test_head_and_tail_split():
    """Test splitting at the last two non-empty lines."""
    prefix = "import os\n\ndef main():\n    path = os.getcwd()\n    "

    components = get_head_and_tail(prefix)

    assert components.head == "import os"
    assert components.tail == "def main():\n    path = os.getcwd()"
    assert components.overlap is None


def test_head_and_tail_short_prefix():
    """Test that a single-line prefix is both head and tail."""
    components = get_head_and_tail("x = ")

    assert components.head == components.tail == "x ="
    assert components.overlap == "x = "


def test_fix_bad_completion_start():
    """Test removal of bullets and zero-width spaces."""
    assert fix_bad_completion_start("- return x") == "return x"
    assert fix_bad_completion_start("\u200b return x") == "return x"
    assert fix_bad_completion_start("\U0001F680 launch()") == "launch()"
    assert fix_bad_completion_start("return x - 1") == "return x - 1"


def test_first_line():
    """Test detection of a completed first line."""
    assert first_line("return x") is None
    assert first_line("return x\n") == "return x"
    assert first_line("a\nb\nc") == "a"


def test_post_process_strips_markers():
    """Test that FIM markers are removed from model output."""
    assert FimProvider.post_process("<|fim|>value + 1<|suffix|>") == "value + 1"
    assert FimProvider.post_process("- <|fim|>call()") == "call()"
