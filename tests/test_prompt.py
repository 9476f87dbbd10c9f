"""Tests for prompt construction and snippet packing."""

import pytest

from graphfill.models import ContextSnippet, DocumentContext
from graphfill.prompt import PromptBuilder, messages_to_text


@pytest.fixture
def builder():
    return PromptBuilder()


@pytest.fixture
def document():
    return DocumentContext(
        uri="file:///repo/src/main.py",
        language_id="python",
        prefix="def main():\n    value = ",
        suffix="\n    return value\n",
    )


def test_prompt_shape(builder, document):
    """Test the message turns and the fill-in-the-middle region."""
    prompt = builder.build(document, [], total_chars=10_000)

    human, assistant = prompt.messages
    assert human.speaker == "human"
    assert assistant.speaker == "assistant"
    assert assistant.text == "<|fim|>"
    assert "<|prefix|>def main():\n    value = <|fim|>\n    return value\n<|suffix|>" in human.text
    assert "Code from /repo/src/main.py file:" in human.text
    assert "Context:" not in human.text
    assert prompt.packed == []


def test_workspace_relative_path(document):
    """Test that file paths are shown relative to the workspace."""
    from pathlib import Path

    prompt = PromptBuilder(Path("/repo")).build(document, [], total_chars=10_000)

    assert "Code from src/main.py file:" in prompt.messages[0].text


def test_snippet_block_format(builder):
    """Test the block format for symbol and file snippets."""
    symbol = ContextSnippet(source_uri="file:///repo/a.py", content="def alpha():\n    pass\n\n", symbol_name="alpha")
    file = ContextSnippet(source_uri="file:///repo/b.py", content="x = 1")

    assert builder.format_snippet(symbol) == "\n-TYPE: symbol\n-NAME: alpha\n-CONTENT: def alpha():\n    pass\n---\n"
    assert builder.format_snippet(file) == "\n-TYPE: file\n-NAME: /repo/b.py\n-CONTENT: x = 1\n---\n"


def test_all_snippets_fit(builder, document, snippets):
    """Test that everything is packed when the budget allows."""
    prompt = builder.build(document, snippets, total_chars=100_000)

    assert prompt.packed == snippets
    text = prompt.messages[0].text
    assert "Context:\n" in text
    assert text.index("-NAME: alpha") < text.index("-NAME: /repo/b.py") < text.index("-NAME: gamma")


def test_stop_on_first_miss(builder, document, snippets):
    """Test that packing stops at the first snippet that does not fit."""
    first_block = len(builder.format_snippet(snippets[0]))
    budget = builder.budget_for(document, 0).fixed_chars + first_block + 1

    prompt = builder.build(document, snippets, total_chars=budget)

    # snippets[2] is small enough to fit but comes after the one that missed
    assert len(builder.format_snippet(snippets[2])) + 1 <= budget - prompt.budget.fixed_chars
    assert prompt.packed == [snippets[0]]
    assert "gamma" not in prompt.messages[0].text


def test_prompt_stays_within_budget(builder, document, snippets):
    """Test that the rendered prompt never exceeds the budget."""
    fixed = builder.budget_for(document, 0).fixed_chars

    for total in range(fixed, fixed + 600, 7):
        prompt = builder.build(document, snippets, total_chars=total)
        assert len(messages_to_text(prompt.messages)) <= total


def test_packing_is_deterministic(builder, document, snippets):
    """Test that the same input always packs the same snippets."""
    fixed = builder.budget_for(document, 0).fixed_chars

    for extra in (0, 50, 120, 400, 2000):
        first = builder.build(document, snippets, total_chars=fixed + extra)
        second = builder.build(document, snippets, total_chars=fixed + extra)
        assert first.packed == second.packed
        assert first.text == second.text
        assert first.packed == snippets[: len(first.packed)]


def test_budget_smaller_than_fixed_prompt(builder, document, snippets):
    """Test that no snippets are packed when the fixed prompt uses the whole budget."""
    prompt = builder.build(document, snippets, total_chars=10)

    assert prompt.packed == []
    assert prompt.budget.remaining < 0


def test_prefix_components(builder, document):
    """Test that the prompt carries the head/tail split of the prefix."""
    prompt = builder.build(document, [], total_chars=10_000)

    assert prompt.prefix.tail == "def main():\n    value ="
    assert prompt.prefix.head == ""


def test_document_positions_are_clamped():
    """Test building documents from positions and offsets."""
    text = "ab\ncd\n"

    assert DocumentContext.from_text("file:///x.py", "python", text, line=1, character=1).prefix == "ab\nc"
    assert DocumentContext.from_text("file:///x.py", "python", text, line=1, character=99).prefix == "ab\ncd"
    assert DocumentContext.from_text("file:///x.py", "python", text, line=99, character=0).suffix == ""
    assert DocumentContext.from_offset("file:///x.py", "python", text, 4).current_line_prefix == "c"
    assert DocumentContext.from_offset("file:///x.py", "python", text, -5).prefix == ""
