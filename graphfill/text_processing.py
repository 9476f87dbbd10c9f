"""Helpers for splitting prompts and cleaning up model output."""

from dataclasses import dataclass
from typing import Optional

from graphfill.constants import BAD_COMPLETION_START

# Number of non-empty lines that make up the tail of a prefix
TAIL_THRESHOLD = 2


@dataclass
class PrefixComponents:
    """The document prefix split into the part before and after its last lines.

    Attributes:
        head: Everything before the tail, trailing whitespace removed
        tail: The last TAIL_THRESHOLD non-empty lines
        overlap: Set when the prefix is too short to split, in which case head
            and tail are the same text
    """

    head: str
    tail: str
    overlap: Optional[str] = None


def get_head_and_tail(prefix: str) -> PrefixComponents:
    """Split a prefix at its last two non-empty lines."""
    lines = prefix.split("\n")
    non_empty = 0
    tail_start = -1

    for i in range(len(lines) - 1, -1, -1):
        if lines[i].strip():
            non_empty += 1
        if non_empty >= TAIL_THRESHOLD:
            tail_start = i
            break

    if tail_start == -1:
        return PrefixComponents(head=prefix.rstrip(), tail=prefix.rstrip(), overlap=prefix)

    return PrefixComponents(
        head="\n".join(lines[:tail_start]).rstrip(),
        tail="\n".join(lines[tail_start:]).rstrip(),
    )


def fix_bad_completion_start(completion: str) -> str:
    """Remove emoji, zero-width spaces and list bullets from the start of a completion."""
    return BAD_COMPLETION_START.sub("", completion, count=1)


def first_line(completion: str) -> Optional[str]:
    """The first line of a completion, or None while that line is still open."""
    if "\n" not in completion:
        return None
    return completion.split("\n", 1)[0]
