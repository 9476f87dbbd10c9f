"""Identifier extraction for graph-context lookups."""

import re
from typing import Iterable, Optional

from graphfill.constants import (
    DEFAULT_IDENTIFIER_COUNT,
    HASH_COMMENT_LANGUAGES,
    LANGUAGE_KEYWORDS,
)
from graphfill.models import DocumentContext, LastCandidate

_IDENT = r"(?P<ident>[A-Za-z_$][A-Za-z0-9_$]*)"
_NUMBER = r"\d[\w.]*"
# Literals and comments still open where the text ends (the cursor) run to the end
_DQ = r'"(?:\\.|[^"\\\n])*"?'
_SQ = r"'(?:\\.|[^'\\\n])*'?"
_STRING_PREFIX = r"(?:[rRbBfFuU]{1,2})?"

_C_STYLE_TOKENS = re.compile(
    "|".join([
        r"//[^\n]*",
        r"/\*.*?(?:\*/|\Z)",
        _DQ,
        _SQ,
        r"`(?:\\.|[^`\\])*`?",
        _NUMBER,
        _IDENT,
    ]),
    re.DOTALL,
)
_HASH_STYLE_TOKENS = re.compile(
    "|".join([
        r"#[^\n]*",
        _STRING_PREFIX + r'"""(?:\\.|.)*?(?:"""|\Z)',
        _STRING_PREFIX + r"'''(?:\\.|.)*?(?:'''|\Z)",
        _STRING_PREFIX + _DQ,
        _STRING_PREFIX + _SQ,
        _NUMBER,
        _IDENT,
    ]),
    re.DOTALL,
)


def _tokenizer(language_id: str) -> re.Pattern:
    if language_id in HASH_COMMENT_LANGUAGES:
        return _HASH_STYLE_TOKENS
    return _C_STYLE_TOKENS


def last_n_identifiers(source: str, language_id: str, n: int = DEFAULT_IDENTIFIER_COUNT) -> list[str]:
    """Return the last n distinct identifiers in source, in occurrence order.

    Comments, string literals, numbers and language keywords are skipped.

    Args:
        source: Source text
        language_id: Editor language id of the source
        n: Maximum number of identifiers

    Returns:
        Up to n identifiers, ordered by their last occurrence
    """
    if n <= 0 or not source:
        return []

    keywords = LANGUAGE_KEYWORDS.get(language_id, set())
    tokens = [
        m.group("ident")
        for m in _tokenizer(language_id).finditer(source)
        if m.group("ident") and m.group("ident") not in keywords
    ]

    picked: list[str] = []
    seen: set[str] = set()
    for ident in reversed(tokens):
        if ident in seen:
            continue
        seen.add(ident)
        picked.append(ident)
        if len(picked) == n:
            break

    return list(reversed(picked))


def union_identifiers(*sources: Iterable[str]) -> list[str]:
    """Union identifier lists, keeping first-seen order and dropping duplicates."""
    return list(dict.fromkeys(ident for source in sources for ident in source))


def extract_identifiers(
    document: DocumentContext,
    last_candidate: Optional[LastCandidate] = None,
    n: int = DEFAULT_IDENTIFIER_COUNT,
) -> list[str]:
    """Candidate symbol names for a context query.

    The last candidate goes first: the model may already have guessed part of
    the right completion, and the symbols it used are worth looking up.

    Args:
        document: Document context at the cursor
        last_candidate: Completion shown most recently, if any
        n: Identifiers taken from each source

    Returns:
        Ordered, de-duplicated identifiers
    """
    from_candidate: list[str] = []
    if last_candidate is not None:
        candidate_line = (last_candidate.trigger_line_prefix or "") + (last_candidate.insert_text or "")
        from_candidate = last_n_identifiers(candidate_line, document.language_id, n)

    from_document = last_n_identifiers(document.prefix, document.language_id, n)

    return union_identifiers(from_candidate, from_document)
