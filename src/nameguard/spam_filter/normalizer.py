"""Reduce Discord display names to a canonical comparable form."""

from __future__ import annotations

import unicodedata
from collections.abc import Iterable

from nameguard.spam_filter.confusables import lookup

# Greek capital Xi doubles as an Ether sign in crypto community names
_PRESERVED_CHARS = frozenset("Ξ")

# Upper bound on re-normalization passes
_MAX_PASSES = 8


def normalize(raw: str) -> str:
    """Return the canonical form of *raw* used for impersonation matching.

    NFKC-normalizes, strips emoji/pictographs and whitespace, substitutes
    confusable characters with their Latin look-alike and lower-cases the
    result. The pipeline is re-applied until the output is stable, so the
    function is idempotent. Never raises; may return an empty string.
    """
    current = raw
    for _ in range(_MAX_PASSES):
        result = _single_pass(current)
        if result == current:
            break
        current = result
    return current


def canonical_names(names: Iterable[str | None]) -> set[str]:
    """Normalize a batch of names, skipping missing and empty results."""
    canonical: set[str] = set()
    for name in names:
        if not name:
            continue
        normalized = normalize(name)
        if normalized:
            canonical.add(normalized)
    return canonical


def _single_pass(text: str) -> str:
    text = unicodedata.normalize("NFKC", text)
    chars = [
        ch for ch in text if unicodedata.category(ch) != "So" and not ch.isspace()
    ]
    return "".join(_substitute(ch) for ch in chars).lower()


def _substitute(char: str) -> str:
    if _is_ascii_word(char) or char in _PRESERVED_CHARS:
        return char
    # Punctuation and symbols carry no letter shape to imitate
    if unicodedata.category(char)[0] in ("P", "S"):
        return char
    return lookup(char)


def _is_ascii_word(char: str) -> bool:
    return char.isascii() and (char.isalnum() or char == "_")
