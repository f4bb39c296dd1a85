"""Case folding and segmentation of searchable text.

`fold` is offset-preserving (one output character per input character) so
spans found in folded text index directly into the raw value. `normalize`
additionally collapses whitespace and is used for queries and equality.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional

from whoosh.analysis import RegexTokenizer

_tokenizer = RegexTokenizer()


@dataclass(frozen=True, slots=True)
class TextToken:
    """A lower-cased token and its character range in the source text."""

    text: str
    start: int
    end: int


def _fold_char(ch: str) -> str:
    low = ch.lower()
    # Some code points expand when lower-cased (e.g. U+0130); keep those as-is
    return low if len(low) == 1 else ch


def fold(text: Optional[Any]) -> str:
    """Ordinal, locale-insensitive lower-casing that never changes length."""
    if text is None:
        return ""
    return "".join(_fold_char(ch) for ch in str(text))


def normalize(text: Optional[Any]) -> str:
    """Lower-case, trim and collapse runs of whitespace to a single space."""
    return " ".join(fold(text).split())


def tokenize(text: Optional[Any]) -> List[TextToken]:
    """Split text into word tokens with character offsets."""
    if text is None:
        return []
    value = str(text)
    if not value.strip():
        return []
    # Whoosh reuses one Token object across the stream; copy out each value
    return [
        TextToken(fold(value[t.startchar : t.endchar]), t.startchar, t.endchar)
        for t in _tokenizer(value, positions=True, chars=True)
    ]
