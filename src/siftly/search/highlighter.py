"""Slice raw field text into plain and highlighted segments."""

from __future__ import annotations

import html
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple, Union

from siftly.exceptions import HighlightError
from siftly.search.scorer import MatchSpan


@dataclass(frozen=True, slots=True)
class Segment:
    text: str
    highlighted: bool = False


def _bounds(span: Union[MatchSpan, Tuple[int, int]]) -> Tuple[int, int]:
    if isinstance(span, MatchSpan):
        return span.start, span.end
    start, end = span
    return start, end


def render_highlights(
    raw_text: str, spans: Sequence[Union[MatchSpan, Tuple[int, int]]]
) -> List[Segment]:
    """Split `raw_text` into alternating plain/highlighted segments.

    Concatenating the segments reproduces `raw_text` exactly. Spans must be
    sorted, non-overlapping and inside the text; anything else raises
    `HighlightError` rather than producing corrupt output.
    """
    segments: List[Segment] = []
    cursor = 0
    for span in spans:
        start, end = _bounds(span)
        if not 0 <= start < end <= len(raw_text):
            raise HighlightError(
                f"Span [{start}, {end}) is outside text of length {len(raw_text)}."
            )
        if start < cursor:
            raise HighlightError(f"Span [{start}, {end}) overlaps or precedes a previous span.")
        if start > cursor:
            segments.append(Segment(raw_text[cursor:start]))
        segments.append(Segment(raw_text[start:end], highlighted=True))
        cursor = end
    if cursor < len(raw_text):
        segments.append(Segment(raw_text[cursor:]))
    return segments


def to_markup(segments: Iterable[Segment], *, tag: str = "mark") -> str:
    """Render segments as HTML, wrapping highlighted runs in `<tag>`."""
    parts = []
    for seg in segments:
        text = html.escape(seg.text)
        parts.append(f"<{tag}>{text}</{tag}>" if seg.highlighted else text)
    return "".join(parts)
