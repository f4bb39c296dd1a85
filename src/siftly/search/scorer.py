"""Weighted multi-field scoring of a single indexed entity."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Sequence, Tuple, Union

from siftly.search.fields import EntityType, SearchableField
from siftly.search.matcher import CompiledQuery, Matcher

if TYPE_CHECKING:
    from siftly.search.index import IndexEntry


@dataclass(frozen=True, slots=True)
class MatchSpan:
    """Half-open range `[start, end)` into the raw value of `field_key`."""

    field_key: str
    start: int
    end: int


@dataclass(frozen=True, slots=True)
class ScoredResult:
    """A matched entity. Lower scores are better: 0 is perfect, 1 is no match."""

    id: Any
    type: EntityType
    score: float
    matches: Tuple[MatchSpan, ...] = field(default_factory=tuple)
    # Position of the record in its source collection; used for tie-breaks
    position: int = 0
    # Raw field values of the entry as indexed; spans index into these
    values: Mapping[str, str] = field(default_factory=dict, repr=False, compare=False)

    def matched_fields(self) -> List[str]:
        """Keys of the fields that matched, in declaration order."""
        keys: List[str] = []
        for span in self.matches:
            if span.field_key not in keys:
                keys.append(span.field_key)
        return keys


def score_entity(
    entry: IndexEntry,
    query: Union[str, CompiledQuery],
    fields: Sequence[SearchableField],
    *,
    matcher: Optional[Matcher] = None,
) -> Optional[ScoredResult]:
    """Score an entry against a query over its declared fields.

    The entity score is the minimum of `cost / weight` over matching fields,
    clamped to [0, 1]. Spans from every matching field are kept. Returns None
    when no field matches or the query is too short to match.
    """
    if not isinstance(query, CompiledQuery):
        compiled = (matcher or Matcher()).compile(query)
        if compiled is None:
            return None
        query = compiled

    best: Optional[float] = None
    spans: List[MatchSpan] = []
    for f in fields:
        value = entry.normalized_values.get(f.key)
        if not value:
            continue
        outcome = query.match(value)
        if outcome is None:
            continue
        weighted = outcome.cost / f.weight
        if best is None or weighted < best:
            best = weighted
        spans.extend(MatchSpan(f.key, start, end) for start, end in outcome.spans)

    if best is None:
        return None
    return ScoredResult(
        id=entry.id,
        type=entry.type,
        score=min(1.0, max(0.0, best)),
        matches=tuple(spans),
        position=entry.position,
        values=entry.raw_values,
    )
