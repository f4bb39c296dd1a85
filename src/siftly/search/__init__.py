"""Search engine components: matching, scoring, indexing and aggregation."""

from .aggregator import AggregatedResult, SearchRequest
from .engine import SearchEngine, initialize
from .fields import EntityType, Scope, SearchableField
from .highlighter import Segment, render_highlights, to_markup
from .index import IndexEntry, SearchIndex, build_index
from .matcher import Matcher, MatchOutcome
from .scorer import MatchSpan, ScoredResult, score_entity

__all__ = [
    "AggregatedResult",
    "EntityType",
    "IndexEntry",
    "MatchOutcome",
    "MatchSpan",
    "Matcher",
    "Scope",
    "ScoredResult",
    "SearchEngine",
    "SearchIndex",
    "SearchRequest",
    "SearchableField",
    "Segment",
    "build_index",
    "initialize",
    "render_highlights",
    "score_entity",
    "to_markup",
]
