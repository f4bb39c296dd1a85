"""Siftly: fuzzy, weighted search across tasks, lists and labels."""

from siftly.search import (
    AggregatedResult,
    EntityType,
    Scope,
    SearchableField,
    SearchEngine,
    SearchRequest,
    initialize,
)

__all__ = [
    "AggregatedResult",
    "EntityType",
    "Scope",
    "SearchableField",
    "SearchEngine",
    "SearchRequest",
    "initialize",
]
