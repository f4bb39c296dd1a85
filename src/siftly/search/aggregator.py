"""Cross-type aggregation: score every selected index, rank, and apply limits."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from siftly.config import SearchConfig
from siftly.exceptions import InvalidRequestError
from siftly.search.fields import EntityType, FieldModel, Scope
from siftly.search.index import SearchIndex
from siftly.search.matcher import Matcher
from siftly.search.scorer import ScoredResult, score_entity

logger = logging.getLogger(__name__)


class SearchRequest(BaseModel):
    """Parameters of one search.

    Limits must be positive. `threshold`, when set, overrides the configured
    acceptance threshold for this request only.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    query: str = ""
    scope: Scope = Scope.ALL
    limit_total: int = Field(default=50, gt=0)
    limit_per_type: int = Field(default=20, gt=0)
    include_soft_deleted: bool = False
    threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @field_validator("query", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @classmethod
    def parse(cls, **kwargs: Any) -> SearchRequest:
        """Build a request, raising `InvalidRequestError` on bad input."""
        try:
            return cls(**kwargs)
        except ValidationError as exc:
            raise InvalidRequestError(f"Invalid search request: {exc}") from exc


@dataclass(frozen=True, slots=True)
class AggregatedResult:
    """Ranked results per entity type plus the merged global ranking.

    `total` counts what is actually returned, after every limit. `rejected`
    carries the reason when the query was too short to search.
    """

    per_type: Mapping[EntityType, Tuple[ScoredResult, ...]] = field(default_factory=dict)
    total: int = 0
    merged: Tuple[ScoredResult, ...] = ()
    rejected: Optional[str] = None

    @classmethod
    def empty(cls, rejected: Optional[str] = None) -> AggregatedResult:
        return cls(per_type={}, total=0, merged=(), rejected=rejected)

    def results(self, entity_type: EntityType) -> Tuple[ScoredResult, ...]:
        """Results for one type; empty when the type was not searched."""
        return self.per_type.get(entity_type, ())


def validate_request(request: SearchRequest, fields: FieldModel, config: SearchConfig) -> None:
    """Check request bounds that depend on configuration and the field model."""
    if len(request.query) > config.max_query_length:
        raise InvalidRequestError(
            f"Query is longer than {config.max_query_length} characters."
        )
    for name in ("limit_total", "limit_per_type"):
        if getattr(request, name) > config.max_limit:
            raise InvalidRequestError(f"{name} must not exceed {config.max_limit}.")
    if not request.scope.entity_types(fields):
        raise InvalidRequestError(
            f"Scope {request.scope.value!r} names an entity type with no searchable fields."
        )


def aggregate(
    indexes: Mapping[EntityType, SearchIndex],
    fields: FieldModel,
    request: SearchRequest,
    matcher: Matcher,
) -> AggregatedResult:
    """Run a validated request over the given indexes.

    Results within a type are sorted by score, then collection order, and cut
    to `limit_per_type`. If the kept results still exceed `limit_total`, the
    merged list (ordered by score, type priority, collection order) is cut
    and each type keeps only its surviving results.
    """
    compiled = matcher.compile(request.query)
    if compiled is None:
        reason = f"query shorter than {matcher.min_length} characters"
        logger.debug("Rejected search: %s", reason)
        return AggregatedResult.empty(rejected=reason)

    started = time.perf_counter()
    priority = {t: i for i, t in enumerate(fields)}

    def rank(result: ScoredResult) -> Tuple[float, int, int]:
        return (result.score, priority[result.type], result.position)

    selected = request.scope.entity_types(fields)
    kept: List[ScoredResult] = []
    for entity_type in selected:
        index = indexes.get(entity_type)
        if index is None:
            continue
        type_fields = fields[entity_type]
        hits: List[ScoredResult] = []
        for entry in index:
            if entry.soft_deleted and not request.include_soft_deleted:
                continue
            result = score_entity(entry, compiled, type_fields)
            if result is not None:
                hits.append(result)
        hits.sort(key=rank)
        kept.extend(hits[: request.limit_per_type])

    merged = sorted(kept, key=rank)[: request.limit_total]
    per_type: Dict[EntityType, List[ScoredResult]] = {t: [] for t in selected}
    for result in merged:
        per_type[result.type].append(result)

    logger.debug(
        "Search %r scope=%s returned %d results in %.1f ms",
        request.query,
        request.scope.value,
        len(merged),
        (time.perf_counter() - started) * 1000,
    )
    return AggregatedResult(
        per_type={t: tuple(r) for t, r in per_type.items()},
        total=len(merged),
        merged=tuple(merged),
    )
