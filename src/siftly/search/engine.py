"""Search engine handle owned by the host application.

The engine keeps one immutable `SearchIndex` per entity type. The host calls
`refresh_index` after any create/update/delete; the new indexes are built off
to the side and swapped in with a single reference assignment, so a search
already running keeps reading the indexes it started with.
"""

from __future__ import annotations

import logging
import threading
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from siftly.config import Settings, load_settings
from siftly.exceptions import IndexUnavailableError, InvalidRequestError
from siftly.search.aggregator import AggregatedResult, SearchRequest, aggregate, validate_request
from siftly.search.fields import (
    EntityType,
    FieldDecl,
    FieldModel,
    build_field_model,
    default_field_model,
)
from siftly.search.highlighter import Segment, render_highlights, to_markup
from siftly.search.index import IndexEntry, SearchIndex, build_index
from siftly.search.matcher import Matcher
from siftly.search.normalizer import normalize
from siftly.search.scorer import MatchSpan, ScoredResult

logger = logging.getLogger(__name__)

Snapshot = Mapping[Union[EntityType, str], Optional[Iterable[Any]]]
FieldsByType = Mapping[Union[EntityType, str], Iterable[FieldDecl]]


class SearchEngine:
    """Fuzzy search over task, list and label snapshots.

    Parameters
    ----------
    fields_by_type:
        Searchable fields per entity type, in type-priority order. Defaults to
        the field model in `settings.search.fields`.
    settings:
        Loaded settings; `load_settings()` is used when omitted.
    """

    def __init__(
        self,
        fields_by_type: Optional[FieldsByType] = None,
        *,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or load_settings()
        if fields_by_type is None:
            self.fields: FieldModel = default_field_model(self.settings.search)
        else:
            self.fields = build_field_model(fields_by_type)
        self._indexes: Optional[Mapping[EntityType, SearchIndex]] = None
        self._refresh_lock = threading.Lock()

    # ----- Index lifecycle -----

    @property
    def ready(self) -> bool:
        return self._indexes is not None

    @property
    def indexes(self) -> Mapping[EntityType, SearchIndex]:
        """The active indexes. Raises `IndexUnavailableError` before the first load."""
        indexes = self._indexes
        if indexes is None:
            raise IndexUnavailableError(
                "Search index is not loaded; call refresh_index() or initialize() first."
            )
        return indexes

    def refresh_index(self, snapshot: Snapshot) -> None:
        """Rebuild every index from `snapshot` and swap them in atomically.

        Entity types missing from the snapshot get an empty index. Snapshot
        keys that name no declared type are ignored.
        """
        collections: Dict[EntityType, Optional[Iterable[Any]]] = {}
        for key, records in snapshot.items():
            try:
                entity_type = EntityType(key)
            except ValueError:
                logger.warning("Ignoring snapshot collection for unknown entity type %r", key)
                continue
            if entity_type not in self.fields:
                logger.warning(
                    "Ignoring snapshot collection %r: no searchable fields declared", key
                )
                continue
            collections[entity_type] = records

        soft_delete_keys = tuple(self.settings.search.soft_delete_keys)
        with self._refresh_lock:
            built = {
                t: build_index(
                    collections.get(t), t, fields, soft_delete_keys=soft_delete_keys
                )
                for t, fields in self.fields.items()
            }
            self._indexes = MappingProxyType(built)
        logger.info(
            "Search index refreshed: %s",
            ", ".join(f"{t.value}={len(idx)}" for t, idx in built.items()),
        )

    def entry(self, entity_type: Union[EntityType, str], entity_id: Any) -> Optional[IndexEntry]:
        """Look up an indexed record by type and id."""
        indexes = self.indexes
        try:
            entity_type = EntityType(entity_type)
        except ValueError as exc:
            raise InvalidRequestError(f"Unknown entity type: {entity_type!r}") from exc
        index = indexes.get(entity_type)
        return index.get(entity_id) if index is not None else None

    # ----- Searching -----

    def build_request(self, query: Optional[str], **kwargs: Any) -> SearchRequest:
        """Create a request, filling limits from settings when not given."""
        cfg = self.settings.search
        params: Dict[str, Any] = {
            "limit_total": cfg.default_limit_total,
            "limit_per_type": cfg.default_limit_per_type,
        }
        params.update(kwargs)
        return SearchRequest.parse(query=query, **params)

    def search(
        self, request: Union[SearchRequest, str, None], **kwargs: Any
    ) -> AggregatedResult:
        """Search all selected entity types and return ranked, limited results.

        `request` may be a `SearchRequest` or a bare query string, in which case
        keyword arguments become request fields.
        """
        indexes = self.indexes
        if not isinstance(request, SearchRequest):
            request = self.build_request(request, **kwargs)
        elif kwargs:
            raise InvalidRequestError("Keyword overrides are only accepted with a query string.")

        cfg = self.settings.search
        validate_request(request, self.fields, cfg)
        threshold = cfg.threshold if request.threshold is None else request.threshold
        matcher = Matcher(threshold=threshold, min_length=cfg.min_query_length)
        return aggregate(indexes, self.fields, request, matcher)

    def quick_search(self, query: Optional[str]) -> AggregatedResult:
        """As-you-type preview: looser threshold and a small per-type limit."""
        cfg = self.settings.search
        return self.search(
            query,
            limit_per_type=cfg.quick_limit,
            limit_total=cfg.quick_limit * len(self.fields),
            threshold=cfg.quick_threshold,
        )

    def suggestions(self, partial_query: Optional[str]) -> List[str]:
        """Distinct matched field values across all types, for autocomplete."""
        cfg = self.settings.search
        if len(normalize(partial_query)) < cfg.min_query_length:
            return []
        found: List[str] = []
        for result in self.quick_search(partial_query).merged:
            for key in result.matched_fields():
                value = result.values.get(key)
                if value is not None and value not in found:
                    found.append(value)
                    if len(found) >= cfg.suggestion_limit:
                        return found
        return found

    def search_exact(
        self,
        entity_type: Union[EntityType, str],
        field_key: str,
        value: Any,
        *,
        include_soft_deleted: bool = True,
    ) -> List[ScoredResult]:
        """Entities whose field equals `value`, ignoring case and extra whitespace."""
        indexes = self.indexes
        try:
            entity_type = EntityType(entity_type)
        except ValueError as exc:
            raise InvalidRequestError(f"Unknown entity type: {entity_type!r}") from exc
        fields = self.fields.get(entity_type, ())
        if not any(f.key == field_key for f in fields):
            raise InvalidRequestError(
                f"Field {field_key!r} is not searchable for {entity_type.value}."
            )
        target = normalize(value)
        if not target:
            return []

        results: List[ScoredResult] = []
        for entry in indexes[entity_type]:
            if entry.soft_deleted and not include_soft_deleted:
                continue
            raw = entry.raw_values.get(field_key)
            if raw is None or normalize(raw) != target:
                continue
            start = len(raw) - len(raw.lstrip())
            end = len(raw.rstrip())
            results.append(
                ScoredResult(
                    id=entry.id,
                    type=entity_type,
                    score=0.0,
                    matches=(MatchSpan(field_key, start, end),),
                    position=entry.position,
                    values=entry.raw_values,
                )
            )
        return results

    # ----- Highlighting -----

    def highlights(self, result: ScoredResult) -> Dict[str, List[Segment]]:
        """Segments of every matched field of `result`, keyed by field."""
        out: Dict[str, List[Segment]] = {}
        for key in result.matched_fields():
            spans = [s for s in result.matches if s.field_key == key]
            out[key] = render_highlights(result.values.get(key, ""), spans)
        return out

    def search_with_highlights(
        self, request: Union[SearchRequest, str, None], **kwargs: Any
    ) -> Tuple[AggregatedResult, Dict[Tuple[EntityType, Any], List[str]]]:
        """Search, then render each result's matched fields as `<mark>` markup."""
        aggregated = self.search(request, **kwargs)
        markup: Dict[Tuple[EntityType, Any], List[str]] = {}
        for result in aggregated.merged:
            markup[(result.type, result.id)] = [
                to_markup(segments) for segments in self.highlights(result).values()
            ]
        return aggregated, markup


def initialize(
    fields_by_type: Optional[FieldsByType],
    snapshot: Snapshot,
    *,
    settings: Optional[Settings] = None,
) -> SearchEngine:
    """Create an engine, validate its field model and load the first snapshot."""
    engine = SearchEngine(fields_by_type, settings=settings)
    engine.refresh_index(snapshot)
    return engine
