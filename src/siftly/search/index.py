"""Immutable per-type search indexes built from record snapshots."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, Optional, Sequence, Tuple

from siftly.search.fields import EntityType, SearchableField
from siftly.search.normalizer import fold

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IndexEntry:
    """Searchable data for one record.

    `raw_values` keep the original text for highlighting; `normalized_values`
    hold the same text case-folded, character for character. Fields absent
    on the record are omitted from both.
    """

    id: Any
    type: EntityType
    position: int
    raw_values: Mapping[str, str]
    normalized_values: Mapping[str, str]
    soft_deleted: bool = False


@dataclass(frozen=True, slots=True)
class SearchIndex:
    """All entries of one entity type, in collection order. Never mutated."""

    type: EntityType
    entries: Tuple[IndexEntry, ...] = ()
    _by_id: Mapping[Any, IndexEntry] = field(default_factory=dict, repr=False, compare=False)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[IndexEntry]:
        return iter(self.entries)

    def get(self, entity_id: Any) -> Optional[IndexEntry]:
        """Return the entry with the given id, if indexed."""
        return self._by_id.get(entity_id)


def _read(record: Any, key: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(key)
    return getattr(record, key, None)


def _field_text(record: Any, key: str) -> Optional[str]:
    value = _read(record, key)
    if value is None:
        return None
    text = value if isinstance(value, str) else str(value)
    return text if text.strip() else None


def build_entry(
    record: Any,
    position: int,
    entity_type: EntityType,
    fields: Sequence[SearchableField],
    soft_delete_keys: Iterable[str] = (),
) -> IndexEntry:
    """Extract the declared fields of one record into an `IndexEntry`."""
    raw: Dict[str, str] = {}
    for f in fields:
        text = _field_text(record, f.key)
        if text is not None:
            raw[f.key] = text
    entity_id = _read(record, "id")
    return IndexEntry(
        id=position if entity_id is None else entity_id,
        type=entity_type,
        position=position,
        raw_values=MappingProxyType(raw),
        normalized_values=MappingProxyType({k: fold(v) for k, v in raw.items()}),
        soft_deleted=any(bool(_read(record, k)) for k in soft_delete_keys),
    )


def build_index(
    records: Optional[Iterable[Any]],
    entity_type: EntityType,
    fields: Sequence[SearchableField],
    *,
    soft_delete_keys: Iterable[str] = (),
) -> SearchIndex:
    """Build a fresh index for one entity type.

    Records may be mappings or objects exposing the declared fields as
    attributes. A record missing a field simply omits it; an empty snapshot
    yields an empty index.
    """
    keys = tuple(soft_delete_keys)
    entries = tuple(
        build_entry(record, pos, entity_type, fields, keys)
        for pos, record in enumerate(records or ())
    )
    by_id: Dict[Any, IndexEntry] = {}
    for entry in entries:
        by_id.setdefault(entry.id, entry)
    logger.debug("Built %s index with %d entries", entity_type.value, len(entries))
    return SearchIndex(type=entity_type, entries=entries, _by_id=MappingProxyType(by_id))
