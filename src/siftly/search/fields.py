"""Entity types, search scopes and the per-type searchable field model.

The field model is declared once when an engine is created and validated
up front; searches never re-interpret it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Tuple, Union

from siftly.config import FieldSpec, SearchConfig
from siftly.exceptions import ConfigError


class EntityType(str, Enum):
    """The three searchable record kinds."""

    TASK = "task"
    LIST = "list"
    LABEL = "label"


class Scope(str, Enum):
    """Restricts a search to one entity type or all of them."""

    ALL = "all"
    TASKS = "tasks"
    LISTS = "lists"
    LABELS = "labels"

    def entity_types(self, declared: Iterable[EntityType]) -> List[EntityType]:
        """Expand the scope against the declared types, keeping declaration order."""
        declared = list(declared)
        if self is Scope.ALL:
            return declared
        target = _SCOPE_TYPES[self]
        return [t for t in declared if t is target]


_SCOPE_TYPES = {
    Scope.TASKS: EntityType.TASK,
    Scope.LISTS: EntityType.LIST,
    Scope.LABELS: EntityType.LABEL,
}


@dataclass(frozen=True, slots=True)
class SearchableField:
    """An attribute that participates in search, with its relative importance."""

    key: str
    weight: float = 1.0


FieldModel = Dict[EntityType, Tuple[SearchableField, ...]]
FieldDecl = Union[SearchableField, FieldSpec, Tuple[str, float], Mapping[str, Any], str]


def _coerce_field(decl: FieldDecl) -> SearchableField:
    if isinstance(decl, SearchableField):
        return decl
    if isinstance(decl, FieldSpec):
        return SearchableField(decl.key, float(decl.weight))
    if isinstance(decl, str):
        return SearchableField(decl, 1.0)
    if isinstance(decl, Mapping):
        return SearchableField(str(decl.get("key") or ""), float(decl.get("weight", 1.0)))
    try:
        key, weight = decl
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Unrecognised field declaration: {decl!r}") from exc
    return SearchableField(str(key), float(weight))


def _coerce_type(value: Union[EntityType, str]) -> EntityType:
    try:
        return EntityType(value)
    except ValueError as exc:
        raise ConfigError(f"Unknown entity type: {value!r}") from exc


def build_field_model(
    fields_by_type: Mapping[Union[EntityType, str], Iterable[FieldDecl]],
) -> FieldModel:
    """Validate a field declaration and freeze it into a `FieldModel`.

    Declaration order of the types is preserved; it is the type priority
    used to break score ties.

    Raises
    ------
    ConfigError
        If no type is declared, a type is unknown or declared without fields,
        a key is empty or repeated, or a weight is not positive.
    """
    if not fields_by_type:
        raise ConfigError("At least one entity type must declare searchable fields.")

    model: FieldModel = {}
    for raw_type, decls in fields_by_type.items():
        entity_type = _coerce_type(raw_type)
        if entity_type in model:
            raise ConfigError(f"Entity type declared twice: {entity_type.value}")
        fields = tuple(_coerce_field(d) for d in decls)
        if not fields:
            raise ConfigError(f"Entity type {entity_type.value} declares no searchable fields.")
        seen = set()
        for f in fields:
            if not f.key or not f.key.strip():
                raise ConfigError(f"Empty field key for entity type {entity_type.value}.")
            if f.key in seen:
                raise ConfigError(f"Duplicate field {f.key!r} for entity type {entity_type.value}.")
            if not f.weight > 0:
                raise ConfigError(
                    f"Field {f.key!r} of {entity_type.value} must have a positive weight, got {f.weight}."
                )
            seen.add(f.key)
        model[entity_type] = fields
    return model


def default_field_model(config: SearchConfig) -> FieldModel:
    """Field model declared in settings (`SIFTLY_SEARCH__FIELDS`)."""
    return build_field_model(config.fields)
