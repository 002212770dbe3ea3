"""Named filter to positional slot translation.

A namespace declares an ordered list of filter names (at most ``MAX_FILTERS``).
A filter value is stored under ``filter{i}`` where ``i`` is its name's index in
that list. Values are arbitrary JSON-able data, encoded to a canonical JSON
string so the vector/text indexes can match them by equality.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from typing import Any

from qdrant_client import models as q

from rag_memory.core.constants import FILTER_FIELD_NAMES, MAX_FILTERS
from rag_memory.core.exceptions import UnknownFilterError, ValidationException
from rag_memory.core.logging import get_logger
from rag_memory.core.models import NamedFilter, NumberedFilter

logger = get_logger(__name__)


def validate_filter_names(filter_names: Iterable[str]) -> tuple[str, ...]:
    """Validate a namespace filter schema.

    Raises:
        ValidationException: Too many, duplicate or empty names.
    """
    names = tuple(filter_names)
    if len(names) > MAX_FILTERS:
        raise ValidationException(
            f"At most {MAX_FILTERS} filter names are supported, got {len(names)}"
        )
    if any(not name for name in names):
        raise ValidationException("Filter names must be non-empty strings")
    if len(set(names)) != len(names):
        raise ValidationException(f"Filter names must be unique, got {list(names)}")
    return names


def encode_filter_value(value: Any) -> str:
    """Canonical JSON encoding; equal values always encode identically."""
    try:
        return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    except TypeError as exc:
        raise ValidationException(f"Filter value is not JSON serializable: {value!r}") from exc


def filter_field(index: int) -> str:
    return FILTER_FIELD_NAMES[index]


def numbered_filters_from_named(
    filters: Iterable[NamedFilter],
    filter_names: Sequence[str],
    *,
    strict: bool = False,
) -> list[NumberedFilter]:
    """Resolve named filters against a namespace's filter schema.

    Unknown names are dropped with a warning, or raise when ``strict``.

    Args:
        filters: Filters addressed by name.
        filter_names: The namespace's ordered filter schema.
        strict: Raise ``UnknownFilterError`` instead of dropping unknown names.

    Returns:
        Filters addressed by slot, in input order.
    """
    slots = {name: index for index, name in enumerate(filter_names)}
    numbered: list[NumberedFilter] = []
    for named in filters:
        index = slots.get(named.name)
        if index is None:
            if strict:
                raise UnknownFilterError(named.name, tuple(filter_names))
            logger.warning(
                "Dropping unknown filter %r; namespace declares %s",
                named.name,
                list(filter_names),
            )
            continue
        numbered.append(NumberedFilter(index=index, value=named.value))
    return numbered


def filter_payload(filters: Iterable[NumberedFilter]) -> dict[str, str]:
    """Positional payload fields for a chunk; a later value for a slot wins."""
    return {filter_field(f.index): encode_filter_value(f.value) for f in filters}


def filter_condition(numbered: NumberedFilter) -> q.FieldCondition:
    return q.FieldCondition(
        key=filter_field(numbered.index),
        match=q.MatchValue(value=encode_filter_value(numbered.value)),
    )


def any_filter_matches(filters: Sequence[NumberedFilter]) -> list[q.Condition]:
    """Conditions OR'ing the given filters, for use as ``Filter.should``."""
    return [filter_condition(f) for f in filters]
