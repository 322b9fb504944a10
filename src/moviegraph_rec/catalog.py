"""
Allow-listed writes for catalog nodes.

Updates are a typed field-to-value mapping checked against the properties a
label is allowed to change. Key properties (title, name, userId) are never
mutable through an update; rename by deleting and re-creating the node.
"""
from __future__ import annotations

import logging
from typing import Any

from .errors import InvalidInput
from .models import NodeLabel, Relation

logger = logging.getLogger(__name__)

MUTABLE_PROPERTIES: dict[NodeLabel, dict[str, type]] = {
    NodeLabel.MOVIE: {
        "year": int,
        "runtime": int,
        "original_language": str,
        "release_date": str,
    },
    NodeLabel.USER: {"name": str},
    NodeLabel.ACTOR: {"birthYear": int},
    NodeLabel.GENRE: {},
    NodeLabel.DIRECTOR: {},
}


def validate_updates(label: NodeLabel, updates: dict[str, Any]) -> dict[str, Any]:
    """
    Check an update mapping against the label's allow-list.

    ``None`` values are allowed and clear the property.

    Raises:
        InvalidInput: unknown field, key property, or wrong value type
    """
    if not updates:
        raise InvalidInput(f"No updates given for {label.value}")

    allowed = MUTABLE_PROPERTIES[label]
    clean: dict[str, Any] = {}
    for name, value in updates.items():
        if name == label.key_property:
            raise InvalidInput(f"{label.value}.{name} is the node key and cannot be updated")
        expected = allowed.get(name)
        if expected is None:
            raise InvalidInput(
                f"{label.value}.{name} is not updatable (allowed: {', '.join(sorted(allowed)) or 'none'})"
            )
        if value is not None:
            # bool is an int subclass; reject it for numeric fields
            if isinstance(value, bool) or not isinstance(value, expected):
                raise InvalidInput(
                    f"{label.value}.{name} expects {expected.__name__}, got {type(value).__name__}"
                )
        clean[name] = value
    return clean


def validate_node_properties(label: NodeLabel, properties: dict[str, Any]) -> dict[str, Any]:
    """Validate properties supplied when creating a node (key + allow-listed fields)."""
    key = properties.get(label.key_property)
    if not isinstance(key, str) or not key:
        raise InvalidInput(f"{label.value} requires a non-empty '{label.key_property}'")
    extra = {k: v for k, v in properties.items() if k != label.key_property}
    clean = validate_updates(label, extra) if extra else {}
    return {label.key_property: key, **clean}


def validate_rating(relation: Relation, rating: Any) -> float | None:
    """Ratings live only on RATED edges and must be positive numbers."""
    if relation != Relation.RATED:
        if rating is not None:
            raise InvalidInput(f"{relation.value} edges do not carry a rating")
        return None
    if isinstance(rating, bool) or not isinstance(rating, (int, float)):
        raise InvalidInput(f"rating must be numeric, got {rating!r}")
    if rating <= 0:
        raise InvalidInput(f"rating must be positive, got {rating}")
    return float(rating)
