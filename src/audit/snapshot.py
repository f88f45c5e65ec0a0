"""Audit snapshot building for tracked entity changes.

Turns the property set of one changed entity into a compact JSON audit
record and exposes the entity's primary-key value for log correlation.
Operates on plain ``PropertyChange`` values only; callers decide which
fields are keys and which are audited.
"""

from __future__ import annotations

import base64
import dataclasses
import enum
import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any
from uuid import UUID

from .errors import (
    AuditSerializationError,
    CompositePrimaryKeyError,
    PrimaryKeyNotFoundError,
)

_UNCHANGED: Any = object()


@dataclass(frozen=True)
class PropertyChange:
    """One mapped field of a tracked entity.

    ``original_value`` defaults to ``current_value`` when omitted, which is
    the shape of an inserted entity.
    """

    name: str
    current_value: Any = None
    original_value: Any = _UNCHANGED
    is_key: bool = False
    is_audited: bool = True

    def __post_init__(self) -> None:
        if self.original_value is _UNCHANGED:
            object.__setattr__(self, "original_value", self.current_value)

    @property
    def value_changed(self) -> bool:
        """Return True when original and current values differ."""
        return self.original_value != self.current_value


def get_primary_key(entity_properties: Iterable[PropertyChange]) -> Any:
    """Return the current value of the entity's single primary key property.

    Raises:
        PrimaryKeyNotFoundError: No property is marked as a key.
        CompositePrimaryKeyError: More than one property is marked as a key.
    """
    keys = [prop for prop in entity_properties if prop.is_key]
    if not keys:
        raise PrimaryKeyNotFoundError()
    if len(keys) > 1:
        raise CompositePrimaryKeyError([prop.name for prop in keys])
    return keys[0].current_value


def audit_values(
    entity_properties: Iterable[PropertyChange],
    use_current_values: bool = True,
) -> dict[str, Any]:
    """Map audited property names to their current or original values."""
    return {
        prop.name: prop.current_value if use_current_values else prop.original_value
        for prop in entity_properties
        if prop.is_audited
    }


def to_audit_json(
    entity_properties: Iterable[PropertyChange],
    use_current_values: bool = True,
) -> str:
    """Serialize audited properties to a compact JSON object string.

    Key order follows input order. Date and time values are written as
    ISO-8601 strings.

    Raises:
        AuditSerializationError: A value cannot be represented in JSON.
    """
    values = audit_values(entity_properties, use_current_values)
    try:
        return json.dumps(
            values,
            default=_encode_value,
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
        )
    except (TypeError, ValueError, RecursionError) as exc:
        raise AuditSerializationError(f"Audit values are not JSON serializable: {exc}") from exc


def _encode_value(value: Any) -> Any:
    """Encode values the json module does not handle natively."""
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ValueError(f"Out of range decimal value: {value}")
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=repr)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {field.name: getattr(value, field.name) for field in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return dict(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
