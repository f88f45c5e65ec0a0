"""Unit tests for audit snapshot building."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import UUID

import pytest

from audit.errors import (
    AuditSerializationError,
    CompositePrimaryKeyError,
    PrimaryKeyNotFoundError,
    SerializationError,
)
from audit.snapshot import PropertyChange, get_primary_key, to_audit_json


def _entity() -> list[PropertyChange]:
    """Return the property set of an entity with one secret field."""
    return [
        PropertyChange(name="Id", current_value=42, is_key=True),
        PropertyChange(name="Name", current_value="TestName", original_value="TestName"),
        PropertyChange(name="Secret", current_value="Hidden", is_audited=False),
    ]


def test_primary_key_returns_current_key_value() -> None:
    """The key property's current value identifies the entity."""
    assert get_primary_key(_entity()) == 42


def test_audit_json_excludes_no_audit_properties() -> None:
    """Unaudited fields never reach the JSON snapshot."""
    payload = to_audit_json(_entity(), True)

    assert '"Name":"TestName"' in payload
    assert "Secret" not in payload
    assert "Hidden" not in payload


def test_audit_json_uses_original_values_when_requested() -> None:
    """Original values are written when current values are not requested."""
    properties = [
        PropertyChange(name="Id", current_value=2, is_key=True),
        PropertyChange(name="Name", current_value="Changed", original_value="Original"),
        PropertyChange(name="Secret", current_value="Hidden", is_audited=False),
    ]

    old_values = to_audit_json(properties, use_current_values=False)
    new_values = to_audit_json(properties, use_current_values=True)

    assert '"Name":"Original"' in old_values
    assert '"Name":"Changed"' in new_values
    assert "Secret" not in old_values
    assert "Secret" not in new_values


def test_empty_input_yields_empty_object_and_no_key() -> None:
    """An entity without properties serializes to {} and has no key."""
    assert to_audit_json([]) == "{}"
    with pytest.raises(LookupError, match="no primary key property found"):
        get_primary_key([])


def test_missing_key_raises_lookup_error() -> None:
    """Entities without key metadata are reported as a lookup failure."""
    properties = [PropertyChange(name="Name", current_value="x")]

    with pytest.raises(PrimaryKeyNotFoundError):
        get_primary_key(properties)


def test_unaudited_key_is_still_found() -> None:
    """The no-audit marker affects serialization only, not key lookup."""
    properties = [
        PropertyChange(name="Id", current_value=7, is_key=True, is_audited=False),
        PropertyChange(name="Name", current_value="flag"),
    ]

    assert get_primary_key(properties) == 7
    assert to_audit_json(properties) == '{"Name":"flag"}'


def test_composite_key_is_rejected() -> None:
    """More than one key property is rejected instead of picking the first."""
    properties = [
        PropertyChange(name="RoleId", current_value=1, is_key=True),
        PropertyChange(name="PermissionId", current_value=2, is_key=True),
    ]

    with pytest.raises(CompositePrimaryKeyError) as excinfo:
        get_primary_key(properties)

    assert isinstance(excinfo.value, LookupError)
    assert excinfo.value.key_names == ["RoleId", "PermissionId"]


def test_key_order_follows_input_order() -> None:
    """Serialized keys keep the tracking order of the input."""
    properties = [
        PropertyChange(name="Zeta", current_value=1),
        PropertyChange(name="Alpha", current_value=2),
        PropertyChange(name="Hidden", current_value=3, is_audited=False),
        PropertyChange(name="Mid", current_value=3),
    ]

    assert list(json.loads(to_audit_json(properties))) == ["Zeta", "Alpha", "Mid"]


def test_output_is_stable_across_calls() -> None:
    """Identical input produces byte-identical output."""
    properties = _entity()

    assert to_audit_json(properties) == to_audit_json(properties)
    assert to_audit_json(properties, False) == to_audit_json(properties, False)


@pytest.mark.parametrize(
    ("original", "current", "differs"),
    [
        ("same", "same", False),
        ("before", "after", True),
        (None, "set", True),
    ],
)
def test_current_and_original_snapshots_differ_only_on_change(
    original: object,
    current: object,
    differs: bool,
) -> None:
    """Snapshots in both modes differ exactly when an audited value changed."""
    properties = [
        PropertyChange(name="Id", current_value=1, is_key=True),
        PropertyChange(name="Name", current_value=current, original_value=original),
        PropertyChange(name="Secret", current_value="new", original_value="old", is_audited=False),
    ]

    changed = to_audit_json(properties, True) != to_audit_json(properties, False)

    assert changed is differs


def test_primitive_values_use_json_encoding() -> None:
    """Numbers stay unquoted, None becomes null and strings are escaped."""
    properties = [
        PropertyChange(name="Count", current_value=3),
        PropertyChange(name="Ratio", current_value=0.5),
        PropertyChange(name="Enabled", current_value=True),
        PropertyChange(name="Missing", current_value=None),
        PropertyChange(name="Quote", current_value='say "hi"'),
        PropertyChange(name="Accent", current_value="Español"),
    ]

    payload = to_audit_json(properties)

    assert payload == (
        '{"Count":3,"Ratio":0.5,"Enabled":true,"Missing":null,'
        '"Quote":"say \\"hi\\"","Accent":"Español"}'
    )


def test_rich_values_are_encoded() -> None:
    """Dates, decimals, UUIDs, enums and nested objects are representable."""

    class Color(Enum):
        RED = "red"

    @dataclass
    class Window:
        start: date
        days: int

    properties = [
        PropertyChange(
            name="When", current_value=datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        ),
        PropertyChange(name="Day", current_value=date(2025, 1, 2)),
        PropertyChange(name="Price", current_value=Decimal("12.50")),
        PropertyChange(name="Whole", current_value=Decimal("3")),
        PropertyChange(name="Token", current_value=UUID("12345678-1234-5678-1234-567812345678")),
        PropertyChange(name="Color", current_value=Color.RED),
        PropertyChange(name="Window", current_value=Window(start=date(2025, 1, 1), days=2)),
        PropertyChange(name="Tags", current_value={"b": 1, "a": [1, 2]}),
    ]

    values = json.loads(to_audit_json(properties))

    assert values["When"] == "2025-01-02T03:04:05+00:00"
    assert values["Day"] == "2025-01-02"
    assert values["Price"] == 12.5
    assert values["Whole"] == 3
    assert values["Token"] == "12345678-1234-5678-1234-567812345678"
    assert values["Color"] == "red"
    assert values["Window"] == {"start": "2025-01-01", "days": 2}
    assert values["Tags"] == {"b": 1, "a": [1, 2]}


def test_circular_value_raises_serialization_error() -> None:
    """Self-referencing values surface as a serialization failure."""
    looped: dict[str, object] = {}
    looped["self"] = looped
    properties = [PropertyChange(name="Loop", current_value=looped)]

    with pytest.raises(AuditSerializationError):
        to_audit_json(properties)


def test_unknown_object_raises_serialization_error() -> None:
    """Arbitrary objects are not silently stringified."""
    properties = [PropertyChange(name="Thing", current_value=object())]

    with pytest.raises(SerializationError) as excinfo:
        to_audit_json(properties)

    assert isinstance(excinfo.value.__cause__, TypeError)


def test_unencodable_value_in_unaudited_field_is_ignored() -> None:
    """Excluded fields are dropped before encoding, whatever they hold."""
    properties = [
        PropertyChange(name="Name", current_value="ok"),
        PropertyChange(name="Blob", current_value=object(), is_audited=False),
    ]

    assert to_audit_json(properties) == '{"Name":"ok"}'


def test_nan_raises_serialization_error() -> None:
    """Non-finite floats are not valid JSON."""
    properties = [PropertyChange(name="Score", current_value=float("nan"))]

    with pytest.raises(AuditSerializationError):
        to_audit_json(properties)


def test_original_value_defaults_to_current_value() -> None:
    """Omitting the original value models an unchanged or inserted field."""
    change = PropertyChange(name="Name", current_value="x")

    assert change.original_value == "x"
    assert change.value_changed is False
    assert PropertyChange(name="Name", current_value=None, original_value="x").value_changed
