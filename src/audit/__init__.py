"""Entity change auditing.

``snapshot`` turns property changes into JSON audit records, ``tracking``
extracts those changes from SQLAlchemy, ``recorder`` writes audit rows on
flush and ``service`` reads them back.
"""

from .context import actor_context, bind_actor, current_actor, reset_actor
from .errors import (
    AuditError,
    AuditSerializationError,
    CompositePrimaryKeyError,
    PrimaryKeyNotFoundError,
    SerializationError,
)
from .snapshot import PropertyChange, audit_values, get_primary_key, to_audit_json

__all__ = [
    "AuditError",
    "AuditSerializationError",
    "CompositePrimaryKeyError",
    "PrimaryKeyNotFoundError",
    "PropertyChange",
    "SerializationError",
    "actor_context",
    "audit_values",
    "bind_actor",
    "current_actor",
    "get_primary_key",
    "reset_actor",
    "to_audit_json",
]
