"""Errors raised while building audit snapshots."""

from __future__ import annotations


class AuditError(Exception):
    """Base class for audit snapshot failures."""


class PrimaryKeyNotFoundError(AuditError, LookupError):
    """Raised when no property of a tracked entity is marked as the primary key."""

    def __init__(self, message: str = "no primary key property found") -> None:
        super().__init__(message)


class CompositePrimaryKeyError(AuditError, LookupError):
    """Raised when a tracked entity has more than one primary key property."""

    def __init__(self, key_names: list[str]) -> None:
        self.key_names = list(key_names)
        super().__init__(
            "composite primary keys are not supported for auditing: " + ", ".join(self.key_names)
        )


class AuditSerializationError(AuditError, ValueError):
    """Raised when an audited property value cannot be encoded as JSON."""


SerializationError = AuditSerializationError
