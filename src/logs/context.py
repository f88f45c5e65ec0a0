"""Audit correlation fields carried on log records.

The acting user and the batch id of the flush being audited are kept in a
``ContextVar`` so every log line emitted while a change is saved can be tied
back to its audit rows.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from types import MappingProxyType
from typing import Iterator, Mapping
from uuid import UUID

ACTOR = "actor"
BATCH_ID = "batch_id"

_AUDIT_FIELDS: ContextVar[Mapping[str, str]] = ContextVar(
    "featureflags_audit_fields", default=MappingProxyType({})
)


def audit_fields() -> dict[str, str]:
    """Return the correlation fields bound in the current context."""
    return dict(_AUDIT_FIELDS.get())


@contextmanager
def log_context(
    *,
    actor: str | None = None,
    batch_id: UUID | str | None = None,
) -> Iterator[None]:
    """Tag log records emitted inside the block with ``actor`` and ``batch_id``.

    Fields left as ``None`` keep the value of an enclosing block.
    """
    fields = audit_fields()
    if actor is not None:
        fields[ACTOR] = actor
    if batch_id is not None:
        fields[BATCH_ID] = str(batch_id)
    token = _AUDIT_FIELDS.set(MappingProxyType(fields))
    try:
        yield
    finally:
        _AUDIT_FIELDS.reset(token)
