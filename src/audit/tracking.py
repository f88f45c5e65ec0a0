"""Extract property changes from SQLAlchemy's unit of work.

This is the only audit module that touches ORM internals. It reads mapped
column attributes, their pending history and column metadata, and hands the
snapshot builder plain ``PropertyChange`` values.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable

from sqlalchemy import inspect
from sqlalchemy.orm import MANYTOONE, Session
from sqlalchemy.schema import Column

from models import NO_AUDIT, AuditedEntityMixin, EntityState

from .snapshot import PropertyChange


def is_audited_entity(instance: object) -> bool:
    """Return True when changes to ``instance`` should produce audit rows."""
    return isinstance(instance, AuditedEntityMixin)


def is_no_audit_column(column: Column) -> bool:
    """Return True when the column carries the no-audit marker."""
    return bool(column.info.get(NO_AUDIT, False))


def property_changes(
    instance: object,
    excluded_fields: Collection[str] = (),
) -> list[PropertyChange]:
    """Build the ordered property snapshot of a mapped instance.

    Original values come from the attribute history; attributes without
    pending changes report their current value as original. Fields named in
    ``excluded_fields`` and columns marked no-audit are flagged unaudited
    but still take part in key lookup.
    """
    state = inspect(instance)
    mapper = state.mapper
    key_columns = set(mapper.primary_key)

    changes: list[PropertyChange] = []
    for prop in mapper.column_attrs:
        column = prop.columns[0]
        attr = state.attrs[prop.key]
        history = attr.history
        current = attr.value
        original = history.deleted[0] if history.deleted else current
        changes.append(
            PropertyChange(
                name=prop.key,
                current_value=current,
                original_value=original,
                is_key=column in key_columns,
                is_audited=prop.key not in excluded_fields and not is_no_audit_column(column),
            )
        )
    return changes


def _as_text(value: object) -> str | None:
    return None if value is None else str(value)


def modified_properties(
    changes: Iterable[PropertyChange],
    ignored_fields: Collection[str] = (),
) -> list[PropertyChange]:
    """Return properties whose value really changed.

    Values are compared by their text rendering so that equal values of
    different numeric types, or a flag set to the value it already had, do
    not count as a change.
    """
    return [
        change
        for change in changes
        if change.name not in ignored_fields
        and _as_text(change.original_value) != _as_text(change.current_value)
    ]


def has_reference_change(instance: object) -> bool:
    """Return True when a many-to-one reference of ``instance`` was reassigned.

    The foreign key column only follows the reference during the flush, so
    before the flush this is the one sign of the pending update.
    """
    state = inspect(instance)
    return any(
        state.attrs[rel.key].history.has_changes()
        for rel in state.mapper.relationships
        if rel.direction is MANYTOONE
    )


def entity_state(session: Session, instance: object) -> EntityState | None:
    """Classify a pending change of ``instance`` within ``session``."""
    if instance in session.new:
        return EntityState.ADDED
    if instance in session.deleted:
        return EntityState.DELETED
    if instance in session.dirty and session.is_modified(instance, include_collections=False):
        return EntityState.MODIFIED
    return None


def changed_instances(session: Session) -> list[tuple[object, EntityState]]:
    """Return every audited instance with a pending insert, update or delete."""
    pending: list[tuple[object, EntityState]] = []
    for instance in [*session.new, *session.dirty, *session.deleted]:
        if not is_audited_entity(instance):
            continue
        state = entity_state(session, instance)
        if state is not None:
            pending.append((instance, state))
    return pending
