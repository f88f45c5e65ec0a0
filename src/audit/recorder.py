"""Audit log writing for audited entity changes.

Hooks the SQLAlchemy session flush in three steps. Before the flush, pending
inserts, updates and deletes of audited entities are classified and
timestamped. Once the statements ran, database keys and synchronized foreign
keys are visible while attribute history still holds the replaced values, so
the snapshots are built then. After the flush completes, the ``AuditLog``
rows are added to the same session and commit with the change they describe.
"""


from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import UUID, uuid4

from sqlalchemy import event, inspect, select
from sqlalchemy.orm import Session

from config import AuditConfig, settings
from logs import log_context
from models import AuditLog, EntityState, User

from .context import current_actor
from .errors import AuditSerializationError
from .snapshot import PropertyChange, get_primary_key, to_audit_json
from .tracking import (
    changed_instances,
    has_reference_change,
    modified_properties,
    property_changes,
)

logger = logging.getLogger(__name__)

_PENDING_KEY = "featureflags.pending_audit_batch"


@dataclass
class TrackedChange:
    """One classified entity of a flush."""

    instance: Any
    state: EntityState
    # Deleted rows are read before their DELETE runs.
    properties: list[PropertyChange] | None = None


@dataclass
class PendingBatch:
    """Changes of one flush waiting for their audit rows."""

    batch_id: UUID
    date: datetime
    user_id: int | None
    changes: list[TrackedChange]
    logs: list[AuditLog] = field(default_factory=list)


def _audit_key(value: Any) -> int | None:
    """Coerce a primary key value to the integer stored on audit rows."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value))
    except ValueError:
        return None


class AuditRecorder:
    """Write audit rows for audited entity changes with failure isolation."""

    def __init__(
        self,
        config: AuditConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the recorder with audit settings and a UTC clock."""
        self._config = config or settings.audit
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._targets: list[Any] = []

    @property
    def excluded_fields(self) -> list[str]:
        """Fields never written to audit snapshots."""
        return list(self._config.excluded_fields)

    def register(self, target: Any) -> None:
        """Attach flush listeners to a Session, sessionmaker or Session class."""
        event.listen(target, "before_flush", self._before_flush)
        event.listen(target, "after_flush", self._after_flush)
        event.listen(target, "after_flush_postexec", self._after_flush_postexec)
        self._targets.append(target)

    def unregister(self) -> None:
        """Detach listeners from every registered target."""
        for target in self._targets:
            event.remove(target, "before_flush", self._before_flush)
            event.remove(target, "after_flush", self._after_flush)
            event.remove(target, "after_flush_postexec", self._after_flush_postexec)
        self._targets.clear()

    def _before_flush(self, session: Session, flush_context: Any, instances: Any) -> None:
        # A batch left over from a flush that failed must not leak into this one.
        session.info.pop(_PENDING_KEY, None)

        changed = changed_instances(session)
        if not changed:
            return

        now = self._clock()
        tracked: list[TrackedChange] = []
        for instance, state in changed:
            if state is EntityState.MODIFIED and not self._has_net_change(instance):
                continue
            self._stamp(instance, state, now)
            change = TrackedChange(instance=instance, state=state)
            if state is EntityState.DELETED:
                change.properties = property_changes(instance, self.excluded_fields)
            tracked.append(change)

        if tracked:
            session.info[_PENDING_KEY] = PendingBatch(
                batch_id=uuid4(),
                date=now,
                user_id=self._resolve_user_id(session),
                changes=tracked,
            )

    def _after_flush(self, session: Session, flush_context: Any) -> None:
        batch: PendingBatch | None = session.info.get(_PENDING_KEY)
        if batch is None:
            return

        with log_context(batch_id=batch.batch_id):
            for change in batch.changes:
                log = self._isolate(change.instance, lambda: self._capture(change, batch))
                if log is not None:
                    batch.logs.append(log)

    def _after_flush_postexec(self, session: Session, flush_context: Any) -> None:
        batch: PendingBatch | None = session.info.pop(_PENDING_KEY, None)
        if batch is None or not batch.logs:
            return
        session.add_all(batch.logs)
        logger.debug("Queued %d audit log rows for batch %s.", len(batch.logs), batch.batch_id)

    def _has_net_change(self, instance: Any) -> bool:
        """Return True when a dirty entity will actually change in the database."""
        changes = property_changes(instance, self.excluded_fields)
        if modified_properties(changes, ignored_fields=self.excluded_fields):
            return True
        return has_reference_change(instance)

    def _capture(self, change: TrackedChange, batch: PendingBatch) -> AuditLog | None:
        """Build the audit row for one flushed change, or None when there is nothing to log."""
        state = change.state
        changes = change.properties
        if changes is None:
            changes = property_changes(change.instance, self.excluded_fields)
        entity = type(change.instance).__name__
        primary_key = get_primary_key(changes)
        key = _audit_key(primary_key)
        if key is None:
            logger.warning(
                "Skipping audit for %s: primary key %r is not an integer.",
                entity,
                primary_key,
            )
            return None

        log = AuditLog(
            batch_id=batch.batch_id,
            entity=entity,
            primary_key=key,
            user_id=batch.user_id,
            state=state,
            date=batch.date,
        )
        if state is EntityState.ADDED:
            log.new_values = to_audit_json(changes, use_current_values=True)
        elif state is EntityState.DELETED:
            log.old_values = to_audit_json(changes, use_current_values=False)
        else:
            modified: list[PropertyChange] = modified_properties(
                changes, ignored_fields=self.excluded_fields
            )
            if not modified:
                # Reference reassigned to the row it already pointed at.
                return None
            log.old_values = to_audit_json(modified, use_current_values=False)
            log.new_values = to_audit_json(modified, use_current_values=True)
        return log

    def _isolate(self, instance: Any, build: Callable[[], AuditLog | None]) -> AuditLog | None:
        """Run ``build``; in fail-open mode log audit failures instead of raising."""
        try:
            return build()
        except (LookupError, AuditSerializationError):
            if not self._config.fail_open:
                raise
            logger.exception("Audit snapshot failed for %s.", type(instance).__name__)
            return None

    def _stamp(self, instance: Any, state: EntityState, now: datetime) -> None:
        """Maintain created/updated timestamps of a changed entity."""
        if state is EntityState.DELETED:
            return
        instance.updated_date = now
        if state is EntityState.ADDED:
            instance.created_date = now
            return
        history = inspect(instance).attrs.created_date.history
        if history.deleted:
            # Never overwrite the creation time of an existing row.
            instance.created_date = history.deleted[0]

    def _resolve_user_id(self, session: Session) -> int | None:
        """Look up the acting user's id from the bound actor email."""
        email = current_actor()
        if not email:
            return None
        with session.no_autoflush:
            user_id = session.execute(
                select(User.id).where(User.email == email)
            ).scalar_one_or_none()
        if user_id is None:
            logger.debug("Audit actor %s does not match a user.", email)
        return user_id


def register_audit_recorder(
    target: Any,
    config: AuditConfig | None = None,
) -> AuditRecorder | None:
    """Attach an audit recorder to ``target`` unless auditing is disabled."""
    audit_config = config or settings.audit
    if not audit_config.enabled:
        logger.info("Entity change auditing is disabled.")
        return None
    recorder = AuditRecorder(audit_config)
    recorder.register(target)
    return recorder
