"""Read access to persisted audit log rows."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from config import settings
from models import AuditLog, EntityState


@dataclass(frozen=True)
class AuditLogSearch:
    """Filters for audit log searches. Unset fields do not filter."""

    start_date: date | None = None
    end_date: date | None = None
    batch_id: UUID | None = None
    entity: str | None = None
    primary_key: int | None = None
    state: EntityState | None = None
    user_id: int | None = None


@dataclass(frozen=True)
class AuditLogSearchResult:
    """Row of an audit log search listing."""

    id: int
    batch_id: UUID
    entity: str
    state: str
    universal_date: str
    name: str


@dataclass(frozen=True)
class AuditLogDetail:
    """Full audit log row including before/after snapshots."""

    id: int
    batch_id: UUID
    entity: str
    primary_key: int
    state: EntityState
    date: datetime
    old_values: str
    new_values: str
    name: str
    email: str


def display_name(name: str | None, email: str | None) -> str:
    """Format a user for display as ``Name (email)``."""
    name = (name or "").strip()
    email = (email or "").strip()
    if name and email:
        return f"{name} ({email})"
    return name or email


def universal_date(value: datetime) -> str:
    """Render a timestamp in universal sortable form, e.g. ``2025-01-01 10:00:00Z``."""
    return value.strftime("%Y-%m-%d %H:%M:%SZ")


class AuditLogService:
    """Search and read audit log rows."""

    def __init__(self, session: Session, max_results: int | None = None) -> None:
        self._session = session
        self.max_results = max_results or settings.audit.max_results

    def search_logs(self, search: AuditLogSearch) -> list[AuditLogSearchResult]:
        """Return matching rows, at most ``max_results + 1``.

        The extra row lets callers tell that the result was truncated.
        """
        query = select(AuditLog).options(joinedload(AuditLog.user))

        if search.start_date is not None:
            query = query.where(AuditLog.date >= datetime.combine(search.start_date, time.min))
        if search.end_date is not None:
            query = query.where(
                AuditLog.date <= datetime.combine(search.end_date, time(23, 59, 59))
            )
        if search.batch_id is not None:
            query = query.where(AuditLog.batch_id == search.batch_id)
        if search.entity and search.entity.strip():
            query = query.where(func.lower(AuditLog.entity) == search.entity.strip().lower())
        if search.primary_key is not None:
            query = query.where(AuditLog.primary_key == search.primary_key)
        if search.state is not None:
            query = query.where(AuditLog.state == search.state)
        if search.user_id is not None:
            query = query.where(AuditLog.user_id == search.user_id)

        query = query.order_by(AuditLog.id).limit(self.max_results + 1)
        rows = self._session.execute(query).scalars().all()
        return [
            AuditLogSearchResult(
                id=row.id,
                batch_id=row.batch_id,
                entity=row.entity,
                state=row.state.value,
                universal_date=universal_date(row.date),
                name=display_name(
                    row.user.name if row.user else None,
                    row.user.email if row.user else None,
                ),
            )
            for row in rows
        ]

    def get_log_by_id(self, log_id: int) -> AuditLogDetail | None:
        """Return one audit row with its snapshots, or None when missing."""
        row = self._session.execute(
            select(AuditLog).options(joinedload(AuditLog.user)).where(AuditLog.id == log_id)
        ).scalar_one_or_none()
        if row is None:
            return None
        return AuditLogDetail(
            id=row.id,
            batch_id=row.batch_id,
            entity=row.entity,
            primary_key=row.primary_key,
            state=row.state,
            date=row.date,
            old_values=row.old_values or "",
            new_values=row.new_values or "",
            name=(row.user.name if row.user else None) or "",
            email=(row.user.email if row.user else None) or "",
        )

    def get_entity_states(self) -> list[EntityState]:
        """Return the change kinds a search can filter on."""
        return [EntityState.DELETED, EntityState.ADDED, EntityState.MODIFIED]
