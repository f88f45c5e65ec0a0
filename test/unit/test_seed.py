"""Unit tests for default reference data."""

from __future__ import annotations

from contextlib import closing

from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from models import AuditLog, EntityState, Language, Permission, Role, RolePermission
from seed import ADMINISTRATOR_ROLE, DEFAULT_LANGUAGES, DEFAULT_PERMISSIONS, seed_defaults


def _count(session, model) -> int:
    return session.execute(select(func.count()).select_from(model)).scalar_one()


def test_seed_grants_every_permission_to_administrator(
    sqlite_session_factory: sessionmaker,
) -> None:
    """The administrator role ends up holding every seeded permission."""
    with closing(sqlite_session_factory()) as session:
        seed_defaults(session)
        session.commit()

        admin = session.execute(
            select(Role).where(Role.name == ADMINISTRATOR_ROLE)
        ).scalar_one()
        granted = {
            (grant.permission.controller_name, grant.permission.action_name)
            for grant in admin.role_permissions
        }
        default_language = session.execute(
            select(Language).where(Language.is_default.is_(True))
        ).scalar_one()

    assert granted == set(DEFAULT_PERMISSIONS)
    assert admin.is_default is True
    assert default_language.language_code == "en"


def test_seed_is_idempotent(sqlite_session_factory: sessionmaker) -> None:
    """Running the seed twice adds nothing the second time."""
    with closing(sqlite_session_factory()) as session:
        seed_defaults(session)
        session.commit()
        audit_rows = _count(session, AuditLog)

        seed_defaults(session)
        session.commit()

        assert _count(session, Language) == len(DEFAULT_LANGUAGES)
        assert _count(session, Permission) == len(DEFAULT_PERMISSIONS)
        assert _count(session, Role) == 1
        assert _count(session, RolePermission) == len(DEFAULT_PERMISSIONS)
        assert _count(session, AuditLog) == audit_rows


def test_seed_is_audited(sqlite_session_factory: sessionmaker) -> None:
    """Seeded rows are recorded as additions like any other change."""
    with closing(sqlite_session_factory()) as session:
        seed_defaults(session)
        session.commit()

        entities = set(
            session.execute(
                select(AuditLog.entity).where(AuditLog.state == EntityState.ADDED)
            ).scalars()
        )

    assert {"Language", "Permission", "Role", "RolePermission"} <= entities
