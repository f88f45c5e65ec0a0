"""Default reference data for a fresh database."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import Language, Permission, Role, RolePermission

logger = logging.getLogger(__name__)

ADMINISTRATOR_ROLE = "Administrator"

DEFAULT_LANGUAGES = [
    {"name": "English", "language_code": "en", "country_code": "us", "is_default": True},
    {"name": "Spanish", "language_code": "es", "country_code": "mx", "is_default": False},
]

# (controller, action) pairs guarded by role permissions.
DEFAULT_PERMISSIONS = [
    ("Dashboard", "Index"),
    ("Account", "Index"),
    ("Role", "Index"),
    ("Role", "Edit"),
    ("Role", "Delete"),
    ("Role", "RefreshPermissions"),
    ("User", "Index"),
    ("User", "Create"),
    ("User", "Edit"),
    ("User", "Delete"),
    ("AuditLog", "Index"),
    ("AuditLog", "View"),
    ("FeatureFlag", "Index"),
    ("FeatureFlag", "Enable"),
    ("FeatureFlag", "Disable"),
    ("FeatureFlag", "Create"),
    ("ApiKey", "Index"),
    ("ApiKey", "Create"),
    ("ApiKey", "Delete"),
]


def seed_defaults(session: Session) -> None:
    """Insert default languages, permissions and the administrator role.

    Existing rows are left untouched, so this is safe to run repeatedly.
    The caller owns the transaction.
    """
    existing_languages = set(session.execute(select(Language.language_code)).scalars())
    for language in DEFAULT_LANGUAGES:
        if language["language_code"] not in existing_languages:
            session.add(Language(**language))

    existing_permissions = {
        (row.controller_name, row.action_name)
        for row in session.execute(select(Permission)).scalars()
    }
    for controller_name, action_name in DEFAULT_PERMISSIONS:
        if (controller_name, action_name) not in existing_permissions:
            session.add(Permission(controller_name=controller_name, action_name=action_name))

    admin = session.execute(
        select(Role).where(Role.name == ADMINISTRATOR_ROLE)
    ).scalar_one_or_none()
    if admin is None:
        admin = Role(name=ADMINISTRATOR_ROLE, is_default=True)
        session.add(admin)

    session.flush()

    granted = {grant.permission_id for grant in admin.role_permissions}
    for permission in session.execute(select(Permission)).scalars():
        if permission.id not in granted:
            session.add(RolePermission(role=admin, permission=permission))

    session.flush()
    logger.info("Default reference data seeded")
