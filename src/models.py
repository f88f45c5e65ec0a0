"""Data models for the feature flag admin backend."""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Uuid,
    event,
)
from sqlalchemy.orm import declarative_base, relationship

# SQLAlchemy base
Base = declarative_base()

# Column.info key carrying the no-audit marker.
NO_AUDIT = "no_audit"


def no_audit() -> dict[str, Any]:
    """Return column info marking a field as excluded from audit snapshots."""
    return {NO_AUDIT: True}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntityState(str, enum.Enum):
    """Kind of change captured by an audit log row."""

    ADDED = "Added"
    MODIFIED = "Modified"
    DELETED = "Deleted"


EntityStateEnum = Enum(
    EntityState,
    name="entity_state",
    native_enum=False,
    values_callable=lambda states: [state.value for state in states],
)


class AuditedEntityMixin:
    """Timestamps shared by every audited entity.

    These fields are maintained by the audit recorder and never appear in
    audit snapshots.
    """

    created_date = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_date = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


def _keep_assigned_value(target, value, oldvalue, initiator) -> None:
    pass


@event.listens_for(AuditedEntityMixin, "mapper_configured", propagate=True)
def _load_persisted_value_on_set(mapper, class_) -> None:
    """Make column sets on audited entities load the value they replace.

    Without this, assigning an expired or unloaded attribute leaves no
    original value in the attribute history.
    """
    for prop in mapper.column_attrs:
        event.listen(prop.class_attribute, "set", _keep_assigned_value, active_history=True)


class Language(AuditedEntityMixin, Base):
    """UI language available to users."""

    __tablename__ = "languages"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    language_code = Column(String(10), nullable=False)
    country_code = Column(String(10), nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)


class User(AuditedEntityMixin, Base):
    """Administrative user."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String(100), nullable=False, unique=True)
    name = Column(String(100), nullable=False)
    language_id = Column(Integer, ForeignKey("languages.id"), nullable=False)
    status = Column(Boolean, nullable=False, default=True)

    language = relationship("Language")
    user_roles = relationship("UserRole", back_populates="user", cascade="all, delete-orphan")


class Role(AuditedEntityMixin, Base):
    """Named set of permissions."""

    __tablename__ = "roles"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False, unique=True)
    is_default = Column(Boolean, nullable=False, default=False)

    role_permissions = relationship(
        "RolePermission", back_populates="role", cascade="all, delete-orphan"
    )
    user_roles = relationship("UserRole", back_populates="role", cascade="all, delete-orphan")


class Permission(AuditedEntityMixin, Base):
    """Controller action a role may be granted."""

    __tablename__ = "permissions"

    id = Column(Integer, primary_key=True)
    controller_name = Column(String(100), nullable=False)
    action_name = Column(String(100), nullable=False)

    role_permissions = relationship("RolePermission", back_populates="permission")


class RolePermission(AuditedEntityMixin, Base):
    """Grant of a permission to a role."""

    __tablename__ = "role_permissions"

    id = Column(Integer, primary_key=True)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False)
    permission_id = Column(Integer, ForeignKey("permissions.id"), nullable=False)

    role = relationship("Role", back_populates="role_permissions")
    permission = relationship("Permission", back_populates="role_permissions")


class UserRole(AuditedEntityMixin, Base):
    """Membership of a user in a role."""

    __tablename__ = "user_roles"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False)

    user = relationship("User", back_populates="user_roles")
    role = relationship("Role", back_populates="user_roles")


class FeatureFlag(AuditedEntityMixin, Base):
    """Named feature toggle."""

    __tablename__ = "feature_flags"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False, unique=True)
    is_enabled = Column(Boolean, nullable=False, default=False)
    # 0 = any filter must pass, 1 = all filters must pass.
    requirement_type = Column(Integer, nullable=False, default=0)

    filters = relationship(
        "FeatureFlagFilter", back_populates="feature_flag", cascade="all, delete-orphan"
    )


class FeatureFlagFilter(AuditedEntityMixin, Base):
    """Targeting, time window, percentage or JSON filter attached to a flag."""

    __tablename__ = "feature_flag_filters"

    id = Column(Integer, primary_key=True)
    feature_flag_id = Column(Integer, ForeignKey("feature_flags.id"), nullable=False)
    filter_type = Column(Integer, nullable=False)

    # Time window
    time_start = Column(DateTime(timezone=True), nullable=True)
    time_end = Column(DateTime(timezone=True), nullable=True)
    time_recurrence_type = Column(Integer, nullable=True)
    time_recurrence_interval = Column(Integer, nullable=True)
    time_recurrence_days_of_week = Column(String(100), nullable=True)
    time_recurrence_first_day_of_week = Column(String(20), nullable=True)
    time_recurrence_range_type = Column(Integer, nullable=True)
    time_recurrence_end_date = Column(DateTime(timezone=True), nullable=True)
    time_recurrence_number_of_occurrences = Column(Integer, nullable=True)

    # Percentage
    percentage_value = Column(Integer, nullable=True)

    # Custom filter as JSON text
    json = Column(String(4000), nullable=True)

    feature_flag = relationship("FeatureFlag", back_populates="filters")
    users = relationship(
        "FeatureFlagFilterUser", back_populates="feature_flag_filter", cascade="all, delete-orphan"
    )


class FeatureFlagFilterUser(AuditedEntityMixin, Base):
    """User explicitly included in or excluded from a targeting filter."""

    __tablename__ = "feature_flag_filter_users"

    id = Column(Integer, primary_key=True)
    feature_flag_filter_id = Column(
        Integer, ForeignKey("feature_flag_filters.id"), nullable=False
    )
    user = Column(String(100), nullable=False, default="")
    include = Column(Boolean, nullable=False, default=True)

    feature_flag_filter = relationship("FeatureFlagFilter", back_populates="users")


class ApiKey(AuditedEntityMixin, Base):
    """API key used by client applications to read flags."""

    __tablename__ = "api_keys"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False, unique=True)
    key = Column(String(50), nullable=False, info=no_audit())
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class UserToken(Base):
    """One-time login token. Not audited."""

    __tablename__ = "user_tokens"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    token = Column(String(100), nullable=False, default="")
    hidden_token = Column(String(100), nullable=False, default="")
    expiration_date = Column(DateTime(timezone=True), nullable=True)
    attempts = Column(Integer, nullable=False, default=0)

    user = relationship("User")


class AuditLog(Base):
    """Before/after snapshot of one audited entity change."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True)
    batch_id = Column(Uuid, nullable=False, index=True)
    entity = Column(String(100), nullable=False)
    primary_key = Column(Integer, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    state = Column(EntityStateEnum, nullable=False)
    date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    old_values = Column(String, nullable=True)
    new_values = Column(String, nullable=True)

    user = relationship("User")
