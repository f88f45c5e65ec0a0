"""Pytest configuration for the feature flag backend test suite."""

import os
import sys
from pathlib import Path
from typing import Generator

import pytest


def _ensure_test_env() -> None:
    """Seed required environment variables for tests."""
    os.environ.setdefault("DATABASE_URL", "sqlite://")
    os.environ.setdefault("LOG_JSON", "false")


_ensure_test_env()

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from sqlalchemy.orm import sessionmaker  # noqa: E402

from audit.recorder import AuditRecorder  # noqa: E402
from config import AuditConfig  # noqa: E402
from models import Base  # noqa: E402
from services.database import create_db_engine  # noqa: E402


@pytest.fixture
def audit_config() -> AuditConfig:
    """Audit settings used by the session factory fixture."""
    return AuditConfig()


@pytest.fixture
def sqlite_session_factory(
    tmp_path: Path,
    audit_config: AuditConfig,
) -> Generator[sessionmaker, None, None]:
    """Provide a sqlite session factory with the audit recorder attached."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'featureflags.db'}", echo=False)
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    recorder = AuditRecorder(audit_config)
    recorder.register(factory)
    yield factory
    recorder.unregister()
    engine.dispose()
