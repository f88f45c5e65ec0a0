"""Logging setup for the feature flag backend."""

from .config import configure_logging
from .context import log_context

__all__ = ["configure_logging", "log_context"]
