"""Acting-user propagation for audit rows.

The web layer binds the signed-in user's email for the duration of a
request; the audit recorder reads it when it stamps audit rows.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator

from logs import log_context

_CURRENT_ACTOR: ContextVar[str | None] = ContextVar("featureflags_audit_actor", default=None)


def current_actor() -> str | None:
    """Return the email of the acting user, if one is bound."""
    return _CURRENT_ACTOR.get()


def bind_actor(email: str | None) -> Token:
    """Bind the acting user's email and return a token for ``reset_actor``."""
    normalized = email.strip() if email else None
    return _CURRENT_ACTOR.set(normalized or None)


def reset_actor(token: Token) -> None:
    """Restore the actor bound before ``bind_actor`` returned ``token``."""
    _CURRENT_ACTOR.reset(token)


@contextmanager
def actor_context(email: str | None) -> Iterator[None]:
    """Attribute every change flushed inside the block to ``email``."""
    token = bind_actor(email)
    try:
        with log_context(actor=current_actor()):
            yield
    finally:
        reset_actor(token)
