"""Correlation ID for reconciliation log records.

Each reconciliation binds an identifier in a ContextVar so that page tasks
spawned during the call log the same ``req_id`` as the caller.
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar, Token

_request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def set_request_id(request_id: str) -> Token:
    """Set the current correlation id; returns a token for ``reset_request_id``."""

    return _request_id_var.set(request_id)


def get_request_id() -> str:
    """Return the current correlation id, or empty string."""

    return _request_id_var.get()


def reset_request_id(token: Token) -> None:
    """Restore the correlation id that was current before ``set_request_id``."""

    _request_id_var.reset(token)


def new_request_id() -> Token:
    """Generate and bind a fresh correlation id."""

    return set_request_id(uuid.uuid4().hex[:12])
