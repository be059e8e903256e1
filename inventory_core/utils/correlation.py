"""Lightweight correlation ID utilities for structured logging.

Provides a per-request correlation identifier via a ContextVar so that the
concurrent backend requests spawned by one resolution include the same
``req_id`` in their log records.
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar

_request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def set_request_id(request_id: str) -> None:
    """Set the current request correlation id in a context variable."""

    _request_id_var.set(request_id)


def get_request_id() -> str:
    """Return the current request correlation id, or empty string."""

    return _request_id_var.get()


def ensure_request_id() -> str:
    """Return the current correlation id, creating one if unset."""

    req_id = _request_id_var.get()
    if not req_id:
        req_id = str(uuid.uuid4())
        _request_id_var.set(req_id)
    return req_id
