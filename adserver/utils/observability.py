"""Observability helpers (correlation IDs)."""
from __future__ import annotations
import uuid
from typing import Mapping

from .logger import request_id_var

REQUEST_ID_HEADER = "X-Request-ID"

def ensure_request_id(headers: Mapping[str, str]) -> str:
    return headers.get(REQUEST_ID_HEADER, None) or str(uuid.uuid4())

def bind_request_id(request_id: str):
    """Make request_id visible to every log record emitted in this context.

    Returns the token to pass to ``reset_request_id``.
    """
    return request_id_var.set(request_id)

def reset_request_id(token) -> None:
    request_id_var.reset(token)

__all__ = ["ensure_request_id", "bind_request_id", "reset_request_id", "REQUEST_ID_HEADER"]
