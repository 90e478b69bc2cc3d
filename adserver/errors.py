"""Domain error taxonomy for the campaign engine.

Services raise these; the API layer maps each class to an HTTP status in one
exception handler (see ``adserver.main``). A reached tracking cap is not an
error: the usage counter reports it as ``TrackResult(accepted=False)``.
"""
from __future__ import annotations

from typing import Any, Optional


class CampaignError(Exception):
    """Base class. ``status_code`` is the HTTP status the API responds with."""

    status_code: int = 400

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(CampaignError):
    """Malformed input, rejected before the store is touched."""

    status_code = 422


class NotFoundError(CampaignError):
    status_code = 404


class PermissionDeniedError(CampaignError):
    """Actor lacks the role or ownership required for the operation."""

    status_code = 403


class ConflictError(CampaignError):
    """Illegal state transition (e.g. checkout on a rejected campaign)."""

    status_code = 409


class ExternalEventError(CampaignError):
    """Unparseable or unconfirmed payment event. Dropped; the gateway may retry."""

    status_code = 400


__all__ = [
    "CampaignError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConflictError",
    "ExternalEventError",
]
