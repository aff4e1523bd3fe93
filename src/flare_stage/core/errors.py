"""Domain error taxonomy shared by services and the API boundary.

Services raise these exceptions and never touch HTTP concerns; the API layer
maps each class onto a status code in :mod:`flare_stage.main`.
"""

from __future__ import annotations

from typing import Any


class FlareError(Exception):
    """Base class for expected, client-visible failures."""

    status_code: int = 400

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON body sent to the client."""
        return {"detail": self.detail}


class ValidationError(FlareError):
    """Malformed or out-of-range input, with optional field-level detail."""

    status_code = 400

    def __init__(self, detail: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(detail)
        self.errors = errors or []

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.errors:
            payload["errors"] = self.errors
        return payload


class NotFoundError(FlareError):
    """A referenced actor or target does not exist."""

    status_code = 404


class ForbiddenError(FlareError):
    """The actor is not allowed to perform the operation."""

    status_code = 403


class ConflictError(FlareError):
    """A uniqueness constraint would be violated (e.g. username taken)."""

    status_code = 409


__all__ = [
    "FlareError",
    "ValidationError",
    "NotFoundError",
    "ForbiddenError",
    "ConflictError",
]
