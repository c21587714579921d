# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Manifold Contributors

"""Error taxonomy shared by the loader, the pipelines and the HTTP layer.

Every error a caller can observe is one of these types. Storage engine
exceptions are translated at the repository boundary and never leak.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class FieldError:
    """One field-level violation. ``field`` is a dotted path (``entities.Book.title``)."""

    field: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class ManifoldError(Exception):
    """Base class for all engine errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ManifoldError):
    """Input rejected with field-level detail."""

    status_code = 400

    def __init__(self, message: str, errors: list[FieldError] | None = None) -> None:
        super().__init__(message)
        self.errors: list[FieldError] = list(errors or [])

    def __str__(self) -> str:
        if not self.errors:
            return self.message
        details = "; ".join(f"{e.field}: {e.message}" for e in self.errors)
        return f"{self.message} ({details})"


class ManifestValidationError(ValidationError):
    """The manifest failed to load. Fatal to (re)registration."""

    def __init__(self, errors: list[FieldError]) -> None:
        super().__init__("Invalid manifest", errors)


class RequestValidationError(ValidationError):
    """A request body or query string violated the entity's properties."""

    def __init__(self, errors: list[FieldError]) -> None:
        super().__init__("Invalid request", errors)


class NotFoundError(ManifoldError):
    status_code = 404


class PolicyDeniedError(ManifoldError):
    """Authorization failed. Raised before any storage access."""

    status_code = 403


class ConflictError(ManifoldError):
    """The logical operation cannot proceed in the current data state."""

    status_code = 409


class PersistenceUnavailableError(ManifoldError):
    """The storage engine is unreachable or timed out. Retryable by the caller."""

    status_code = 503
    retry_after = 5
