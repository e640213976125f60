"""
Civitas — Centralized Exception Taxonomy
=========================================
Typed exception hierarchy for the archival and retention subsystem.

Design decisions:
- Every exception carries an ``ErrorKind``; callers classify by kind,
  never by inspecting the message text.
- Severity property on each exception for log routing.
- ``details`` holds structured context surfaced in API error bodies.

Usage:
    from civitas.core.exceptions import AlreadyArchivedError

    raise AlreadyArchivedError(
        "request 12 is already archived",
        entity_kind="request",
        entity_id=12,
    )
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorSeverity(StrEnum):
    """
    Error severity levels for exception classification.

    LOW < MEDIUM < HIGH < CRITICAL
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorKind(StrEnum):
    """Failure classes carried end to end, from service to HTTP response."""

    VALIDATION = "validation"
    ALREADY_ARCHIVED = "already_archived"
    NOT_FOUND = "not_found"
    ARCHIVED_ACCESS_DENIED = "archived_access_denied"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    INTERNAL = "internal"


class CivitasError(Exception):
    """
    Base exception for all Civitas-specific errors.

    Provides:
    - kind: Failure class used by routes and guards
    - severity: Classification for log routing
    - error_code: Unique identifier for programmatic handling
    - Tracing identifiers: entity_kind, entity_id, correlation_id
    """

    kind: ErrorKind = ErrorKind.INTERNAL
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    error_code: str = "CIVITAS_ERROR"

    def __init__(
        self,
        message: str,
        *,
        entity_kind: str | None = None,
        entity_id: int | None = None,
        correlation_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        self.correlation_id = correlation_id
        self.details: dict[str, Any] = dict(details or {})
        super().__init__(message)

    def __repr__(self) -> str:
        parts = [
            f"{self.__class__.__name__}(",
            f"error_code={self.error_code!r}, ",
            f"kind={self.kind.value!r}, ",
            f"severity={self.severity.value!r}",
        ]
        if self.entity_kind:
            parts.append(f", entity_kind={self.entity_kind!r}")
        if self.entity_id is not None:
            parts.append(f", entity_id={self.entity_id!r}")
        if self.correlation_id:
            parts.append(f", correlation_id={self.correlation_id!r}")
        parts.append(")")
        return "".join(parts)


# ── Client-side failures ──────────────────────────────────────────────────


class ValidationError(CivitasError):
    """Raised for unsupported entity kinds, missing or invalid fields."""

    kind = ErrorKind.VALIDATION
    severity = ErrorSeverity.LOW
    error_code = "VALIDATION_ERROR"


class AlreadyArchivedError(CivitasError):
    """
    Raised when an archive record already exists for (kind, id).

    Produced by the unique constraint on ``archive_records``; this is the
    canonical outcome of two archive attempts racing on the same entity.
    """

    kind = ErrorKind.ALREADY_ARCHIVED
    severity = ErrorSeverity.LOW
    error_code = "ALREADY_ARCHIVED"


class NotFoundError(CivitasError):
    """Raised when an entity, archive record or policy does not exist."""

    kind = ErrorKind.NOT_FOUND
    severity = ErrorSeverity.LOW
    error_code = "NOT_FOUND"


class ArchivedAccessDeniedError(CivitasError):
    """Raised by the access guards when the target or caller is archived."""

    kind = ErrorKind.ARCHIVED_ACCESS_DENIED
    severity = ErrorSeverity.MEDIUM
    error_code = "ARCHIVED_ACCESS_DENIED"


class AuthenticationError(CivitasError):
    """Raised when the forwarded caller identity is missing or malformed."""

    kind = ErrorKind.UNAUTHENTICATED
    severity = ErrorSeverity.LOW
    error_code = "AUTHENTICATION_REQUIRED"


class PermissionDeniedError(CivitasError):
    """Raised when the caller's role may not use an endpoint."""

    kind = ErrorKind.FORBIDDEN
    severity = ErrorSeverity.LOW
    error_code = "FORBIDDEN"


# ── Server-side failures ──────────────────────────────────────────────────


class InternalError(CivitasError):
    """Raised when an unexpected failure occurs below the service layer."""

    kind = ErrorKind.INTERNAL
    severity = ErrorSeverity.HIGH
    error_code = "INTERNAL_ERROR"
