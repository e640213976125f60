"""
Civitas — Archivable Entity Kinds
==================================
Closed set of entity kinds the archival subsystem supports.

The set is never derived dynamically (from table names, request input or
plugins). Anything outside it is rejected with ``ValidationError``.
"""

from __future__ import annotations

from enum import StrEnum

from civitas.core.exceptions import ValidationError


class EntityKind(StrEnum):
    """Supported archivable entity kinds."""

    REQUEST = "request"
    ORGANIZATION = "organization"
    ACCOUNT = "account"


def parse_entity_kind(raw: str | EntityKind) -> EntityKind:
    """
    Parse a raw kind into ``EntityKind``.

    Raises ``ValidationError`` for anything outside the closed set.
    """
    if isinstance(raw, EntityKind):
        return raw
    try:
        return EntityKind(str(raw).strip().lower())
    except ValueError:
        allowed = ", ".join(k.value for k in EntityKind)
        raise ValidationError(
            f"Unsupported entity kind '{raw}'. Allowed: {allowed}.",
            entity_kind=str(raw),
            details={"allowed": [k.value for k in EntityKind]},
        ) from None
