"""
Civitas — Archive List Filters
===============================
Typed filters for listing archive records.

``archived_from`` / ``archived_to`` bound the archive timestamp and are
applied in SQL by the store. The remaining filters are predicates over the
typed snapshot schema, so they are checked against what the entity looked
like when it was archived, not against the live tables.

Kind-specific filters only constrain their own kind: ``role`` applies to
account snapshots, the population range to organization snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable

from civitas.archive.snapshots import (
    AccountSnapshot,
    EntitySnapshot,
    OrganizationSnapshot,
)
from civitas.core.exceptions import ValidationError

SnapshotPredicate = Callable[[EntitySnapshot], bool]


# ── Predicates ──────────────────────────────────────────────────────────


def search_predicate(term: str) -> SnapshotPredicate:
    """Case-insensitive substring match over the snapshot's search terms."""
    needle = term.casefold()

    def _match(snapshot: EntitySnapshot) -> bool:
        return any(needle in value.casefold() for value in snapshot.search_terms())

    return _match


def role_predicate(role: str) -> SnapshotPredicate:
    def _match(snapshot: EntitySnapshot) -> bool:
        if not isinstance(snapshot, AccountSnapshot):
            return True
        return snapshot.role == role

    return _match


def population_predicate(
    minimum: int | None, maximum: int | None
) -> SnapshotPredicate:
    def _match(snapshot: EntitySnapshot) -> bool:
        if not isinstance(snapshot, OrganizationSnapshot):
            return True
        if snapshot.population is None:
            return False
        if minimum is not None and snapshot.population < minimum:
            return False
        if maximum is not None and snapshot.population > maximum:
            return False
        return True

    return _match


# ── Filter set ──────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ArchiveFilters:
    """Filters accepted by the archive listing."""

    search: str | None = None
    role: str | None = None
    population_min: int | None = None
    population_max: int | None = None
    archived_from: date | None = None
    archived_to: date | None = None

    def __post_init__(self) -> None:
        if (
            self.population_min is not None
            and self.population_max is not None
            and self.population_min > self.population_max
        ):
            raise ValidationError(
                "population_min must not exceed population_max",
                details={
                    "population_min": self.population_min,
                    "population_max": self.population_max,
                },
            )
        if (
            self.archived_from is not None
            and self.archived_to is not None
            and self.archived_from > self.archived_to
        ):
            raise ValidationError(
                "archived_from must not be after archived_to",
                details={
                    "archived_from": self.archived_from.isoformat(),
                    "archived_to": self.archived_to.isoformat(),
                },
            )

    @property
    def archived_after(self) -> datetime | None:
        """Inclusive lower bound: start of ``archived_from`` (UTC)."""
        if self.archived_from is None:
            return None
        return datetime.combine(self.archived_from, time.min, tzinfo=timezone.utc)

    @property
    def archived_before(self) -> datetime | None:
        """Exclusive upper bound: start of the day after ``archived_to`` (UTC)."""
        if self.archived_to is None:
            return None
        return datetime.combine(
            self.archived_to + timedelta(days=1), time.min, tzinfo=timezone.utc
        )

    def predicates(self) -> list[SnapshotPredicate]:
        result: list[SnapshotPredicate] = []
        if self.search:
            result.append(search_predicate(self.search))
        if self.role:
            result.append(role_predicate(self.role))
        if self.population_min is not None or self.population_max is not None:
            result.append(
                population_predicate(self.population_min, self.population_max)
            )
        return result

    def matches(self, snapshot: EntitySnapshot) -> bool:
        return all(predicate(snapshot) for predicate in self.predicates())
