"""
Civitas — Retention Sweep
==========================
One pass of automatic archival over resolved requests.

Algorithm:
1. Enumerate requests with ``answered_at`` set that are not archived.
2. Select the category's retention policy; no policy → skip.
3. ``cutoff = answered_at + duration_months`` (calendar months); archive
   with an automatic reason and no actor once ``cutoff`` has passed.
4. Failures are isolated per candidate: logged, counted, sweep continues.

Candidates are processed strictly sequentially. Only a failure of the
enumeration step ends the sweep with an exception.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from civitas.archive.kinds import EntityKind
from civitas.archive.service import ArchiveService
from civitas.core.clock import as_utc, utcnow
from civitas.core.exceptions import AlreadyArchivedError, CivitasError
from civitas.core.logging import get_logger
from civitas.db.models import ArchiveRecord, Request, RetentionPolicy
from civitas.retention.policies import RetentionPolicyEngine, add_months

logger = get_logger(__name__)


def automatic_reason(policy: RetentionPolicy) -> str:
    """Archive reason recorded by the sweep, citing the applied policy."""
    return (
        f'Automatic retention archival - policy "{policy.description}" '
        f"({policy.duration_months} months)"
    )


# ── Result types ────────────────────────────────────────────────────────


@dataclass
class SweepResult:
    """Aggregate outcome of one sweep."""

    archived_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    total_processed: int = 0
    sweep_id: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "archived_count": self.archived_count,
            "error_count": self.error_count,
            "skipped_count": self.skipped_count,
            "total_processed": self.total_processed,
        }


@dataclass(frozen=True, slots=True)
class ForceArchiveResult:
    success: bool
    request_id: int
    error: str | None = None
    error_kind: str | None = None


@dataclass(frozen=True, slots=True)
class SweepCandidate:
    request_id: int
    category_id: int | None
    answered_at: datetime


# ── Sweeper ─────────────────────────────────────────────────────────────


class RetentionSweeper:
    """Runs retention sweeps against the archive service."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        archive_service: ArchiveService,
        policy_engine: RetentionPolicyEngine,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._archive_service = archive_service
        self._policy_engine = policy_engine
        self._clock = clock

    async def find_candidates(self) -> list[SweepCandidate]:
        """Resolved requests that have no archive record yet."""
        archived = select(ArchiveRecord.entity_id).where(
            ArchiveRecord.entity_kind == EntityKind.REQUEST.value
        )
        stmt = (
            select(Request.id, Request.category_id, Request.answered_at)
            .where(
                Request.answered_at.is_not(None),
                Request.id.not_in(archived),
            )
            .order_by(Request.id)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return [
            SweepCandidate(
                request_id=row.id,
                category_id=row.category_id,
                answered_at=as_utc(row.answered_at),
            )
            for row in rows
        ]

    async def run(self, now: datetime | None = None) -> SweepResult:
        """
        Execute one sweep.

        Raises only if candidate enumeration fails; everything after that
        is reported in the returned ``SweepResult``. Every log line of the
        sweep carries its ``sweep_id``.
        """
        now = as_utc(now) if now is not None else as_utc(self._clock())
        result = SweepResult(sweep_id=str(uuid.uuid4()), started_at=now)
        with structlog.contextvars.bound_contextvars(sweep_id=result.sweep_id):
            return await self._sweep(now, result)

    async def _sweep(self, now: datetime, result: SweepResult) -> SweepResult:
        logger.info("retention.sweep.started", now=now.isoformat())

        candidates = await self.find_candidates()
        result.total_processed = len(candidates)
        logger.info("retention.sweep.candidates", count=len(candidates))

        # Policies looked up once per category within a sweep
        policies: dict[int | None, RetentionPolicy | None] = {}

        for candidate in candidates:
            try:
                if candidate.category_id not in policies:
                    policies[candidate.category_id] = (
                        await self._policy_engine.select_policy(candidate.category_id)
                    )
                policy = policies[candidate.category_id]

                if policy is None:
                    result.skipped_count += 1
                    logger.info(
                        "retention.sweep.skipped_no_policy",
                        request_id=candidate.request_id,
                        category_id=candidate.category_id,
                    )
                    continue

                cutoff = add_months(candidate.answered_at, policy.duration_months)
                if cutoff >= now:
                    result.skipped_count += 1
                    logger.debug(
                        "retention.sweep.not_due",
                        request_id=candidate.request_id,
                        cutoff=cutoff.isoformat(),
                        days_remaining=(cutoff - now).days,
                    )
                    continue

                await self._archive_service.archive(
                    EntityKind.REQUEST,
                    candidate.request_id,
                    reason=automatic_reason(policy),
                    actor_id=None,
                )
                result.archived_count += 1

            except AlreadyArchivedError:
                # Archived concurrently (manual archive or another instance)
                result.skipped_count += 1
                logger.info(
                    "retention.sweep.already_archived",
                    request_id=candidate.request_id,
                )
            except Exception as exc:
                result.error_count += 1
                result.errors.append(f"request {candidate.request_id}: {exc}")
                logger.error(
                    "retention.sweep.candidate_failed",
                    request_id=candidate.request_id,
                    error=str(exc),
                )

        result.finished_at = as_utc(self._clock())
        logger.info("retention.sweep.completed", **result.to_dict())
        return result

    async def force_archive(
        self, request_id: int, reason: str = "Manual remediation"
    ) -> ForceArchiveResult:
        """
        Archive one request immediately, bypassing policy checks.

        Reports failure in the result instead of raising.
        """
        try:
            await self._archive_service.archive(
                EntityKind.REQUEST, request_id, reason=reason, actor_id=None
            )
        except CivitasError as exc:
            logger.warning(
                "retention.force_archive.failed",
                request_id=request_id,
                kind=exc.kind.value,
                error=exc.message,
            )
            return ForceArchiveResult(
                success=False,
                request_id=request_id,
                error=exc.message,
                error_kind=exc.kind.value,
            )

        logger.info("retention.force_archive.completed", request_id=request_id)
        return ForceArchiveResult(success=True, request_id=request_id)
