"""
Civitas — Retention Policy Engine
==================================
Maps a request category to its configured retention duration.

Selection rule used by the sweep: the first policy returned by the
category lookup (creation order, i.e. primary key ascending). The display
listing sorts by ``duration_months`` descending instead; the two orders are
not required to agree.

Usage:
    engine = RetentionPolicyEngine(session_factory)
    policy = await engine.select_policy(category_id)
    cutoff = add_months(request.answered_at, policy.duration_months)
"""

from __future__ import annotations

import calendar
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from civitas.core.exceptions import NotFoundError, ValidationError
from civitas.core.logging import get_logger
from civitas.db.models import Category, RetentionPolicy

logger = get_logger(__name__)


def add_months(value: datetime, months: int) -> datetime:
    """
    Calendar-month arithmetic.

    The day is clamped to the last day of the target month
    (2024-01-31 + 1 month → 2024-02-29). Time of day and tzinfo are kept.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _validate_duration(duration_months: int) -> None:
    if duration_months < 1:
        raise ValidationError(
            "duration_months must be a positive number of months",
            details={"duration_months": duration_months},
        )


class RetentionPolicyEngine:
    """Policy lookup, selection and administration."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ── Lookup ──────────────────────────────────────────────────────────

    async def policies_for_category(self, category_id: int) -> list[RetentionPolicy]:
        """All policies of a category in lookup order (creation order)."""
        async with self._session_factory() as session:
            rows = await session.execute(
                select(RetentionPolicy)
                .where(RetentionPolicy.category_id == category_id)
                .order_by(RetentionPolicy.id)
            )
            return list(rows.scalars().all())

    async def select_policy(self, category_id: int | None) -> RetentionPolicy | None:
        """
        Return the policy the sweep applies to a category.

        ``None`` when the category has no policy; automatic archival never
        proceeds without one.
        """
        if category_id is None:
            return None
        policies = await self.policies_for_category(category_id)
        return policies[0] if policies else None

    async def list_for_display(
        self, category_id: int | None = None
    ) -> list[RetentionPolicy]:
        """Policies sorted by ``duration_months`` descending, for display."""
        stmt = select(RetentionPolicy).order_by(
            RetentionPolicy.duration_months.desc(), RetentionPolicy.id
        )
        if category_id is not None:
            stmt = stmt.where(RetentionPolicy.category_id == category_id)
        async with self._session_factory() as session:
            return list((await session.execute(stmt)).scalars().all())

    # ── Administration ──────────────────────────────────────────────────

    async def create_policy(
        self,
        category_id: int,
        duration_months: int,
        description: str = "",
    ) -> RetentionPolicy:
        """
        Attach a new policy to a category.

        Raises:
            ValidationError: Non-positive duration or unknown category.
        """
        _validate_duration(duration_months)
        async with self._session_factory() as session:
            async with session.begin():
                if await session.get(Category, category_id) is None:
                    raise ValidationError(
                        f"Category {category_id} does not exist",
                        details={"category_id": category_id},
                    )
                policy = RetentionPolicy(
                    category_id=category_id,
                    duration_months=duration_months,
                    description=description or "",
                )
                session.add(policy)
                await session.flush()

        logger.info(
            "retention.policy.created",
            policy_id=policy.id,
            category_id=category_id,
            duration_months=duration_months,
        )
        return policy

    async def update_policy(
        self,
        policy_id: int,
        duration_months: int | None = None,
        description: str | None = None,
    ) -> RetentionPolicy:
        """
        Update the fields that are explicitly provided (not None).

        Raises:
            NotFoundError: Unknown policy.
            ValidationError: Non-positive duration.
        """
        if duration_months is not None:
            _validate_duration(duration_months)
        async with self._session_factory() as session:
            async with session.begin():
                policy = await session.get(RetentionPolicy, policy_id)
                if policy is None:
                    raise NotFoundError(
                        f"Retention policy {policy_id} not found",
                        details={"policy_id": policy_id},
                    )
                if duration_months is not None:
                    policy.duration_months = duration_months
                if description is not None:
                    policy.description = description

        logger.info("retention.policy.updated", policy_id=policy_id)
        return policy

    async def delete_policy(self, policy_id: int) -> None:
        """
        Remove a policy.

        Raises:
            NotFoundError: Unknown policy.
        """
        async with self._session_factory() as session:
            async with session.begin():
                policy = await session.get(RetentionPolicy, policy_id)
                if policy is None:
                    raise NotFoundError(
                        f"Retention policy {policy_id} not found",
                        details={"policy_id": policy_id},
                    )
                await session.delete(policy)

        logger.info("retention.policy.deleted", policy_id=policy_id)
