"""
Civitas — Retention Scheduler
==============================
Recurring background trigger for the retention sweep.

Runs once a day at the configured UTC time (default 02:00) inside the
application's event loop. Also invocable on demand, and able to force the
archival of one request outside the schedule.

Thread safety: NOT thread-safe. One scheduler per process, driven by the
asyncio event loop. Several service instances each run their own
scheduler; their races resolve through the archive unique constraint.

Usage:
    scheduler = RetentionScheduler(sweeper)
    scheduler.start()
    ...
    await scheduler.stop()
"""

from __future__ import annotations

import asyncio
import contextlib
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from civitas.core.clock import as_utc, utcnow
from civitas.core.config import get_settings
from civitas.core.logging import get_logger
from civitas.retention.sweep import ForceArchiveResult, RetentionSweeper, SweepResult

logger = get_logger(__name__)


class RetentionScheduler:
    """Daily sweep loop plus on-demand entry points."""

    def __init__(
        self,
        sweeper: RetentionSweeper,
        hour: int | None = None,
        minute: int | None = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        settings = get_settings()
        self._sweeper = sweeper
        self._hour = settings.retention_sweep_hour if hour is None else hour
        self._minute = settings.retention_sweep_minute if minute is None else minute
        self._clock = clock
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None
        self._run_lock = asyncio.Lock()
        self._last_result: SweepResult | None = None

    # ── Schedule ────────────────────────────────────────────────────────

    def next_run_after(self, now: datetime) -> datetime:
        """Next daily trigger strictly after ``now`` (UTC)."""
        now = as_utc(now)
        candidate = now.replace(
            hour=self._hour, minute=self._minute, second=0, microsecond=0
        )
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_result(self) -> SweepResult | None:
        return self._last_result

    def start(self) -> None:
        """Start the background loop. No-op if already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="retention-sweep")
        logger.info(
            "retention.scheduler.started",
            hour=self._hour,
            minute=self._minute,
        )

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("retention.scheduler.stopped")

    async def _loop(self) -> None:
        while True:
            now = as_utc(self._clock())
            next_run = self.next_run_after(now)
            logger.info("retention.scheduler.next_run", at=next_run.isoformat())
            await self._sleep((next_run - now).total_seconds())
            try:
                await self.run_now()
            except Exception as exc:
                # Enumeration failed; keep the schedule for tomorrow
                logger.error("retention.scheduler.sweep_failed", error=str(exc))

    # ── On demand ───────────────────────────────────────────────────────

    async def run_now(self) -> SweepResult:
        """Run one sweep immediately. Sweeps never overlap in-process."""
        async with self._run_lock:
            result = await self._sweeper.run()
            self._last_result = result
            return result

    async def force_archive(
        self, request_id: int, reason: str = "Manual remediation"
    ) -> ForceArchiveResult:
        """Archive one request now, bypassing retention policies."""
        return await self._sweeper.force_archive(request_id, reason)
