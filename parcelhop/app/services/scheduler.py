"""
Packaging auto-confirmation scheduler.

Vendors have a grace period to confirm or reject the carrier's packaging
evidence. Missions still waiting after that are confirmed on the vendor's
behalf by a periodic sweep so the carrier is never blocked.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import async_sessionmaker

from parcelhop.app.core.config import settings
from parcelhop.app.core.exceptions import StateConflictError
from parcelhop.app.domain.missions.mission_service import MissionService
from parcelhop.app.repositories.parcel_repository import SQLAlchemyMissionRepository
from parcelhop.app.services.audit import AuditAction, log_parcel_event
from parcelhop.app.services.notification_service import (
    NotificationDispatcher, InAppNotificationDispatcher
)

logger = logging.getLogger("parcelhop.scheduler")

JOB_ID = "packaging-auto-confirm"


@dataclass
class SweepOutcome:
    parcel_id: int
    result: str  # auto_confirmed | skipped | error
    error: Optional[str] = None


@dataclass
class SweepResult:
    processed_count: int = 0
    outcomes: List[SweepOutcome] = field(default_factory=list)


class PackagingConfirmationScheduler:

    def __init__(
        self,
        session_factory: async_sessionmaker,
        dispatcher: Optional[NotificationDispatcher] = None,
        grace_period: Optional[timedelta] = None,
        interval: Optional[timedelta] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher or InAppNotificationDispatcher(session_factory)
        if grace_period is None:
            grace_period = timedelta(hours=settings.packaging_grace_period_hours)
        self.grace_period = grace_period
        if interval is None:
            interval = timedelta(minutes=settings.auto_confirm_interval_minutes)
        self.interval = interval
        self.clock = clock

        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self._stopped = False
        self._current: Optional[asyncio.Task] = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def is_sweeping(self) -> bool:
        return self._running

    async def sweep(self) -> SweepResult:
        """
        Auto-confirm every mission whose packaging has waited past the grace period.

        Each mission runs in its own session and transaction: one failure is
        logged and recorded, never propagated. Missions resolved concurrently
        by their vendor are reported as skipped.
        """
        if self._running:
            logger.info("Previous sweep still running, skipping tick")
            return SweepResult()

        self._running = True
        self._idle.clear()
        try:
            return await self._sweep()
        finally:
            self._running = False
            self._idle.set()

    async def _sweep(self) -> SweepResult:
        result = SweepResult()
        cutoff = self.clock() - self.grace_period

        try:
            async with self.session_factory() as session:
                stalled = await SQLAlchemyMissionRepository(session).find_stalled_packaging(cutoff)
                parcel_ids = [parcel.id for parcel in stalled]
        except Exception:
            logger.exception("Could not load stalled packaging confirmations")
            return result

        if not parcel_ids:
            logger.debug("No packaging confirmations past %s", cutoff.isoformat())
            return result

        logger.info("Auto-confirming packaging for %d parcels", len(parcel_ids))

        for parcel_id in parcel_ids:
            outcome = await self._confirm_one(parcel_id)
            result.outcomes.append(outcome)
            if outcome.result == "auto_confirmed":
                result.processed_count += 1

        logger.info(
            "Sweep finished: %d confirmed, %d skipped, %d errors",
            result.processed_count,
            sum(1 for o in result.outcomes if o.result == "skipped"),
            sum(1 for o in result.outcomes if o.result == "error"),
        )
        return result

    async def _confirm_one(self, parcel_id: int) -> SweepOutcome:
        try:
            async with self.session_factory() as session:
                service = MissionService(
                    SQLAlchemyMissionRepository(session),
                    self.dispatcher,
                    clock=self.clock,
                    grace_period=self.grace_period,
                )
                await service.auto_confirm_packaging(parcel_id)
        except StateConflictError as e:
            logger.info("Parcel %s no longer awaiting packaging confirmation: %s", parcel_id, e.message)
            return SweepOutcome(parcel_id=parcel_id, result="skipped")
        except Exception as e:
            logger.exception("Auto-confirmation failed for parcel %s", parcel_id)
            return SweepOutcome(parcel_id=parcel_id, result="error", error=str(e))

        try:
            async with self.session_factory() as session:
                await log_parcel_event(session, AuditAction.PACKAGING_AUTO_CONFIRMED, parcel_id)
        except Exception:
            logger.exception("Audit log failed for auto-confirmed parcel %s", parcel_id)

        return SweepOutcome(parcel_id=parcel_id, result="auto_confirmed")

    async def _tick(self):
        if self._stopped:
            return
        self._current = asyncio.ensure_future(self.sweep())
        # Shielded so scheduler shutdown cannot cancel a sweep halfway
        await asyncio.shield(self._current)

    def start(self):
        """Register the interval job; the first sweep runs immediately."""
        if self._scheduler is not None:
            return
        self._stopped = False
        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._scheduler.add_job(
            self._tick,
            "interval",
            seconds=int(self.interval.total_seconds()),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )
        self._scheduler.start()
        logger.info(
            "Packaging auto-confirmation every %s (grace period %s)", self.interval, self.grace_period
        )

    async def stop(self):
        """Stop scheduling new sweeps and wait for an in-flight sweep to finish."""
        self._stopped = True
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        if self._running:
            logger.info("Waiting for in-flight sweep to finish")
            await self._idle.wait()
        self._current = None
        logger.info("Packaging auto-confirmation stopped")
