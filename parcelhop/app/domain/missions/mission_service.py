"""
Mission State Machine (Domain Logic).

Owns every parcel/mission transition:

    PENDING → ACCEPTED → PACKAGING_PENDING → PACKAGING_CONFIRMED → PICKED_UP → DELIVERED
    CANCELLED from any non-terminal state

Each transition:
1. Loads the parcel (NotFound)
2. Checks the caller's role for this transition (Forbidden)
3. Validates input (ValidationError)
4. Checks the current state for a clear error (StateConflict)
5. Writes through a conditional update keyed on the expected state;
   a lost race also surfaces as StateConflict
6. Commits, then emits lifecycle events (fire-and-forget)
"""

import hmac
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Any, List, Optional

from parcelhop.app.core.config import settings
from parcelhop.app.core.exceptions import (
    ResourceNotFoundError,
    InsufficientPermissionsError,
    StateConflictError,
    InvalidPickupCodeError,
    ValidationError,
)
from parcelhop.app.domain.matching.geo import GeoPoint, haversine_distance, estimate_travel_minutes
from parcelhop.app.domain.missions import state as states
from parcelhop.app.domain.missions.events import MissionEvent
from parcelhop.app.domain.missions.repository import MissionRepository
from parcelhop.app.domain.missions.state import MissionState
from parcelhop.app.models.mission import Mission
from parcelhop.app.models.parcel import Parcel
from parcelhop.app.models.parcel_enums import ParcelStatus, PackagingState
from parcelhop.app.models.transaction import Transaction
from parcelhop.app.services.notification_service import NotificationDispatcher, recipients

logger = logging.getLogger("parcelhop.missions")

ACTIVE_STATUSES = [ParcelStatus.ACCEPTED, ParcelStatus.PICKED_UP]
HISTORY_STATUSES = [ParcelStatus.DELIVERED, ParcelStatus.CANCELLED]


@dataclass
class AcceptResult:
    parcel: Parcel
    mission: Mission


@dataclass
class JourneyResult:
    mission: Mission
    eta_minutes: int
    estimated_arrival: datetime


@dataclass
class DeliveryResult:
    parcel: Parcel
    mission: Mission
    transaction: Transaction


@dataclass
class PackagingStatus:
    status: str  # PENDING | CARRIER_CONFIRMED | FULLY_CONFIRMED | REJECTED
    photo_url: Optional[str]
    carrier_confirmed_at: Optional[datetime]
    vendor_confirmed_at: Optional[datetime]
    auto_confirmed: bool
    rejected_at: Optional[datetime]
    rejection_reason: Optional[str]
    confirmation_deadline: Optional[datetime]
    hours_remaining: Optional[int]


@dataclass
class MissionPage:
    missions: List[Mission]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0


class MissionService:

    def __init__(
        self,
        repository: MissionRepository,
        dispatcher: NotificationDispatcher,
        clock: Callable[[], datetime] = datetime.utcnow,
        grace_period: Optional[timedelta] = None,
    ):
        self.repository = repository
        self.dispatcher = dispatcher
        self.clock = clock
        if grace_period is None:
            grace_period = timedelta(hours=settings.packaging_grace_period_hours)
        self.grace_period = grace_period

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _transaction(self):
        try:
            yield
            await self.repository.commit()
        except Exception:
            await self.repository.rollback()
            raise

    async def _get_parcel(self, parcel_id: int) -> Parcel:
        parcel = await self.repository.get_parcel_by_id(parcel_id)
        if not parcel:
            raise ResourceNotFoundError("Parcel", parcel_id)
        return parcel

    async def get_mission_for_carrier(self, mission_id: int, carrier_id: int) -> tuple[Mission, Parcel]:
        mission = await self.repository.get_mission_by_id(mission_id)
        if not mission:
            raise ResourceNotFoundError("Mission", mission_id)
        if mission.carrier_id != carrier_id:
            raise InsufficientPermissionsError("This mission is not assigned to you")
        parcel = await self._get_parcel(mission.parcel_id)
        if parcel.carrier_id != carrier_id:
            raise StateConflictError(
                f"Mission {mission_id} is no longer assigned to you",
                details={"mission_id": mission_id, "state": parcel.state.phase}
            )
        return mission, parcel

    @staticmethod
    def _require_state(parcel: Parcel, expected: MissionState, action: str):
        if parcel.state != expected:
            raise StateConflictError(
                f"Cannot {action}: parcel {parcel.id} is {parcel.state}, expected {expected}",
                details={
                    "parcel_id": parcel.id,
                    "current_state": parcel.state.phase,
                    "expected_state": expected.phase,
                }
            )

    @staticmethod
    def _require_vendor(parcel: Parcel, user_id: int):
        if parcel.vendor_id != user_id:
            raise InsufficientPermissionsError("Only the parcel's vendor can perform this action")

    @staticmethod
    def _require_participant(parcel: Parcel, user_id: int):
        if user_id != parcel.vendor_id and (parcel.carrier_id is None or user_id != parcel.carrier_id):
            raise InsufficientPermissionsError("Only the vendor or the assigned carrier can perform this action")

    async def _emit(self, event_name: str, parcel: Parcel, recipient_ids: List[int], **extra):
        payload: Dict[str, Any] = {
            "parcel_id": parcel.id,
            "vendor_id": parcel.vendor_id,
            "carrier_id": parcel.carrier_id,
            "state": parcel.state.phase,
            "recipient_ids": recipient_ids,
        }
        payload.update(extra)
        try:
            await self.dispatcher.emit(event_name, payload)
        except Exception:
            # Dispatch must never undo or block a committed transition
            logger.exception("Dispatcher raised for %s on parcel %s", event_name, parcel.id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def accept(self, parcel_id: int, carrier_id: int) -> AcceptResult:
        """
        Carrier accepts a PENDING parcel.

        Exactly one concurrent accept wins: the write is conditioned on the
        parcel still being PENDING.
        """
        parcel = await self._get_parcel(parcel_id)

        profile = await self.repository.get_carrier_profile(carrier_id)
        if not profile:
            raise InsufficientPermissionsError("Only carriers can accept missions")
        if parcel.vendor_id == carrier_id:
            raise InsufficientPermissionsError("You cannot accept your own parcel")

        self._require_state(parcel, states.PENDING, "accept parcel")

        now = self.clock()
        async with self._transaction():
            parcel = await self.repository.update_parcel_status(
                parcel_id,
                states.PENDING,
                states.ACCEPTED,
                {"carrier_id": carrier_id, "accepted_at": now},
            )
            mission = await self.repository.create_mission(parcel_id, carrier_id, now)

        logger.info("Parcel %s accepted by carrier %s (mission %s)", parcel_id, carrier_id, mission.id)
        await self._emit(
            MissionEvent.PARCEL_ACCEPTED, parcel, recipients(parcel.vendor_id),
            mission_id=mission.id,
        )
        return AcceptResult(parcel=parcel, mission=mission)

    async def start_journey(self, mission_id: int, carrier_id: int, location: GeoPoint) -> JourneyResult:
        """Record departure towards the pickup address. Status is unchanged."""
        mission, parcel = await self.get_mission_for_carrier(mission_id, carrier_id)
        self._require_state(parcel, states.ACCEPTED, "start journey")

        address = await self.repository.get_address_by_id(parcel.pickup_address_id)
        distance_km = haversine_distance(
            location.latitude, location.longitude, address.latitude, address.longitude
        )
        eta_minutes = estimate_travel_minutes(distance_km)
        now = self.clock()
        estimated_arrival = now + timedelta(minutes=eta_minutes)

        async with self._transaction():
            mission = await self.repository.update_mission(mission.id, {
                "departed_at": now,
                "departure_latitude": location.latitude,
                "departure_longitude": location.longitude,
                "estimated_arrival": estimated_arrival,
            })

        await self._emit(
            MissionEvent.CARRIER_DEPARTED, parcel, recipients(parcel.vendor_id),
            mission_id=mission.id, eta_minutes=eta_minutes, estimated_arrival=estimated_arrival,
        )
        return JourneyResult(mission=mission, eta_minutes=eta_minutes, estimated_arrival=estimated_arrival)

    async def arrived_at_pickup(self, mission_id: int, carrier_id: int) -> Mission:
        """
        Record arrival at the pickup address. The packaging handshake starts next.

        Arrival is recorded once per mission; after a packaging rejection the
        carrier is still on site and resubmits without signalling again.
        """
        mission, parcel = await self.get_mission_for_carrier(mission_id, carrier_id)
        self._require_state(parcel, states.ACCEPTED, "signal arrival")
        if mission.arrived_at is not None:
            raise StateConflictError(
                f"Arrival already recorded for mission {mission.id}",
                details={
                    "parcel_id": parcel.id,
                    "current_state": parcel.state.phase,
                    "arrived_at": mission.arrived_at.isoformat(),
                }
            )

        async with self._transaction():
            mission = await self.repository.update_mission(mission.id, {"arrived_at": self.clock()})

        await self._emit(
            MissionEvent.CARRIER_ARRIVED, parcel, recipients(parcel.vendor_id), mission_id=mission.id,
        )
        return mission

    async def confirm_packaging(self, mission_id: int, carrier_id: int, photo_url: str) -> Parcel:
        """
        Carrier submits packaging photo evidence.

        Moves ACCEPTED → PACKAGING_PENDING and starts the vendor's
        confirmation clock. Pickup is not yet allowed.
        """
        mission, parcel = await self.get_mission_for_carrier(mission_id, carrier_id)

        if not photo_url or not photo_url.strip():
            raise ValidationError("A packaging photo is required")
        if mission.arrived_at is None:
            raise StateConflictError(
                "Signal your arrival at the pickup address before confirming packaging",
                details={"mission_id": mission_id}
            )
        self._require_state(parcel, states.ACCEPTED, "confirm packaging")

        now = self.clock()
        async with self._transaction():
            parcel = await self.repository.update_parcel_status(
                parcel.id,
                states.ACCEPTED,
                states.PACKAGING_PENDING,
                {"packaging_photo_url": photo_url.strip(), "packaging_submitted_at": now},
                expected_carrier_id=carrier_id,
            )

        logger.info("Packaging submitted for parcel %s by carrier %s", parcel.id, carrier_id)
        await self._emit(
            MissionEvent.PACKAGING_SUBMITTED, parcel, recipients(parcel.vendor_id),
            mission_id=mission.id,
            photo_url=parcel.packaging_photo_url,
            confirmation_deadline=now + self.grace_period,
            grace_period_hours=int(self.grace_period.total_seconds() // 3600),
        )
        return parcel

    async def vendor_confirm_packaging(self, parcel_id: int, vendor_id: int) -> Parcel:
        """Vendor approves packaging: PACKAGING_PENDING → PACKAGING_CONFIRMED."""
        parcel = await self._get_parcel(parcel_id)
        self._require_vendor(parcel, vendor_id)
        self._require_state(parcel, states.PACKAGING_PENDING, "confirm packaging")

        async with self._transaction():
            parcel = await self.repository.update_parcel_status(
                parcel_id,
                states.PACKAGING_PENDING,
                states.PACKAGING_CONFIRMED,
                {"packaging_confirmed_at": self.clock(), "packaging_auto_confirmed": False},
            )

        logger.info("Packaging confirmed for parcel %s by vendor %s", parcel_id, vendor_id)
        await self._emit(
            MissionEvent.PACKAGING_CONFIRMED, parcel, recipients(parcel.carrier_id), auto_confirmed=False,
        )
        return parcel

    async def auto_confirm_packaging(self, parcel_id: int) -> Parcel:
        """
        System-actor confirmation used by the scheduler.

        Same transition as vendor_confirm_packaging; a parcel that was
        already resolved fails with StateConflictError.
        """
        parcel = await self._get_parcel(parcel_id)
        self._require_state(parcel, states.PACKAGING_PENDING, "auto-confirm packaging")

        async with self._transaction():
            parcel = await self.repository.update_parcel_status(
                parcel_id,
                states.PACKAGING_PENDING,
                states.PACKAGING_CONFIRMED,
                {"packaging_confirmed_at": self.clock(), "packaging_auto_confirmed": True},
            )

        logger.info("Packaging auto-confirmed for parcel %s", parcel_id)
        await self._emit(
            MissionEvent.PACKAGING_CONFIRMED, parcel, recipients(parcel.vendor_id, parcel.carrier_id),
            auto_confirmed=True,
        )
        return parcel

    async def vendor_reject_packaging(self, parcel_id: int, vendor_id: int, reason: Optional[str]) -> Parcel:
        """Vendor rejects packaging; the carrier must redo it (back to ACCEPTED)."""
        parcel = await self._get_parcel(parcel_id)
        self._require_vendor(parcel, vendor_id)

        if reason is None or not reason.strip():
            raise ValidationError("A rejection reason is required")

        self._require_state(parcel, states.PACKAGING_PENDING, "reject packaging")

        async with self._transaction():
            parcel = await self.repository.update_parcel_status(
                parcel_id,
                states.PACKAGING_PENDING,
                states.ACCEPTED,
                {
                    "packaging_photo_url": None,
                    "packaging_submitted_at": None,
                    "packaging_rejected_at": self.clock(),
                    "packaging_rejection_reason": reason.strip(),
                },
            )

        logger.info("Packaging rejected for parcel %s by vendor %s", parcel_id, vendor_id)
        await self._emit(
            MissionEvent.PACKAGING_REJECTED, parcel, recipients(parcel.carrier_id), reason=reason.strip(),
        )
        return parcel

    async def confirm_pickup(self, user_id: int, parcel_id: int, pickup_code: str) -> Parcel:
        """
        Verify the 6-digit pickup code and mark the parcel PICKED_UP.

        Requires a confirmed packaging handshake. State is checked before
        the code so a wrong-state call never reveals code validity.
        """
        parcel = await self._get_parcel(parcel_id)
        self._require_participant(parcel, user_id)
        self._require_state(parcel, states.PACKAGING_CONFIRMED, "confirm pickup")

        supplied = (pickup_code or "").strip()
        if not hmac.compare_digest(supplied.encode(), parcel.pickup_code.encode()):
            raise InvalidPickupCodeError(parcel_id)

        now = self.clock()
        async with self._transaction():
            parcel = await self.repository.update_parcel_status(
                parcel_id,
                states.PACKAGING_CONFIRMED,
                states.PICKED_UP,
                {"picked_up_at": now},
            )
            mission = await self.repository.get_mission_by_parcel_id(parcel_id)
            if mission:
                await self.repository.update_mission(mission.id, {"picked_up_at": now})

        logger.info("Parcel %s picked up (confirmed by user %s)", parcel_id, user_id)
        await self._emit(
            MissionEvent.PARCEL_PICKED_UP, parcel, recipients(parcel.vendor_id, parcel.carrier_id),
            mission_id=mission.id if mission else None,
        )
        return parcel

    async def deliver(
        self,
        mission_id: int,
        carrier_id: int,
        proof_photo_url: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> DeliveryResult:
        """
        Carrier delivers the parcel: PICKED_UP → DELIVERED.

        The payout is the price captured at parcel creation. This is the
        only transition that records a Transaction.
        """
        mission, parcel = await self.get_mission_for_carrier(mission_id, carrier_id)
        self._require_state(parcel, states.PICKED_UP, "deliver")

        now = self.clock()
        async with self._transaction():
            parcel = await self.repository.update_parcel_status(
                parcel.id,
                states.PICKED_UP,
                states.DELIVERED,
                {"delivered_at": now},
                expected_carrier_id=carrier_id,
            )
            mission = await self.repository.update_mission(mission.id, {
                "delivered_at": now,
                "proof_photo_url": proof_photo_url,
                "carrier_notes": notes,
                "closed_at": now,
            })
            transaction = await self.repository.create_transaction(parcel, mission)
            await self.repository.increment_carrier_delivery_count(carrier_id)

        logger.info(
            "Parcel %s delivered by carrier %s, transaction %s payout %s",
            parcel.id, carrier_id, transaction.id, transaction.carrier_payout
        )
        await self._emit(
            MissionEvent.PARCEL_DELIVERED, parcel, recipients(parcel.vendor_id),
            mission_id=mission.id, proof_photo_url=proof_photo_url,
        )
        await self._emit(
            MissionEvent.PAYMENT_RELEASE_REQUESTED, parcel, recipients(carrier_id),
            mission_id=mission.id,
            transaction_id=transaction.id,
            amount=transaction.amount,
            platform_fee=transaction.platform_fee,
            carrier_payout=transaction.carrier_payout,
        )
        return DeliveryResult(parcel=parcel, mission=mission, transaction=transaction)

    async def cancel(self, user_id: int, parcel_id: int, reason: Optional[str] = None) -> Parcel:
        """
        Cancel a parcel from any non-terminal state.

        Final: the carrier assignment is released and the parcel never
        returns to the matching pool.
        """
        parcel = await self._get_parcel(parcel_id)
        self._require_participant(parcel, user_id)

        current = parcel.state
        if current.is_terminal:
            raise StateConflictError(
                f"Cannot cancel: parcel {parcel_id} is already {current}",
                details={"parcel_id": parcel_id, "current_state": current.phase}
            )

        previous_carrier_id = parcel.carrier_id
        now = self.clock()
        async with self._transaction():
            parcel = await self.repository.update_parcel_status(
                parcel_id,
                current,
                states.cancelled_from(current),
                {
                    "carrier_id": None,
                    "cancelled_at": now,
                    "cancellation_reason": reason.strip() if reason else None,
                    "cancelled_by_id": user_id,
                },
            )
            mission = await self.repository.get_mission_by_parcel_id(parcel_id)
            if mission and mission.closed_at is None:
                await self.repository.update_mission(mission.id, {"closed_at": now})

        logger.info("Parcel %s cancelled by user %s from %s", parcel_id, user_id, current)
        other_party = previous_carrier_id if user_id == parcel.vendor_id else parcel.vendor_id
        await self._emit(
            MissionEvent.PARCEL_CANCELLED, parcel, recipients(other_party),
            cancelled_by=user_id, reason=parcel.cancellation_reason, previous_carrier_id=previous_carrier_id,
        )
        return parcel

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_parcel_for_user(self, parcel_id: int, user_id: int) -> Parcel:
        parcel = await self._get_parcel(parcel_id)
        self._require_participant(parcel, user_id)
        return parcel

    async def get_packaging_status(self, parcel_id: int, user_id: int) -> PackagingStatus:
        parcel = await self.get_parcel_for_user(parcel_id, user_id)

        if parcel.packaging_state == PackagingState.PACKAGING_CONFIRMED:
            status = "FULLY_CONFIRMED"
        elif parcel.packaging_state == PackagingState.PACKAGING_PENDING:
            status = "CARRIER_CONFIRMED"
        elif parcel.packaging_rejected_at is not None:
            status = "REJECTED"
        else:
            status = "PENDING"

        deadline = None
        hours_remaining = None
        if status == "CARRIER_CONFIRMED" and parcel.packaging_submitted_at is not None:
            deadline = parcel.packaging_submitted_at + self.grace_period
            seconds_left = (deadline - self.clock()).total_seconds()
            hours_remaining = max(0, -(-int(seconds_left) // 3600))

        return PackagingStatus(
            status=status,
            photo_url=parcel.packaging_photo_url,
            carrier_confirmed_at=parcel.packaging_submitted_at,
            vendor_confirmed_at=parcel.packaging_confirmed_at,
            auto_confirmed=parcel.packaging_auto_confirmed,
            rejected_at=parcel.packaging_rejected_at,
            rejection_reason=parcel.packaging_rejection_reason,
            confirmation_deadline=deadline,
            hours_remaining=hours_remaining,
        )

    async def current_missions(self, carrier_id: int) -> List[Mission]:
        return await self.repository.list_missions_for_carrier(carrier_id, ACTIVE_STATUSES)

    async def mission_history(self, carrier_id: int, page: int = 1, limit: int = 10) -> MissionPage:
        offset = (page - 1) * limit
        missions = await self.repository.list_missions_for_carrier(
            carrier_id, HISTORY_STATUSES, offset=offset, limit=limit
        )
        total = await self.repository.count_missions_for_carrier(carrier_id, HISTORY_STATUSES)
        return MissionPage(missions=missions, page=page, limit=limit, total=total)
