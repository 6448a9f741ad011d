"""
Parcel intake.

Prices a new parcel, validates its pickup slot, issues the pickup code and
broadcasts it to carriers in range. Until a carrier accepts it, the vendor
may still edit the description and pickup slot.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from parcelhop.app.core.config import settings
from parcelhop.app.core.exceptions import (
    ResourceNotFoundError, InsufficientPermissionsError, StateConflictError, ValidationError
)
from parcelhop.app.domain.matching.geo import GeoPoint
from parcelhop.app.domain.matching.matching_service import MatchingService
from parcelhop.app.domain.missions import state as states
from parcelhop.app.domain.missions.events import MissionEvent
from parcelhop.app.domain.missions.repository import MissionRepository
from parcelhop.app.domain.pricing.pricing_engine import price
from parcelhop.app.models.parcel import Parcel
from parcelhop.app.models.parcel_enums import ParcelStatus, PackagingState, PickupMode
from parcelhop.app.schemas.parcel import ParcelCreate, ParcelUpdate
from parcelhop.app.services.notification_service import NotificationDispatcher

logger = logging.getLogger("parcelhop.parcels")

IMMEDIATE_PICKUP_WINDOW = timedelta(hours=2)
MIN_SLOT_LENGTH = timedelta(minutes=30)
MAX_SLOT_LENGTH = timedelta(hours=4)


def generate_pickup_code() -> str:
    """Six random digits from the OS CSPRNG."""
    return f"{secrets.randbelow(1_000_000):06d}"


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


@dataclass
class ParcelPage:
    parcels: List[Parcel]
    total: int
    page: int
    page_size: int


class ParcelService:

    def __init__(
        self,
        repository: MissionRepository,
        dispatcher: NotificationDispatcher,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.repository = repository
        self.dispatcher = dispatcher
        self.clock = clock
        self.matching = MatchingService(repository)

    def resolve_pickup_slot(self, data: ParcelCreate) -> tuple[datetime, datetime]:
        now = self.clock()

        if data.pickup_mode == PickupMode.IMMEDIATE:
            return now, now + IMMEDIATE_PICKUP_WINDOW

        if data.pickup_slot_start is None or data.pickup_slot_end is None:
            raise ValidationError("Scheduled pickups need a slot start and end")

        start = _naive_utc(data.pickup_slot_start)
        end = _naive_utc(data.pickup_slot_end)
        self._check_slot(start, end)
        return start, end

    def _check_slot(self, start: datetime, end: datetime, start_changed: bool = True):
        if start_changed and start <= self.clock():
            raise ValidationError("Pickup slot must start in the future")
        if end <= start:
            raise ValidationError("Pickup slot must end after it starts")

        length = end - start
        if length < MIN_SLOT_LENGTH or length > MAX_SLOT_LENGTH:
            raise ValidationError(
                "Pickup slot must last between 30 minutes and 4 hours",
                details={"slot_minutes": int(length.total_seconds() // 60)}
            )

    async def create_parcel(self, vendor_id: int, data: ParcelCreate) -> Parcel:
        """
        Create a PENDING parcel for a vendor.

        Raises:
            ResourceNotFoundError: pickup address missing or not the vendor's
            ValidationError: invalid pickup slot
        """
        address = await self.repository.get_address_by_id(data.pickup_address_id)
        if not address or address.user_id != vendor_id or not address.is_active:
            raise ResourceNotFoundError("Address", data.pickup_address_id)

        slot_start, slot_end = self.resolve_pickup_slot(data)
        pricing = price(data.size)

        parcel = Parcel(
            vendor_id=vendor_id,
            pickup_address_id=address.id,
            dropoff_type=data.dropoff_type,
            dropoff_name=data.dropoff_name,
            dropoff_address=data.dropoff_address,
            size=data.size,
            weight_estimate=data.weight_estimate,
            description=data.description,
            pickup_mode=data.pickup_mode,
            pickup_slot_start=slot_start,
            pickup_slot_end=slot_end,
            pickup_code=generate_pickup_code(),
            base_price=pricing.base_price,
            platform_fee=pricing.platform_fee,
            carrier_payout=pricing.carrier_payout,
            total_price=pricing.total_price,
            status=ParcelStatus.PENDING,
            packaging_state=PackagingState.NOT_SUBMITTED,
        )

        try:
            parcel = await self.repository.add_parcel(parcel)
            await self.repository.commit()
        except Exception:
            await self.repository.rollback()
            raise

        logger.info("Parcel %s created by vendor %s (%s, %s)", parcel.id, vendor_id, parcel.size.value, parcel.total_price)

        await self._broadcast(parcel, GeoPoint(address.latitude, address.longitude))
        return parcel

    async def update_parcel(self, vendor_id: int, parcel_id: int, data: ParcelUpdate) -> Parcel:
        """
        Edit the description or pickup slot of a parcel no carrier has taken yet.

        The write is conditional on the parcel still being PENDING, so an
        edit racing a carrier's accept loses with a StateConflict.

        Raises:
            ResourceNotFoundError: unknown parcel
            InsufficientPermissionsError: not the vendor's parcel
            StateConflictError: parcel already accepted, picked up or cancelled
            ValidationError: invalid pickup slot
        """
        parcel = await self.repository.get_parcel_by_id(parcel_id)
        if not parcel:
            raise ResourceNotFoundError("Parcel", parcel_id)
        if parcel.vendor_id != vendor_id:
            raise InsufficientPermissionsError("Only the parcel's vendor can edit it")
        if parcel.state != states.PENDING:
            raise StateConflictError(
                f"Cannot edit parcel {parcel.id}: it is {parcel.state}",
                details={
                    "parcel_id": parcel.id,
                    "current_state": parcel.state.phase,
                    "expected_state": states.PENDING.phase,
                }
            )

        changes = data.model_dump(exclude_unset=True)
        fields = {}
        if "description" in changes:
            fields["description"] = changes["description"]

        if data.pickup_slot_start is not None or data.pickup_slot_end is not None:
            start = _naive_utc(data.pickup_slot_start) if data.pickup_slot_start else parcel.pickup_slot_start
            end = _naive_utc(data.pickup_slot_end) if data.pickup_slot_end else parcel.pickup_slot_end
            self._check_slot(start, end, start_changed=start != parcel.pickup_slot_start)
            fields.update(pickup_slot_start=start, pickup_slot_end=end, pickup_mode=PickupMode.SCHEDULED)

        if not fields:
            return parcel

        try:
            parcel = await self.repository.update_parcel_status(parcel_id, states.PENDING, states.PENDING, fields)
            await self.repository.commit()
        except Exception:
            await self.repository.rollback()
            raise

        logger.info("Parcel %s edited by vendor %s (%s)", parcel.id, vendor_id, ", ".join(sorted(fields)))
        return parcel

    async def _broadcast(self, parcel: Parcel, pickup_point: GeoPoint):
        # A lookup failure must not fail parcel creation
        try:
            carriers = await self.matching.find_available_carriers(
                pickup_point, settings.max_coverage_radius_km
            )
        except Exception:
            logger.exception("Could not look up carriers near parcel %s", parcel.id)
            return

        for candidate in carriers:
            if candidate.profile.user_id == parcel.vendor_id:
                continue
            try:
                await self.dispatcher.emit(MissionEvent.PARCEL_CREATED, {
                    "parcel_id": parcel.id,
                    "vendor_id": parcel.vendor_id,
                    "size": parcel.size.value,
                    "carrier_payout": parcel.carrier_payout,
                    "distance_km": round(candidate.distance_km, 1),
                    "recipient_ids": [candidate.profile.user_id],
                })
            except Exception:
                logger.exception("Dispatcher raised for ParcelCreated on parcel %s", parcel.id)

    async def list_parcels(
        self,
        vendor_id: int,
        status: Optional[ParcelStatus] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> ParcelPage:
        parcels, total = await self.repository.list_parcels_for_vendor(
            vendor_id, status, offset=(page - 1) * page_size, limit=page_size
        )
        return ParcelPage(parcels=parcels, total=total, page=page, page_size=page_size)
