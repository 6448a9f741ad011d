"""
SQLAlchemy implementation of the mission repository.

State transitions are single ``UPDATE ... WHERE status = :expected AND
packaging_state = :expected`` statements; the affected row count decides
whether the transition won. No row locks are taken, so the guarantee holds
across processes sharing the database.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from parcelhop.app.core.exceptions import ResourceNotFoundError, StateConflictError
from parcelhop.app.domain.matching.geo import GeoPoint, bounding_box, haversine_distance, within_radius
from parcelhop.app.domain.missions.repository import (
    MissionRepository, ParcelCandidate, CarrierCandidate
)
from parcelhop.app.domain.missions.state import MissionState
from parcelhop.app.models.address import Address
from parcelhop.app.models.carrier_profile import CarrierProfile
from parcelhop.app.models.mission import Mission
from parcelhop.app.models.parcel import Parcel
from parcelhop.app.models.parcel_enums import ParcelStatus, PackagingState
from parcelhop.app.models.transaction import Transaction
from parcelhop.app.models.billing_enums import TransactionStatus


class SQLAlchemyMissionRepository(MissionRepository):

    def __init__(self, db: AsyncSession):
        self.db = db

    # --- Reads ---

    async def get_parcel_by_id(self, parcel_id: int) -> Optional[Parcel]:
        return await self.db.get(Parcel, parcel_id, populate_existing=True)

    async def get_mission_by_id(self, mission_id: int) -> Optional[Mission]:
        return await self.db.get(Mission, mission_id, populate_existing=True)

    async def get_mission_by_parcel_id(self, parcel_id: int) -> Optional[Mission]:
        result = await self.db.execute(
            select(Mission).where(Mission.parcel_id == parcel_id)
        )
        return result.scalar_one_or_none()

    async def get_address_by_id(self, address_id: int) -> Optional[Address]:
        return await self.db.get(Address, address_id)

    async def get_carrier_profile(self, user_id: int) -> Optional[CarrierProfile]:
        result = await self.db.execute(
            select(CarrierProfile).where(CarrierProfile.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def find_pending_parcels_near(self, point: GeoPoint, radius_km: float) -> List[ParcelCandidate]:
        min_lat, max_lat, min_lon, max_lon = bounding_box(point, radius_km)

        # Bounding box in SQL, exact great-circle distance below
        query = select(Parcel, Address).join(
            Address, Parcel.pickup_address_id == Address.id
        ).where(
            Parcel.status == ParcelStatus.PENDING,
            Parcel.carrier_id.is_(None),
            Address.latitude >= min_lat,
            Address.latitude <= max_lat,
            Address.longitude >= min_lon,
            Address.longitude <= max_lon,
        )
        result = await self.db.execute(query)

        candidates = []
        for parcel, address in result.all():
            distance_km = haversine_distance(
                point.latitude, point.longitude, address.latitude, address.longitude
            )
            if within_radius(distance_km, radius_km):
                candidates.append(ParcelCandidate(parcel=parcel, address=address, distance_km=distance_km))
        return candidates

    async def find_available_carriers_near(self, point: GeoPoint, radius_km: float) -> List[CarrierCandidate]:
        min_lat, max_lat, min_lon, max_lon = bounding_box(point, radius_km)

        query = select(CarrierProfile).where(
            CarrierProfile.is_available == True,
            CarrierProfile.current_latitude.is_not(None),
            CarrierProfile.current_longitude.is_not(None),
            CarrierProfile.current_latitude >= min_lat,
            CarrierProfile.current_latitude <= max_lat,
            CarrierProfile.current_longitude >= min_lon,
            CarrierProfile.current_longitude <= max_lon,
        )
        result = await self.db.execute(query)

        candidates = []
        for profile in result.scalars().all():
            distance_km = haversine_distance(
                point.latitude, point.longitude,
                profile.current_latitude, profile.current_longitude
            )
            if within_radius(distance_km, radius_km):
                candidates.append(CarrierCandidate(profile=profile, distance_km=distance_km))
        return candidates

    async def find_stalled_packaging(self, submitted_before: datetime) -> List[Parcel]:
        result = await self.db.execute(
            select(Parcel).where(
                Parcel.status == ParcelStatus.ACCEPTED,
                Parcel.packaging_state == PackagingState.PACKAGING_PENDING,
                Parcel.packaging_submitted_at < submitted_before,
            ).order_by(Parcel.packaging_submitted_at)
        )
        return list(result.scalars().all())

    async def list_missions_for_carrier(
        self,
        carrier_id: int,
        statuses: List[ParcelStatus],
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Mission]:
        query = select(Mission).join(Parcel, Mission.parcel_id == Parcel.id).where(
            Mission.carrier_id == carrier_id,
            Parcel.status.in_(statuses),
        ).order_by(Mission.accepted_at.desc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_missions_for_carrier(self, carrier_id: int, statuses: List[ParcelStatus]) -> int:
        result = await self.db.execute(
            select(func.count(Mission.id)).join(Parcel, Mission.parcel_id == Parcel.id).where(
                Mission.carrier_id == carrier_id,
                Parcel.status.in_(statuses),
            )
        )
        return result.scalar()

    async def list_parcels_for_vendor(
        self,
        vendor_id: int,
        status: Optional[ParcelStatus] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Tuple[List[Parcel], int]:
        conditions = [Parcel.vendor_id == vendor_id]
        if status is not None:
            conditions.append(Parcel.status == status)

        count_result = await self.db.execute(select(func.count(Parcel.id)).where(*conditions))
        total = count_result.scalar()

        query = select(Parcel).where(*conditions).order_by(Parcel.created_at.desc(), Parcel.id.desc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    # --- Writes ---

    async def add_parcel(self, parcel: Parcel) -> Parcel:
        self.db.add(parcel)
        await self.db.flush()
        await self.db.refresh(parcel)
        return parcel

    async def update_parcel_status(
        self,
        parcel_id: int,
        expected_state: MissionState,
        new_state: MissionState,
        fields: Optional[Dict[str, Any]] = None,
        expected_carrier_id: Optional[int] = None,
    ) -> Parcel:
        values = dict(fields or {})
        values["status"] = new_state.status
        values["packaging_state"] = new_state.packaging

        stmt = update(Parcel).where(
            Parcel.id == parcel_id,
            Parcel.status == expected_state.status,
            Parcel.packaging_state == expected_state.packaging,
        )
        if expected_carrier_id is not None:
            stmt = stmt.where(Parcel.carrier_id == expected_carrier_id)
        stmt = stmt.values(**values).execution_options(synchronize_session=False)

        result = await self.db.execute(stmt)

        parcel = await self.db.get(Parcel, parcel_id, populate_existing=True)
        if parcel is None:
            raise ResourceNotFoundError("Parcel", parcel_id)

        if result.rowcount != 1:
            raise StateConflictError(
                f"Parcel {parcel_id} is {parcel.state}, expected {expected_state}",
                details={
                    "parcel_id": parcel_id,
                    "current_state": parcel.state.phase,
                    "expected_state": expected_state.phase,
                }
            )

        return parcel

    async def create_mission(self, parcel_id: int, carrier_id: int, accepted_at: datetime) -> Mission:
        mission = Mission(
            parcel_id=parcel_id,
            carrier_id=carrier_id,
            accepted_at=accepted_at,
        )
        self.db.add(mission)
        await self.db.flush()
        await self.db.refresh(mission)
        return mission

    async def update_mission(self, mission_id: int, fields: Dict[str, Any]) -> Mission:
        await self.db.execute(
            update(Mission).where(Mission.id == mission_id).values(**fields)
            .execution_options(synchronize_session=False)
        )
        mission = await self.db.get(Mission, mission_id, populate_existing=True)
        if mission is None:
            raise ResourceNotFoundError("Mission", mission_id)
        return mission

    async def create_transaction(self, parcel: Parcel, mission: Mission) -> Transaction:
        transaction = Transaction(
            parcel_id=parcel.id,
            mission_id=mission.id,
            vendor_id=parcel.vendor_id,
            carrier_id=mission.carrier_id,
            amount=parcel.total_price,
            platform_fee=parcel.platform_fee,
            carrier_payout=parcel.carrier_payout,
            status=TransactionStatus.PENDING_RELEASE,
        )
        self.db.add(transaction)
        await self.db.flush()
        await self.db.refresh(transaction)
        return transaction

    async def increment_carrier_delivery_count(self, carrier_id: int) -> None:
        # Atomic in SQL, no read-modify-write
        await self.db.execute(
            update(CarrierProfile).where(CarrierProfile.user_id == carrier_id).values(
                total_deliveries=CarrierProfile.total_deliveries + 1
            ).execution_options(synchronize_session=False)
        )

    # --- Unit of work ---

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()
