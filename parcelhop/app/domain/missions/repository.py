"""
Mission repository port.

The storage boundary consumed by the mission engine, the matcher and the
scheduler. Every lifecycle write goes through ``update_parcel_status``,
which must be a single conditional update keyed on the expected
composite state; a mismatch raises StateConflictError.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from parcelhop.app.domain.matching.geo import GeoPoint
from parcelhop.app.domain.missions.state import MissionState
from parcelhop.app.models.address import Address
from parcelhop.app.models.carrier_profile import CarrierProfile
from parcelhop.app.models.mission import Mission
from parcelhop.app.models.parcel import Parcel
from parcelhop.app.models.parcel_enums import ParcelStatus
from parcelhop.app.models.transaction import Transaction


@dataclass
class ParcelCandidate:
    """A pending parcel with its pickup address and distance from the query point."""
    parcel: Parcel
    address: Address
    distance_km: float


@dataclass
class CarrierCandidate:
    profile: CarrierProfile
    distance_km: float


class MissionRepository(ABC):

    # --- Reads ---

    @abstractmethod
    async def get_parcel_by_id(self, parcel_id: int) -> Optional[Parcel]:
        ...

    @abstractmethod
    async def get_mission_by_id(self, mission_id: int) -> Optional[Mission]:
        ...

    @abstractmethod
    async def get_mission_by_parcel_id(self, parcel_id: int) -> Optional[Mission]:
        ...

    @abstractmethod
    async def get_address_by_id(self, address_id: int) -> Optional[Address]:
        ...

    @abstractmethod
    async def get_carrier_profile(self, user_id: int) -> Optional[CarrierProfile]:
        ...

    @abstractmethod
    async def find_pending_parcels_near(self, point: GeoPoint, radius_km: float) -> List[ParcelCandidate]:
        """Unassigned PENDING parcels whose pickup address lies within radius_km (inclusive)."""

    @abstractmethod
    async def find_available_carriers_near(self, point: GeoPoint, radius_km: float) -> List[CarrierCandidate]:
        """Available carriers with a known position within radius_km (inclusive)."""

    @abstractmethod
    async def find_stalled_packaging(self, submitted_before: datetime) -> List[Parcel]:
        """ACCEPTED parcels in PACKAGING_PENDING submitted before the cutoff."""

    @abstractmethod
    async def list_missions_for_carrier(
        self,
        carrier_id: int,
        statuses: List[ParcelStatus],
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Mission]:
        ...

    @abstractmethod
    async def count_missions_for_carrier(self, carrier_id: int, statuses: List[ParcelStatus]) -> int:
        ...

    @abstractmethod
    async def list_parcels_for_vendor(
        self,
        vendor_id: int,
        status: Optional[ParcelStatus] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Tuple[List[Parcel], int]:
        """A page of the vendor's parcels, newest first, and the total count."""

    # --- Writes ---

    @abstractmethod
    async def add_parcel(self, parcel: Parcel) -> Parcel:
        ...

    @abstractmethod
    async def update_parcel_status(
        self,
        parcel_id: int,
        expected_state: MissionState,
        new_state: MissionState,
        fields: Optional[Dict[str, Any]] = None,
        expected_carrier_id: Optional[int] = None,
    ) -> Parcel:
        """
        Conditionally move a parcel from expected_state to new_state.

        Raises:
            StateConflictError: if the stored state (or assigned carrier,
                when expected_carrier_id is given) no longer matches
        """

    @abstractmethod
    async def create_mission(self, parcel_id: int, carrier_id: int, accepted_at: datetime) -> Mission:
        ...

    @abstractmethod
    async def update_mission(self, mission_id: int, fields: Dict[str, Any]) -> Mission:
        ...

    @abstractmethod
    async def create_transaction(
        self,
        parcel: Parcel,
        mission: Mission,
    ) -> Transaction:
        """Record the payment split captured on the parcel."""

    @abstractmethod
    async def increment_carrier_delivery_count(self, carrier_id: int) -> None:
        ...

    # --- Unit of work ---

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...
