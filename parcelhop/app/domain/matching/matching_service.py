"""
Geospatial Matcher.

Answers two questions:
- which pending missions can this carrier take from where they are?
- which available carriers should hear about a new parcel?

Read-only: it never reserves a parcel. Two carriers may see the same
mission; the state machine decides who wins on accept.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from parcelhop.app.core.config import Settings, settings as default_settings
from parcelhop.app.core.exceptions import ResourceNotFoundError, ValidationError
from parcelhop.app.domain.matching.geo import GeoPoint, within_radius
from parcelhop.app.domain.missions.repository import MissionRepository, CarrierCandidate
from parcelhop.app.models.address import Address
from parcelhop.app.models.parcel import Parcel

logger = logging.getLogger("parcelhop.matching")


@dataclass
class MissionCandidate:
    parcel: Parcel
    pickup_address: Address
    distance_km: float


class MatchingService:

    def __init__(self, repository: MissionRepository, settings: Optional[Settings] = None):
        self.repository = repository
        self.settings = settings or default_settings

    def _validate_radius(self, radius_km: float):
        low = self.settings.min_coverage_radius_km
        high = self.settings.max_coverage_radius_km
        if radius_km < low or radius_km > high:
            raise ValidationError(
                f"Radius must be between {low:g} and {high:g} km",
                details={"radius_km": radius_km}
            )

    async def find_available_missions(
        self,
        carrier_id: int,
        location: Optional[GeoPoint] = None,
        radius_km: Optional[float] = None,
    ) -> List[MissionCandidate]:
        """
        Pending, unassigned parcels within reach of a carrier.

        The request radius wins over the profile's coverage radius, and the
        request location over the profile's last known position.

        Returns:
            Candidates sorted by distance, then by pickup slot start.
            An empty list when nothing is in range.

        Raises:
            ResourceNotFoundError: carrier has no profile
            ValidationError: radius out of bounds, or no location known
        """
        profile = await self.repository.get_carrier_profile(carrier_id)
        if not profile:
            raise ResourceNotFoundError("Carrier profile", carrier_id)

        if radius_km is not None:
            self._validate_radius(radius_km)
        else:
            radius_km = profile.coverage_radius_km or self.settings.default_coverage_radius_km

        if location is None:
            if profile.current_latitude is None or profile.current_longitude is None:
                raise ValidationError(
                    "Location is required: share your position or pass latitude/longitude"
                )
            location = GeoPoint(profile.current_latitude, profile.current_longitude)

        candidates = await self.repository.find_pending_parcels_near(location, radius_km)

        missions = [
            MissionCandidate(
                parcel=c.parcel,
                pickup_address=c.address,
                distance_km=c.distance_km,
            )
            for c in candidates
            if c.parcel.vendor_id != carrier_id
        ]
        missions.sort(key=lambda m: (m.distance_km, m.parcel.pickup_slot_start))

        logger.debug(
            "Carrier %s: %d missions within %.1f km of (%.5f, %.5f)",
            carrier_id, len(missions), radius_km, location.latitude, location.longitude
        )
        return missions

    async def find_available_carriers(self, point: GeoPoint, radius_km: float) -> List[CarrierCandidate]:
        """Available carriers within radius_km that also cover the point themselves, nearest first."""
        candidates = await self.repository.find_available_carriers_near(point, radius_km)
        reachable = [
            c for c in candidates
            if within_radius(
                c.distance_km,
                c.profile.coverage_radius_km or self.settings.default_coverage_radius_km
            )
        ]
        reachable.sort(key=lambda c: c.distance_km)
        return reachable
