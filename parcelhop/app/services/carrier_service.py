"""
Carrier profile service.

Availability, live position and coverage radius used by the matcher.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from parcelhop.app.core.config import settings
from parcelhop.app.core.exceptions import ResourceNotFoundError, ValidationError
from parcelhop.app.models.carrier_profile import CarrierProfile

logger = logging.getLogger("parcelhop.carriers")


class CarrierService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_profile(self, carrier_id: int) -> CarrierProfile:
        result = await self.db.execute(
            select(CarrierProfile).where(CarrierProfile.user_id == carrier_id)
        )
        profile = result.scalar_one_or_none()
        if not profile:
            raise ResourceNotFoundError("Carrier profile", carrier_id)
        return profile

    async def update_availability(self, carrier_id: int, is_available: bool) -> CarrierProfile:
        profile = await self.get_profile(carrier_id)
        profile.is_available = is_available
        await self.db.commit()
        await self.db.refresh(profile)
        logger.info("Carrier %s is now %s", carrier_id, "available" if is_available else "unavailable")
        return profile

    async def update_location(self, carrier_id: int, latitude: float, longitude: float) -> CarrierProfile:
        if not -90.0 <= latitude <= 90.0 or not -180.0 <= longitude <= 180.0:
            raise ValidationError(
                "Coordinates out of range",
                details={"latitude": latitude, "longitude": longitude}
            )

        profile = await self.get_profile(carrier_id)
        profile.current_latitude = latitude
        profile.current_longitude = longitude
        profile.last_location_update = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(profile)
        return profile

    async def update_settings(self, carrier_id: int, coverage_radius_km: Optional[float] = None) -> CarrierProfile:
        profile = await self.get_profile(carrier_id)

        if coverage_radius_km is not None:
            low = settings.min_coverage_radius_km
            high = settings.max_coverage_radius_km
            if coverage_radius_km < low or coverage_radius_km > high:
                raise ValidationError(
                    f"Coverage radius must be between {low:g} and {high:g} km",
                    details={"coverage_radius_km": coverage_radius_km}
                )
            profile.coverage_radius_km = coverage_radius_km

        await self.db.commit()
        await self.db.refresh(profile)
        logger.info("Carrier %s coverage radius set to %.1f km", carrier_id, profile.coverage_radius_km)
        return profile
