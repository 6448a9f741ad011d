"""
Carrier profile schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class AvailabilityUpdate(BaseModel):
    is_available: bool


class CarrierSettingsUpdate(BaseModel):
    coverage_radius_km: Optional[float] = Field(None, description="Between 1 and 50 km")


class CarrierProfileResponse(BaseModel):
    user_id: int
    is_available: bool
    coverage_radius_km: float
    current_latitude: Optional[float]
    current_longitude: Optional[float]
    last_location_update: Optional[datetime]
    total_deliveries: int
    average_rating: Optional[float]

    class Config:
        from_attributes = True
