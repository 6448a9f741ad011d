"""
Carrier Profile API Endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from parcelhop.app.core.guards import require_carrier
from parcelhop.app.db.session import get_db
from parcelhop.app.schemas.carrier import AvailabilityUpdate, CarrierSettingsUpdate, CarrierProfileResponse
from parcelhop.app.schemas.mission import LocationRequest
from parcelhop.app.services.audit import log_event, AuditAction
from parcelhop.app.services.carrier_service import CarrierService

router = APIRouter(prefix="/carrier/profile", tags=["Carrier - Profile"])


@router.get("", response_model=CarrierProfileResponse)
async def get_profile(
    current_user: dict = Depends(require_carrier),
    db: AsyncSession = Depends(get_db)
):
    return await CarrierService(db).get_profile(current_user["user_id"])


@router.put("/availability", response_model=CarrierProfileResponse)
async def update_availability(
    body: AvailabilityUpdate,
    current_user: dict = Depends(require_carrier),
    db: AsyncSession = Depends(get_db)
):
    """Go online or offline for new missions."""
    return await CarrierService(db).update_availability(current_user["user_id"], body.is_available)


@router.put("/location", response_model=CarrierProfileResponse)
async def update_location(
    body: LocationRequest,
    current_user: dict = Depends(require_carrier),
    db: AsyncSession = Depends(get_db)
):
    """Share the carrier's current position with the matcher."""
    return await CarrierService(db).update_location(current_user["user_id"], body.latitude, body.longitude)


@router.patch("/settings", response_model=CarrierProfileResponse)
async def update_settings(
    body: CarrierSettingsUpdate,
    current_user: dict = Depends(require_carrier),
    db: AsyncSession = Depends(get_db)
):
    """Update the coverage radius (1-50 km)."""
    profile = await CarrierService(db).update_settings(current_user["user_id"], body.coverage_radius_km)
    await log_event(
        db, AuditAction.CARRIER_SETTINGS_UPDATED, current_user["user_id"], current_user.get("sub"),
        entity_type="carrier_profile", entity_id=profile.id,
        metadata={"coverage_radius_km": profile.coverage_radius_km}
    )
    return profile
