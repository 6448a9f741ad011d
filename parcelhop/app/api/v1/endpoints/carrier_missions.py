"""
Carrier Mission API Endpoints.

Discover nearby missions, accept one, and drive it through departure,
arrival, packaging and delivery.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy.ext.asyncio import AsyncSession

from parcelhop.app.core.dependencies import get_mission_service, get_matching_service
from parcelhop.app.core.exceptions import ValidationError
from parcelhop.app.core.guards import require_carrier
from parcelhop.app.db.session import get_db
from parcelhop.app.domain.matching.geo import GeoPoint
from parcelhop.app.domain.matching.matching_service import MatchingService
from parcelhop.app.domain.missions.mission_service import MissionService
from parcelhop.app.schemas.mission import (
    AvailableMissionResponse, PickupAddressSummary,
    MissionResponse, MissionDetailResponse, MissionHistoryResponse,
    LocationRequest, DepartureResponse, PackagingSubmitRequest,
    DeliverRequest, DeliveryResponse, TransactionResponse,
)
from parcelhop.app.schemas.parcel import ParcelResponse
from parcelhop.app.services.audit import log_event, log_parcel_event, AuditAction

router = APIRouter(prefix="/carrier", tags=["Carrier - Missions"])


@router.get("/missions/available", response_model=List[AvailableMissionResponse])
async def list_available_missions(
    latitude: Optional[float] = Query(None, ge=-90, le=90),
    longitude: Optional[float] = Query(None, ge=-180, le=180),
    radius_km: Optional[float] = Query(None, description="Overrides the profile coverage radius (1-50 km)"),
    current_user: dict = Depends(require_carrier),
    matching: MatchingService = Depends(get_matching_service)
):
    """
    Pending missions around the carrier, nearest first.

    Location defaults to the carrier's last shared position.
    """
    if (latitude is None) != (longitude is None):
        raise ValidationError("Pass both latitude and longitude, or neither")

    location = GeoPoint(latitude, longitude) if latitude is not None else None
    candidates = await matching.find_available_missions(current_user["user_id"], location, radius_km)

    return [
        AvailableMissionResponse(
            parcel_id=c.parcel.id,
            size=c.parcel.size,
            description=c.parcel.description,
            dropoff_type=c.parcel.dropoff_type,
            dropoff_name=c.parcel.dropoff_name,
            pickup_mode=c.parcel.pickup_mode,
            pickup_slot_start=c.parcel.pickup_slot_start,
            pickup_slot_end=c.parcel.pickup_slot_end,
            carrier_payout=c.parcel.carrier_payout,
            distance_km=round(c.distance_km, 2),
            pickup_address=PickupAddressSummary.model_validate(c.pickup_address),
        )
        for c in candidates
    ]


@router.get("/missions/current", response_model=List[MissionResponse])
async def list_current_missions(
    current_user: dict = Depends(require_carrier),
    service: MissionService = Depends(get_mission_service)
):
    """Missions accepted or picked up and not yet delivered."""
    return await service.current_missions(current_user["user_id"])


@router.get("/missions/history", response_model=MissionHistoryResponse)
async def mission_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(require_carrier),
    service: MissionService = Depends(get_mission_service)
):
    """Delivered and cancelled missions, most recent first."""
    result = await service.mission_history(current_user["user_id"], page, limit)
    return MissionHistoryResponse(
        missions=[MissionResponse.model_validate(m) for m in result.missions],
        page=result.page,
        limit=result.limit,
        total=result.total,
        total_pages=result.total_pages,
    )


@router.get("/missions/{mission_id}", response_model=MissionDetailResponse)
async def get_mission(
    mission_id: int = Path(..., description="Mission ID"),
    current_user: dict = Depends(require_carrier),
    service: MissionService = Depends(get_mission_service)
):
    mission, parcel = await service.get_mission_for_carrier(mission_id, current_user["user_id"])
    return MissionDetailResponse(
        mission=MissionResponse.model_validate(mission),
        parcel=ParcelResponse.model_validate(parcel),
    )


@router.post("/parcels/{parcel_id}/accept", response_model=MissionDetailResponse)
async def accept_parcel(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_carrier),
    service: MissionService = Depends(get_mission_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Accept a pending parcel.

    When several carriers accept the same parcel, exactly one succeeds;
    the others receive 409.
    """
    result = await service.accept(parcel_id, current_user["user_id"])
    await log_parcel_event(
        db, AuditAction.MISSION_ACCEPTED, parcel_id, current_user, metadata={"mission_id": result.mission.id}
    )
    return MissionDetailResponse(
        mission=MissionResponse.model_validate(result.mission),
        parcel=ParcelResponse.model_validate(result.parcel),
    )


@router.post("/missions/{mission_id}/depart", response_model=DepartureResponse)
async def depart(
    location: LocationRequest,
    mission_id: int = Path(..., description="Mission ID"),
    current_user: dict = Depends(require_carrier),
    service: MissionService = Depends(get_mission_service),
    db: AsyncSession = Depends(get_db)
):
    """Start the journey to the pickup address; returns an ETA."""
    result = await service.start_journey(
        mission_id, current_user["user_id"], GeoPoint(location.latitude, location.longitude)
    )
    await log_event(
        db, AuditAction.CARRIER_DEPARTED, current_user["user_id"], current_user.get("sub"),
        entity_type="mission", entity_id=mission_id, metadata={"eta_minutes": result.eta_minutes}
    )
    return DepartureResponse(
        mission=MissionResponse.model_validate(result.mission),
        eta_minutes=result.eta_minutes,
        estimated_arrival=result.estimated_arrival,
    )


@router.post("/missions/{mission_id}/arrive", response_model=MissionResponse)
async def arrive(
    mission_id: int = Path(..., description="Mission ID"),
    current_user: dict = Depends(require_carrier),
    service: MissionService = Depends(get_mission_service),
    db: AsyncSession = Depends(get_db)
):
    """Signal arrival at the pickup address."""
    mission = await service.arrived_at_pickup(mission_id, current_user["user_id"])
    await log_event(
        db, AuditAction.CARRIER_ARRIVED, current_user["user_id"], current_user.get("sub"),
        entity_type="mission", entity_id=mission_id
    )
    return mission


@router.post("/missions/{mission_id}/packaging", response_model=ParcelResponse)
async def submit_packaging(
    body: PackagingSubmitRequest,
    mission_id: int = Path(..., description="Mission ID"),
    current_user: dict = Depends(require_carrier),
    service: MissionService = Depends(get_mission_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Submit packaging photo evidence.

    The vendor then confirms or rejects; without an answer the packaging
    is confirmed automatically after the grace period.
    """
    parcel = await service.confirm_packaging(mission_id, current_user["user_id"], body.photo_url)
    await log_parcel_event(
        db, AuditAction.PACKAGING_SUBMITTED, parcel.id, current_user, metadata={"mission_id": mission_id}
    )
    return parcel


@router.post("/missions/{mission_id}/deliver", response_model=DeliveryResponse)
async def deliver(
    body: DeliverRequest,
    mission_id: int = Path(..., description="Mission ID"),
    current_user: dict = Depends(require_carrier),
    service: MissionService = Depends(get_mission_service),
    db: AsyncSession = Depends(get_db)
):
    """Mark the parcel delivered; records the payout transaction."""
    result = await service.deliver(mission_id, current_user["user_id"], body.proof_photo_url, body.notes)
    await log_parcel_event(
        db, AuditAction.MISSION_DELIVERED, result.parcel.id, current_user,
        metadata={"mission_id": mission_id, "carrier_payout": str(result.transaction.carrier_payout)}
    )
    return DeliveryResponse(
        mission=MissionResponse.model_validate(result.mission),
        parcel=ParcelResponse.model_validate(result.parcel),
        transaction=TransactionResponse.model_validate(result.transaction),
    )
