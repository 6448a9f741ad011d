"""
Vendor Parcel API Endpoints.

Vendors create parcels, edit them until a carrier accepts, follow them,
and answer the carrier's packaging evidence. Ownership is enforced by
the domain services.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from parcelhop.app.core.dependencies import get_mission_service, get_parcel_service
from parcelhop.app.core.guards import require_vendor
from parcelhop.app.db.session import get_db
from parcelhop.app.domain.missions.mission_service import MissionService
from parcelhop.app.domain.parcels.parcel_service import ParcelService
from parcelhop.app.models.parcel_enums import ParcelStatus
from parcelhop.app.schemas.parcel import (
    ParcelCreate, ParcelUpdate, VendorParcelResponse, ParcelListResponse, PackagingRejectRequest
)
from parcelhop.app.services.audit import log_parcel_event, AuditAction

router = APIRouter(prefix="/vendor/parcels", tags=["Vendor - Parcels"])


@router.post("", response_model=VendorParcelResponse, status_code=status.HTTP_201_CREATED)
async def create_parcel(
    parcel_data: ParcelCreate,
    current_user: dict = Depends(require_vendor),
    service: ParcelService = Depends(get_parcel_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a new parcel (Vendor only).

    - Pickup address must be one of the vendor's addresses
    - IMMEDIATE pickups get a two-hour slot starting now
    - SCHEDULED slots start in the future and last 30 minutes to 4 hours
    - Price is fixed here from the parcel size
    """
    parcel = await service.create_parcel(current_user["user_id"], parcel_data)

    await log_parcel_event(
        db, AuditAction.PARCEL_CREATED, parcel.id, current_user,
        metadata={"size": parcel.size.value, "total_price": str(parcel.total_price)}
    )
    return parcel


@router.get("", response_model=ParcelListResponse)
async def list_parcels(
    status_filter: Optional[ParcelStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(require_vendor),
    service: ParcelService = Depends(get_parcel_service)
):
    """List the vendor's parcels, newest first."""
    result = await service.list_parcels(current_user["user_id"], status_filter, page, page_size)
    return ParcelListResponse(
        parcels=[VendorParcelResponse.model_validate(p) for p in result.parcels],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
    )


@router.get("/{parcel_id}", response_model=VendorParcelResponse)
async def get_parcel(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_vendor),
    service: MissionService = Depends(get_mission_service)
):
    """Get one of the vendor's parcels, including its pickup code."""
    return await service.get_parcel_for_user(parcel_id, current_user["user_id"])


@router.patch("/{parcel_id}", response_model=VendorParcelResponse)
async def update_parcel(
    body: ParcelUpdate,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_vendor),
    service: ParcelService = Depends(get_parcel_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Edit a parcel no carrier has accepted yet.

    - Only the description and the pickup slot can change
    - A new slot follows the SCHEDULED rules (30 minutes to 4 hours)
    - Returns 409 once the parcel has left PENDING
    """
    parcel = await service.update_parcel(current_user["user_id"], parcel_id, body)
    await log_parcel_event(
        db, AuditAction.PARCEL_UPDATED, parcel_id, current_user,
        metadata={"fields": sorted(body.model_dump(exclude_unset=True))}
    )
    return parcel


@router.post("/{parcel_id}/packaging/confirm", response_model=VendorParcelResponse)
async def confirm_packaging(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_vendor),
    service: MissionService = Depends(get_mission_service),
    db: AsyncSession = Depends(get_db)
):
    """Approve the carrier's packaging evidence; pickup becomes possible."""
    parcel = await service.vendor_confirm_packaging(parcel_id, current_user["user_id"])
    await log_parcel_event(db, AuditAction.PACKAGING_CONFIRMED, parcel_id, current_user)
    return parcel


@router.post("/{parcel_id}/packaging/reject", response_model=VendorParcelResponse)
async def reject_packaging(
    body: PackagingRejectRequest,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_vendor),
    service: MissionService = Depends(get_mission_service),
    db: AsyncSession = Depends(get_db)
):
    """Reject the carrier's packaging; the carrier has to package again."""
    parcel = await service.vendor_reject_packaging(parcel_id, current_user["user_id"], body.reason)
    await log_parcel_event(
        db, AuditAction.PACKAGING_REJECTED, parcel_id, current_user, metadata={"reason": body.reason}
    )
    return parcel
