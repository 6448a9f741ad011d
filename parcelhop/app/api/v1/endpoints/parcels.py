"""
Shared Parcel API Endpoints.

Actions open to both parties of a parcel: the vendor and the assigned
carrier.
"""

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from parcelhop.app.core.dependencies import get_mission_service, get_pickup_limiter
from parcelhop.app.core.exceptions import InvalidPickupCodeError
from parcelhop.app.core.guards import require_participant
from parcelhop.app.core.rate_limit import PickupCodeAttemptLimiter
from parcelhop.app.db.session import get_db
from parcelhop.app.domain.missions.mission_service import MissionService
from parcelhop.app.schemas.parcel import (
    ParcelResponse, CancelRequest, PickupConfirmRequest, PackagingStatusResponse
)
from parcelhop.app.schemas.review import ReviewCreate, ReviewResponse
from parcelhop.app.services.audit import log_event, log_parcel_event, AuditAction
from parcelhop.app.services.review_service import ReviewService

router = APIRouter(prefix="/parcels", tags=["Parcels"])


@router.get("/{parcel_id}/packaging", response_model=PackagingStatusResponse)
async def get_packaging_status(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_participant),
    service: MissionService = Depends(get_mission_service)
):
    """Where the packaging handshake stands, with the auto-confirmation deadline."""
    return await service.get_packaging_status(parcel_id, current_user["user_id"])


@router.post("/{parcel_id}/pickup", response_model=ParcelResponse)
async def confirm_pickup(
    body: PickupConfirmRequest,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_participant),
    service: MissionService = Depends(get_mission_service),
    limiter: PickupCodeAttemptLimiter = Depends(get_pickup_limiter),
    db: AsyncSession = Depends(get_db)
):
    """
    Confirm pickup with the vendor's 6-digit code.

    Requires confirmed packaging. Repeated wrong codes are locked out for
    a while (429).
    """
    user_id = current_user["user_id"]
    await limiter.ensure_allowed(user_id, parcel_id)

    try:
        parcel = await service.confirm_pickup(user_id, parcel_id, body.pickup_code)
    except InvalidPickupCodeError:
        attempts = await limiter.record_failure(user_id, parcel_id)
        await log_parcel_event(
            db, AuditAction.PICKUP_CODE_FAILED, parcel_id, current_user, metadata={"attempts": attempts}
        )
        raise

    await limiter.reset(user_id, parcel_id)
    await log_parcel_event(db, AuditAction.PICKUP_CONFIRMED, parcel_id, current_user)
    return parcel


@router.post("/{parcel_id}/cancel", response_model=ParcelResponse)
async def cancel_parcel(
    body: CancelRequest,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_participant),
    service: MissionService = Depends(get_mission_service),
    db: AsyncSession = Depends(get_db)
):
    """Cancel a parcel that is not yet delivered. Cancellation is final."""
    parcel = await service.cancel(current_user["user_id"], parcel_id, body.reason)
    await log_parcel_event(
        db, AuditAction.PARCEL_CANCELLED, parcel_id, current_user, metadata={"reason": body.reason}
    )
    return parcel


@router.post("/{parcel_id}/reviews", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def create_review(
    body: ReviewCreate,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_participant),
    db: AsyncSession = Depends(get_db)
):
    """Rate the other party of a delivered parcel (once)."""
    review = await ReviewService(db).create_review(
        current_user["user_id"], parcel_id, body.rating, body.comment
    )
    await log_event(
        db, AuditAction.REVIEW_CREATED, current_user["user_id"], current_user.get("sub"),
        entity_type="review", entity_id=review.id,
        metadata={"parcel_id": parcel_id, "rating": body.rating}
    )
    return review
