"""
Review API Endpoints.

Reviews are written per parcel (see the parcels router); this router
lists the ones a user has received.
"""

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from parcelhop.app.core.guards import require_participant
from parcelhop.app.db.session import get_db
from parcelhop.app.schemas.review import ReviewResponse
from parcelhop.app.services.review_service import ReviewService

router = APIRouter(prefix="/reviews", tags=["Reviews"])


@router.get("/received", response_model=List[ReviewResponse])
async def list_received_reviews(
    limit: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(require_participant),
    db: AsyncSession = Depends(get_db)
):
    """Reviews about the current user, newest first."""
    return await ReviewService(db).list_reviews_for_user(current_user["user_id"], limit=limit)
