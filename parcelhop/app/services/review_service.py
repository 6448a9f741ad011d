"""
Review service.

Once a parcel is delivered, the vendor and the carrier may each rate the
other once. A carrier's average rating is recomputed from all of their
reviews after every new one.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from parcelhop.app.core.exceptions import (
    ResourceNotFoundError,
    InsufficientPermissionsError,
    StateConflictError,
    ValidationError,
)
from parcelhop.app.models.carrier_profile import CarrierProfile
from parcelhop.app.models.parcel import Parcel
from parcelhop.app.models.parcel_enums import ParcelStatus
from parcelhop.app.models.review import Review

logger = logging.getLogger("parcelhop.reviews")


class ReviewService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_review(
        self,
        reviewer_id: int,
        parcel_id: int,
        rating: int,
        comment: Optional[str] = None,
    ) -> Review:
        """
        Record a review of the other party of a delivered parcel.

        Raises:
            ResourceNotFoundError: parcel does not exist
            InsufficientPermissionsError: reviewer took no part in the delivery
            ValidationError: rating outside 1..5
            StateConflictError: parcel not delivered, or already reviewed by this user
        """
        parcel = await self.db.get(Parcel, parcel_id)
        if not parcel:
            raise ResourceNotFoundError("Parcel", parcel_id)

        if reviewer_id == parcel.vendor_id:
            reviewee_id = parcel.carrier_id
        elif parcel.carrier_id is not None and reviewer_id == parcel.carrier_id:
            reviewee_id = parcel.vendor_id
        else:
            raise InsufficientPermissionsError("Only the vendor or the carrier of this parcel can review it")

        if rating < 1 or rating > 5:
            raise ValidationError("Rating must be between 1 and 5", details={"rating": rating})

        if parcel.status != ParcelStatus.DELIVERED:
            raise StateConflictError(
                f"Parcel {parcel_id} is not delivered yet",
                details={"parcel_id": parcel_id, "current_state": parcel.state.phase}
            )

        existing = await self.db.execute(
            select(Review.id).where(Review.parcel_id == parcel_id, Review.reviewer_id == reviewer_id)
        )
        if existing.scalar_one_or_none() is not None:
            raise StateConflictError(
                "You have already reviewed this parcel",
                details={"parcel_id": parcel_id}
            )

        review = Review(
            parcel_id=parcel_id,
            reviewer_id=reviewer_id,
            reviewee_id=reviewee_id,
            rating=rating,
            comment=comment,
        )
        self.db.add(review)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise StateConflictError(
                "You have already reviewed this parcel",
                details={"parcel_id": parcel_id}
            )

        await self._recompute_average(reviewee_id)
        await self.db.commit()
        await self.db.refresh(review)

        logger.info("Review %s: user %s rated user %s %d/5", review.id, reviewer_id, reviewee_id, rating)
        return review

    async def _recompute_average(self, user_id: int):
        # Single aggregate over the reviewee's reviews
        # TODO: maintain a running sum/count on the profile once review volume makes this aggregate hot
        average = select(func.avg(Review.rating)).where(Review.reviewee_id == user_id).scalar_subquery()
        await self.db.execute(
            update(CarrierProfile).where(CarrierProfile.user_id == user_id).values(
                average_rating=func.round(average, 2)
            ).execution_options(synchronize_session=False)
        )

    async def list_reviews_for_user(self, user_id: int, limit: int = 50) -> List[Review]:
        result = await self.db.execute(
            select(Review).where(Review.reviewee_id == user_id)
            .order_by(Review.created_at.desc(), Review.id.desc()).limit(limit)
        )
        return list(result.scalars().all())
