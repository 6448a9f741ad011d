"""
Review database model.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from parcelhop.app.db.session import Base


class Review(Base):
    """A rating left by one party of a delivered parcel about the other."""
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("parcel_id", "reviewer_id", name="uq_review_parcel_reviewer"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    parcel_id = Column(Integer, ForeignKey('parcels.id'), nullable=False, index=True)
    reviewer_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    reviewee_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    rating = Column(Integer, nullable=False)
    comment = Column(String(1000), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Review(id={self.id}, parcel_id={self.parcel_id}, rating={self.rating})>"
