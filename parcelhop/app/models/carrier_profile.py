"""
Carrier profile database model.

Availability, coverage and last-known position used by the matcher, plus
delivery statistics maintained by the mission engine and reviews.
"""

from sqlalchemy import Column, Integer, Float, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from parcelhop.app.db.session import Base


class CarrierProfile(Base):
    __tablename__ = "carrier_profiles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), unique=True, nullable=False, index=True)

    is_available = Column(Boolean, default=False, nullable=False, index=True)
    coverage_radius_km = Column(Float, default=5.0, nullable=False)

    # Last known position
    current_latitude = Column(Float, nullable=True)
    current_longitude = Column(Float, nullable=True)
    last_location_update = Column(DateTime, nullable=True)

    # Statistics
    total_deliveries = Column(Integer, default=0, nullable=False)
    average_rating = Column(Float, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<CarrierProfile(user_id={self.user_id}, available={self.is_available}, deliveries={self.total_deliveries})>"
