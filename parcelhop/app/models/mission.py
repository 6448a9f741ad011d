"""
Mission database model.

The carrier-facing record of an accepted parcel: journey timestamps and
delivery evidence. Status is read from the parcel.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey
from sqlalchemy.sql import func
from parcelhop.app.db.session import Base


class Mission(Base):
    __tablename__ = "missions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    parcel_id = Column(Integer, ForeignKey('parcels.id'), unique=True, nullable=False, index=True)
    carrier_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    accepted_at = Column(DateTime, nullable=False)

    # Journey
    departed_at = Column(DateTime, nullable=True)
    departure_latitude = Column(Float, nullable=True)
    departure_longitude = Column(Float, nullable=True)
    estimated_arrival = Column(DateTime, nullable=True)
    arrived_at = Column(DateTime, nullable=True)

    picked_up_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    proof_photo_url = Column(String(500), nullable=True)
    carrier_notes = Column(String(1000), nullable=True)

    # Set at delivery or cancellation
    closed_at = Column(DateTime, nullable=True, index=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Mission(id={self.id}, parcel_id={self.parcel_id}, carrier_id={self.carrier_id})>"
