"""
Parcel database model.

A parcel is a shipment request created by a vendor. Its lifecycle is a
composite of ``status`` and ``packaging_state`` and is only ever written
by the mission engine through conditional updates.

All timestamps are naive UTC.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Enum, Boolean, Numeric
from sqlalchemy.sql import func
from parcelhop.app.db.session import Base
from parcelhop.app.models.parcel_enums import (
    ParcelStatus, PackagingState, ParcelSize, DropoffType, PickupMode
)
from parcelhop.app.domain.missions.state import MissionState


class Parcel(Base):
    __tablename__ = "parcels"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership
    vendor_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    pickup_address_id = Column(Integer, ForeignKey('addresses.id'), nullable=False, index=True)

    # Drop-off
    dropoff_type = Column(Enum(DropoffType), nullable=False)
    dropoff_name = Column(String(100), nullable=False)
    dropoff_address = Column(String(255), nullable=False)

    # Physical properties
    size = Column(Enum(ParcelSize), nullable=False)
    weight_estimate = Column(Float, nullable=True)
    description = Column(String(500), nullable=True)

    # Pickup window
    pickup_mode = Column(Enum(PickupMode), default=PickupMode.SCHEDULED, nullable=False)
    pickup_slot_start = Column(DateTime, nullable=False, index=True)
    pickup_slot_end = Column(DateTime, nullable=False)
    pickup_code = Column(String(6), nullable=False)

    # Price captured at creation
    base_price = Column(Numeric(10, 2), nullable=False)
    platform_fee = Column(Numeric(10, 2), nullable=False)
    carrier_payout = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)

    # Lifecycle
    status = Column(Enum(ParcelStatus), default=ParcelStatus.PENDING, nullable=False, index=True)
    packaging_state = Column(Enum(PackagingState), default=PackagingState.NOT_SUBMITTED, nullable=False, index=True)
    carrier_id = Column(Integer, ForeignKey('users.id'), nullable=True, index=True)

    # Packaging handshake
    packaging_photo_url = Column(String(500), nullable=True)
    packaging_submitted_at = Column(DateTime, nullable=True, index=True)
    packaging_confirmed_at = Column(DateTime, nullable=True)
    packaging_auto_confirmed = Column(Boolean, default=False, nullable=False)
    packaging_rejected_at = Column(DateTime, nullable=True)
    packaging_rejection_reason = Column(String(500), nullable=True)

    # Transition timestamps
    accepted_at = Column(DateTime, nullable=True)
    picked_up_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(String(500), nullable=True)
    cancelled_by_id = Column(Integer, ForeignKey('users.id'), nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def state(self) -> MissionState:
        return MissionState(self.status, self.packaging_state)

    def __repr__(self):
        return f"<Parcel(id={self.id}, vendor_id={self.vendor_id}, status='{self.status.value}', packaging='{self.packaging_state.value}')>"
