"""
Parcel Pydantic schemas.

Request and response models for vendor parcel management and the
packaging handshake.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from parcelhop.app.models.parcel_enums import (
    ParcelStatus, PackagingState, ParcelSize, DropoffType, PickupMode
)


class ParcelCreate(BaseModel):
    """Schema for creating a new parcel."""
    pickup_address_id: int = Field(..., description="One of the vendor's registered addresses")
    dropoff_type: DropoffType
    dropoff_name: str = Field(..., min_length=1, max_length=100)
    dropoff_address: str = Field(..., min_length=1, max_length=255)
    size: ParcelSize
    weight_estimate: Optional[float] = Field(None, gt=0, description="Estimated weight in kilograms")
    description: Optional[str] = Field(None, max_length=500)
    pickup_mode: PickupMode = PickupMode.SCHEDULED
    pickup_slot_start: Optional[datetime] = Field(None, description="Required for SCHEDULED pickups")
    pickup_slot_end: Optional[datetime] = Field(None, description="Required for SCHEDULED pickups")


class ParcelUpdate(BaseModel):
    """Edit a parcel still waiting for a carrier. A slot change makes the pickup SCHEDULED."""
    description: Optional[str] = Field(None, max_length=500)
    pickup_slot_start: Optional[datetime] = None
    pickup_slot_end: Optional[datetime] = None


class ParcelResponse(BaseModel):
    """Parcel as seen by either participant (no pickup code)."""
    id: int
    vendor_id: int
    carrier_id: Optional[int]
    pickup_address_id: int
    dropoff_type: DropoffType
    dropoff_name: str
    dropoff_address: str
    size: ParcelSize
    weight_estimate: Optional[float]
    description: Optional[str]
    pickup_mode: PickupMode
    pickup_slot_start: datetime
    pickup_slot_end: datetime
    base_price: Decimal
    platform_fee: Decimal
    carrier_payout: Decimal
    total_price: Decimal
    status: ParcelStatus
    packaging_state: PackagingState
    accepted_at: Optional[datetime]
    picked_up_at: Optional[datetime]
    delivered_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class VendorParcelResponse(ParcelResponse):
    """The vendor also sees the pickup code to hand over to the carrier."""
    pickup_code: str


class ParcelListResponse(BaseModel):
    """Schema for paginated parcel list."""
    parcels: List[VendorParcelResponse]
    total: int
    page: int
    page_size: int


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class PickupConfirmRequest(BaseModel):
    pickup_code: str = Field(..., min_length=1, max_length=12)


class PackagingRejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class PackagingStatusResponse(BaseModel):
    status: str
    photo_url: Optional[str]
    carrier_confirmed_at: Optional[datetime]
    vendor_confirmed_at: Optional[datetime]
    auto_confirmed: bool
    rejected_at: Optional[datetime]
    rejection_reason: Optional[str]
    confirmation_deadline: Optional[datetime]
    hours_remaining: Optional[int]

    class Config:
        from_attributes = True
