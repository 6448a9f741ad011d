"""
Mission Pydantic schemas.

Carrier-facing request and response models. The pickup code is never
part of a carrier response.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from parcelhop.app.models.parcel_enums import ParcelSize, DropoffType, PickupMode
from parcelhop.app.models.billing_enums import TransactionStatus
from parcelhop.app.schemas.parcel import ParcelResponse


class PickupAddressSummary(BaseModel):
    street: str
    city: str
    postal_code: str
    latitude: float
    longitude: float

    class Config:
        from_attributes = True


class AvailableMissionResponse(BaseModel):
    parcel_id: int
    size: ParcelSize
    description: Optional[str]
    dropoff_type: DropoffType
    dropoff_name: str
    pickup_mode: PickupMode
    pickup_slot_start: datetime
    pickup_slot_end: datetime
    carrier_payout: Decimal
    distance_km: float
    pickup_address: PickupAddressSummary


class MissionResponse(BaseModel):
    id: int
    parcel_id: int
    carrier_id: int
    accepted_at: datetime
    departed_at: Optional[datetime]
    estimated_arrival: Optional[datetime]
    arrived_at: Optional[datetime]
    picked_up_at: Optional[datetime]
    delivered_at: Optional[datetime]
    proof_photo_url: Optional[str]
    carrier_notes: Optional[str]
    closed_at: Optional[datetime]

    class Config:
        from_attributes = True


class MissionDetailResponse(BaseModel):
    mission: MissionResponse
    parcel: ParcelResponse


class MissionHistoryResponse(BaseModel):
    missions: List[MissionResponse]
    page: int
    limit: int
    total: int
    total_pages: int


class LocationRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class DepartureResponse(BaseModel):
    mission: MissionResponse
    eta_minutes: int
    estimated_arrival: datetime


class PackagingSubmitRequest(BaseModel):
    photo_url: str = Field(..., min_length=1, max_length=500)


class DeliverRequest(BaseModel):
    proof_photo_url: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)


class TransactionResponse(BaseModel):
    id: int
    parcel_id: int
    amount: Decimal
    platform_fee: Decimal
    carrier_payout: Decimal
    status: TransactionStatus

    class Config:
        from_attributes = True


class DeliveryResponse(BaseModel):
    mission: MissionResponse
    parcel: ParcelResponse
    transaction: TransactionResponse
