"""
Address Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class AddressCreate(BaseModel):
    label: Optional[str] = Field(None, max_length=100, description="e.g. 'Shop' or 'Warehouse'")
    street: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    is_default: bool = False


class AddressUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""
    label: Optional[str] = Field(None, max_length=100)
    street: Optional[str] = Field(None, min_length=1, max_length=255)
    city: Optional[str] = Field(None, min_length=1, max_length=100)
    postal_code: Optional[str] = Field(None, min_length=1, max_length=20)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    is_default: Optional[bool] = None


class AddressResponse(BaseModel):
    id: int
    user_id: int
    label: Optional[str]
    street: str
    city: str
    postal_code: str
    latitude: float
    longitude: float
    is_default: bool
    created_at: datetime

    class Config:
        from_attributes = True
