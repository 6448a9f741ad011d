"""
Parcel enumerations.
"""

import enum


class ParcelStatus(str, enum.Enum):
    """
    Parcel status enumeration.

    Status flow:
        PENDING → ACCEPTED → PICKED_UP → DELIVERED
        Any non-terminal status can transition to CANCELLED
    """
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    PICKED_UP = "PICKED_UP"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PackagingState(str, enum.Enum):
    """
    Packaging handshake sub-state, meaningful while ACCEPTED.

    NOT_SUBMITTED → PACKAGING_PENDING (carrier photo) → PACKAGING_CONFIRMED (vendor or system)
    A vendor rejection returns PACKAGING_PENDING to NOT_SUBMITTED.
    """
    NOT_SUBMITTED = "NOT_SUBMITTED"
    PACKAGING_PENDING = "PACKAGING_PENDING"
    PACKAGING_CONFIRMED = "PACKAGING_CONFIRMED"


class ParcelSize(str, enum.Enum):
    SMALL = "SMALL"
    MEDIUM = "MEDIUM"
    LARGE = "LARGE"
    XLARGE = "XLARGE"


class DropoffType(str, enum.Enum):
    POST_OFFICE = "POST_OFFICE"
    RELAY_POINT = "RELAY_POINT"
    OTHER = "OTHER"


class PickupMode(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    IMMEDIATE = "IMMEDIATE"
