"""
User roles enumeration.

Defines the role types of the parcel marketplace.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Platform operator
        VENDOR: Submits parcels for pickup
        CARRIER: Accepts and fulfils delivery missions
    """
    ADMIN = "ADMIN"
    VENDOR = "VENDOR"
    CARRIER = "CARRIER"
