"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from parcelhop.app.api.v1.endpoints import (
    addresses, vendor_parcels, carrier_missions, carriers, parcels, reviews, notifications
)

router = APIRouter()

# Vendor endpoints
router.include_router(addresses.router)
router.include_router(vendor_parcels.router)

# Carrier endpoints
router.include_router(carrier_missions.router)
router.include_router(carriers.router)

# Shared by both parties of a parcel
router.include_router(parcels.router)
router.include_router(reviews.router)

router.include_router(notifications.router)
