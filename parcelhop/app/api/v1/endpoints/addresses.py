"""
Address API Endpoints.

Vendors register the pickup addresses their parcels start from.
"""

from typing import List

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from parcelhop.app.core.guards import require_vendor
from parcelhop.app.db.session import get_db
from parcelhop.app.schemas.address import AddressCreate, AddressUpdate, AddressResponse
from parcelhop.app.services.address_service import AddressService
from parcelhop.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/addresses", tags=["Vendor - Addresses"])


@router.get("", response_model=List[AddressResponse])
async def list_addresses(
    current_user: dict = Depends(require_vendor),
    db: AsyncSession = Depends(get_db)
):
    """The vendor's active addresses, default first."""
    return await AddressService(db).list_addresses(current_user["user_id"])


@router.post("", response_model=AddressResponse, status_code=status.HTTP_201_CREATED)
async def create_address(
    body: AddressCreate,
    current_user: dict = Depends(require_vendor),
    db: AsyncSession = Depends(get_db)
):
    """Register a pickup address. The first one becomes the default."""
    address = await AddressService(db).create_address(current_user["user_id"], body)
    await log_event(
        db, AuditAction.ADDRESS_CREATED, current_user["user_id"], current_user.get("sub"),
        entity_type="address", entity_id=address.id,
        metadata={"city": address.city, "postal_code": address.postal_code}
    )
    return address


@router.get("/{address_id}", response_model=AddressResponse)
async def get_address(
    address_id: int = Path(..., description="Address ID"),
    current_user: dict = Depends(require_vendor),
    db: AsyncSession = Depends(get_db)
):
    return await AddressService(db).get_address(current_user["user_id"], address_id)


@router.patch("/{address_id}", response_model=AddressResponse)
async def update_address(
    body: AddressUpdate,
    address_id: int = Path(..., description="Address ID"),
    current_user: dict = Depends(require_vendor),
    db: AsyncSession = Depends(get_db)
):
    """Partial update; only the fields sent are changed."""
    address = await AddressService(db).update_address(current_user["user_id"], address_id, body)
    await log_event(
        db, AuditAction.ADDRESS_UPDATED, current_user["user_id"], current_user.get("sub"),
        entity_type="address", entity_id=address.id,
        metadata={"fields": sorted(body.model_dump(exclude_unset=True))}
    )
    return address


@router.delete("/{address_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_address(
    address_id: int = Path(..., description="Address ID"),
    current_user: dict = Depends(require_vendor),
    db: AsyncSession = Depends(get_db)
):
    """
    Deactivate an address.

    Refused with 409 while parcels waiting for a carrier start from it.
    """
    await AddressService(db).delete_address(current_user["user_id"], address_id)
    await log_event(
        db, AuditAction.ADDRESS_DELETED, current_user["user_id"], current_user.get("sub"),
        entity_type="address", entity_id=address_id,
    )
