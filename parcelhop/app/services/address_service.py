"""
Address service.

Vendors manage their own pickup addresses. Addresses are never removed:
deleting one deactivates it, so parcels keep pointing at a real row.
"""

import logging
from typing import List, Dict, Any

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from parcelhop.app.core.exceptions import ResourceNotFoundError, StateConflictError
from parcelhop.app.models.address import Address
from parcelhop.app.models.parcel import Parcel
from parcelhop.app.models.parcel_enums import ParcelStatus
from parcelhop.app.schemas.address import AddressCreate, AddressUpdate

logger = logging.getLogger("parcelhop.addresses")

# Columns that may not be cleared through an update
REQUIRED_FIELDS = {"street", "city", "postal_code", "latitude", "longitude"}


class AddressService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_addresses(self, user_id: int) -> List[Address]:
        """Active addresses, default first."""
        result = await self.db.execute(
            select(Address).where(Address.user_id == user_id, Address.is_active == True)
            .order_by(Address.is_default.desc(), Address.created_at.desc(), Address.id.desc())
        )
        return list(result.scalars().all())

    async def get_address(self, user_id: int, address_id: int) -> Address:
        """
        Raises:
            ResourceNotFoundError: unknown, deactivated, or another user's address
        """
        address = await self.db.get(Address, address_id)
        if not address or address.user_id != user_id or not address.is_active:
            raise ResourceNotFoundError("Address", address_id)
        return address

    async def create_address(self, user_id: int, data: AddressCreate) -> Address:
        """The user's first address becomes the default."""
        values = data.model_dump()
        has_address = await self._count_active(user_id) > 0
        if not has_address:
            values["is_default"] = True

        try:
            if values["is_default"] and has_address:
                await self._clear_default(user_id)
            address = Address(user_id=user_id, **values)
            self.db.add(address)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(address)
        logger.info("Address %s created for user %s", address.id, user_id)
        return address

    async def update_address(self, user_id: int, address_id: int, data: AddressUpdate) -> Address:
        address = await self.get_address(user_id, address_id)

        changes: Dict[str, Any] = {
            field: value for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None or field not in REQUIRED_FIELDS | {"is_default"}
        }
        if not changes:
            return address

        try:
            if changes.get("is_default"):
                await self._clear_default(user_id)
            for field, value in changes.items():
                setattr(address, field, value)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(address)
        logger.info("Address %s updated (%s)", address.id, ", ".join(sorted(changes)))
        return address

    async def delete_address(self, user_id: int, address_id: int) -> Address:
        """
        Deactivate an address.

        Raises:
            ResourceNotFoundError: not one of the user's active addresses
            StateConflictError: parcels still waiting for a carrier use it
        """
        address = await self.get_address(user_id, address_id)

        result = await self.db.execute(
            select(func.count(Parcel.id)).where(
                Parcel.pickup_address_id == address.id,
                Parcel.status == ParcelStatus.PENDING,
            )
        )
        pending = result.scalar()
        if pending:
            raise StateConflictError(
                f"Address {address.id} is the pickup point of {pending} pending parcel(s)",
                details={"address_id": address.id, "pending_parcels": pending}
            )

        was_default = address.is_default
        try:
            address.is_active = False
            address.is_default = False
            await self.db.flush()
            if was_default:
                await self._promote_latest(user_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Address %s deactivated by user %s", address.id, user_id)
        return address

    async def _count_active(self, user_id: int) -> int:
        result = await self.db.execute(
            select(func.count(Address.id)).where(Address.user_id == user_id, Address.is_active == True)
        )
        return result.scalar()

    async def _clear_default(self, user_id: int):
        await self.db.execute(
            update(Address).where(Address.user_id == user_id, Address.is_default == True)
            .values(is_default=False)
            .execution_options(synchronize_session="fetch")
        )

    async def _promote_latest(self, user_id: int):
        result = await self.db.execute(
            select(Address).where(Address.user_id == user_id, Address.is_active == True)
            .order_by(Address.created_at.desc(), Address.id.desc()).limit(1)
        )
        successor = result.scalar_one_or_none()
        if successor is not None:
            successor.is_default = True
