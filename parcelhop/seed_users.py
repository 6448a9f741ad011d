"""
Database seeding script for development users.

Creates an ADMIN, a VENDOR with a pickup address and a CARRIER with a
profile, and prints a bearer token for each. Users normally come from the
identity service; this is for local development only.
"""

import asyncio

from parcelhop.app.db.session import AsyncSessionLocal, engine, Base
from parcelhop.app.core.jwt import create_access_token
from parcelhop.app.models.user import User
from parcelhop.app.models.address import Address
from parcelhop.app.models.carrier_profile import CarrierProfile
from parcelhop.app.models.enums import UserRole
# Register the remaining tables with Base
from parcelhop.app.models import parcel, mission, transaction, review, notification, audit_log  # noqa: F401
from sqlalchemy import select


async def seed_users():
    """
    Seed development users.

    Creates:
    - 1 ADMIN user
    - 1 VENDOR user with an address in central Paris
    - 1 CARRIER user, available, 500 m from that address
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting user seeding...")

        result = await db.execute(
            select(User).where(User.username == "admin")
        )
        if result.scalar_one_or_none():
            print("ℹ️  Users already exist, skipping seeding")
            return

        admin_user = User(email="admin@parcelhop.dev", username="admin", role=UserRole.ADMIN)
        vendor = User(email="vendor@parcelhop.dev", username="vendor", first_name="Vera", role=UserRole.VENDOR)
        carrier = User(email="carrier@parcelhop.dev", username="carrier", first_name="Carl", role=UserRole.CARRIER)
        db.add_all([admin_user, vendor, carrier])
        await db.flush()

        db.add(Address(
            user_id=vendor.id,
            label="Shop",
            street="1 Rue de Rivoli",
            city="Paris",
            postal_code="75001",
            latitude=48.8606,
            longitude=2.3376,
        ))
        db.add(CarrierProfile(
            user_id=carrier.id,
            is_available=True,
            coverage_radius_km=5.0,
            current_latitude=48.8640,
            current_longitude=2.3420,
        ))

        await db.commit()

        print("\n🎉 User seeding completed successfully!")
        for user in (admin_user, vendor, carrier):
            token = create_access_token({"sub": user.username, "user_id": user.id, "role": user.role.value})
            print(f"  - {user.role.value:<8} {user.username}: {token}")


if __name__ == "__main__":
    asyncio.run(seed_users())
