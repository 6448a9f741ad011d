"""
Pickup address management tests.
"""

import pytest

from parcelhop.app.core.exceptions import ResourceNotFoundError, StateConflictError
from parcelhop.app.models.enums import UserRole
from parcelhop.app.schemas.address import AddressCreate, AddressUpdate
from parcelhop.app.services.address_service import AddressService

from conftest import auth_headers, create_user, immediate_parcel, SHOP_LAT, SHOP_LON

WAREHOUSE = {
    "label": "Warehouse",
    "street": "12 Rue Oberkampf",
    "city": "Paris",
    "postal_code": "75011",
    "latitude": 48.8650,
    "longitude": 2.3780,
}


def shop(**overrides) -> AddressCreate:
    values = {
        "label": "Shop",
        "street": "1 Rue de Rivoli",
        "city": "Paris",
        "postal_code": "75001",
        "latitude": SHOP_LAT,
        "longitude": SHOP_LON,
    }
    values.update(overrides)
    return AddressCreate(**values)


@pytest.mark.asyncio
async def test_first_address_becomes_default(db_session, vendor):
    service = AddressService(db_session)

    first = await service.create_address(vendor.id, shop())
    second = await service.create_address(vendor.id, AddressCreate(**WAREHOUSE))

    assert first.is_default is True
    assert second.is_default is False
    assert [a.id for a in await service.list_addresses(vendor.id)] == [first.id, second.id]


@pytest.mark.asyncio
async def test_new_default_replaces_the_old_one(db_session, vendor):
    service = AddressService(db_session)
    first = await service.create_address(vendor.id, shop())

    second = await service.create_address(vendor.id, AddressCreate(**WAREHOUSE, is_default=True))
    await db_session.refresh(first)
    assert (first.is_default, second.is_default) == (False, True)

    await service.update_address(vendor.id, first.id, AddressUpdate(is_default=True))
    await db_session.refresh(second)
    assert (first.is_default, second.is_default) == (True, False)


@pytest.mark.asyncio
async def test_partial_update_keeps_other_fields(db_session, vendor):
    service = AddressService(db_session)
    address = await service.create_address(vendor.id, shop())

    updated = await service.update_address(
        vendor.id, address.id, AddressUpdate(postal_code="75002", street=None, label=None)
    )

    assert updated.postal_code == "75002"
    # Required columns ignore nulls, the optional label is cleared
    assert updated.street == "1 Rue de Rivoli"
    assert updated.label is None


@pytest.mark.asyncio
async def test_other_users_address_is_not_found(db_session, vendor):
    rival = await create_user(db_session, "rival", UserRole.VENDOR)
    service = AddressService(db_session)
    address = await service.create_address(rival.id, shop())

    with pytest.raises(ResourceNotFoundError):
        await service.update_address(vendor.id, address.id, AddressUpdate(city="Lyon"))
    with pytest.raises(ResourceNotFoundError):
        await service.delete_address(vendor.id, address.id)


@pytest.mark.asyncio
async def test_delete_is_refused_while_a_parcel_waits(db_session, parcel_service, mission_service, vendor, carrier):
    service = AddressService(db_session)
    address = await service.create_address(vendor.id, shop())
    parcel = await parcel_service.create_parcel(vendor.id, immediate_parcel(address.id))

    with pytest.raises(StateConflictError) as exc_info:
        await service.delete_address(vendor.id, address.id)
    assert exc_info.value.details["pending_parcels"] == 1

    # Once a carrier has the parcel the address can go
    await mission_service.accept(parcel.id, carrier.id)
    await service.delete_address(vendor.id, address.id)

    assert await service.list_addresses(vendor.id) == []
    with pytest.raises(ResourceNotFoundError):
        await parcel_service.create_parcel(vendor.id, immediate_parcel(address.id))


@pytest.mark.asyncio
async def test_deleting_the_default_promotes_another(db_session, vendor):
    service = AddressService(db_session)
    first = await service.create_address(vendor.id, shop())
    second = await service.create_address(vendor.id, AddressCreate(**WAREHOUSE))

    deleted = await service.delete_address(vendor.id, first.id)

    assert (deleted.is_active, deleted.is_default) == (False, False)
    remaining = await service.list_addresses(vendor.id)
    assert [(a.id, a.is_default) for a in remaining] == [(second.id, True)]


@pytest.mark.asyncio
async def test_address_crud_over_http(client, vendor, carrier):
    headers = auth_headers(vendor)

    response = await client.post("/v1/addresses", json=WAREHOUSE, headers=headers)
    assert response.status_code == 201
    address = response.json()
    assert address["is_default"] is True

    # The new address is usable for parcel intake straight away
    payload = immediate_parcel(address["id"]).model_dump(mode="json")
    response = await client.post("/v1/vendor/parcels", json=payload, headers=headers)
    assert response.status_code == 201

    response = await client.patch(f"/v1/addresses/{address['id']}", json={"label": "Back door"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["label"] == "Back door"

    response = await client.get("/v1/addresses", headers=headers)
    assert [a["id"] for a in response.json()] == [address["id"]]

    response = await client.delete(f"/v1/addresses/{address['id']}", headers=headers)
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_STATE_001"

    response = await client.get("/v1/addresses", headers=auth_headers(carrier))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_http_delete_and_validation(client, db_session, vendor):
    headers = auth_headers(vendor)
    address = await AddressService(db_session).create_address(vendor.id, shop())

    response = await client.post("/v1/addresses", json={**WAREHOUSE, "latitude": 91}, headers=headers)
    assert response.status_code == 422

    response = await client.delete(f"/v1/addresses/{address.id}", headers=headers)
    assert response.status_code == 204

    response = await client.get(f"/v1/addresses/{address.id}", headers=headers)
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND_001"
