"""
End-to-end mission flow over HTTP.

Vendor creates a parcel, a carrier discovers and accepts it, the packaging
handshake runs, the pickup code is checked and the parcel is delivered.
Also covers authentication, role gating and the error envelope.
"""

import pytest

from parcelhop.app.core.config import settings
from parcelhop.app.domain.missions.events import MissionEvent
from parcelhop.app.models.enums import UserRole

from conftest import auth_headers, create_user, immediate_parcel, SHOP_LAT, SHOP_LON


async def create_parcel(client, vendor, address):
    payload = immediate_parcel(address.id).model_dump(mode="json")
    response = await client.post("/v1/vendor/parcels", json=payload, headers=auth_headers(vendor))
    assert response.status_code == 201
    return response.json()


async def accept(client, carrier, parcel_id):
    response = await client.post(f"/v1/carrier/parcels/{parcel_id}/accept", headers=auth_headers(carrier))
    assert response.status_code == 200
    return response.json()["mission"]


async def reach_packaging_confirmed(client, vendor, carrier, parcel_id):
    mission = await accept(client, carrier, parcel_id)
    mission_id = mission["id"]
    carrier_headers = auth_headers(carrier)

    response = await client.post(f"/v1/carrier/missions/{mission_id}/arrive", headers=carrier_headers)
    assert response.status_code == 200

    response = await client.post(
        f"/v1/carrier/missions/{mission_id}/packaging",
        json={"photo_url": "https://img.test/box.jpg"},
        headers=carrier_headers,
    )
    assert response.status_code == 200

    response = await client.post(
        f"/v1/vendor/parcels/{parcel_id}/packaging/confirm", headers=auth_headers(vendor)
    )
    assert response.status_code == 200
    return mission_id


@pytest.mark.asyncio
async def test_full_mission_flow(client, dispatcher, vendor, vendor_address, carrier):
    parcel = await create_parcel(client, vendor, vendor_address)
    parcel_id = parcel["id"]
    carrier_headers = auth_headers(carrier)
    vendor_headers = auth_headers(vendor)

    # Discovery from an explicit position
    response = await client.get(
        "/v1/carrier/missions/available",
        params={"latitude": SHOP_LAT, "longitude": SHOP_LON, "radius_km": 3},
        headers=carrier_headers,
    )
    assert response.status_code == 200
    available = response.json()
    assert [m["parcel_id"] for m in available] == [parcel_id]
    assert available[0]["carrier_payout"] == "3.20"
    assert "pickup_code" not in available[0]

    mission = await accept(client, carrier, parcel_id)
    mission_id = mission["id"]

    response = await client.post(
        f"/v1/carrier/missions/{mission_id}/depart",
        json={"latitude": 48.8640, "longitude": 2.3420},
        headers=carrier_headers,
    )
    assert response.status_code == 200
    assert response.json()["eta_minutes"] >= 1

    response = await client.post(f"/v1/carrier/missions/{mission_id}/arrive", headers=carrier_headers)
    assert response.status_code == 200
    assert response.json()["arrived_at"] is not None

    response = await client.post(
        f"/v1/carrier/missions/{mission_id}/packaging",
        json={"photo_url": "https://img.test/box.jpg"},
        headers=carrier_headers,
    )
    assert response.status_code == 200
    assert response.json()["packaging_state"] == "PACKAGING_PENDING"

    response = await client.get(f"/v1/parcels/{parcel_id}/packaging", headers=vendor_headers)
    assert response.status_code == 200
    handshake = response.json()
    assert handshake["status"] == "CARRIER_CONFIRMED"
    assert handshake["hours_remaining"] == settings.packaging_grace_period_hours

    response = await client.post(f"/v1/vendor/parcels/{parcel_id}/packaging/confirm", headers=vendor_headers)
    assert response.status_code == 200
    assert response.json()["packaging_state"] == "PACKAGING_CONFIRMED"

    response = await client.post(
        f"/v1/parcels/{parcel_id}/pickup", json={"pickup_code": parcel["pickup_code"]}, headers=carrier_headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "PICKED_UP"

    response = await client.post(
        f"/v1/carrier/missions/{mission_id}/deliver",
        json={"proof_photo_url": "https://img.test/receipt.jpg", "notes": "Left at counter 3"},
        headers=carrier_headers,
    )
    assert response.status_code == 200
    delivery = response.json()
    assert delivery["parcel"]["status"] == "DELIVERED"
    assert delivery["transaction"]["amount"] == "4.00"
    assert delivery["transaction"]["carrier_payout"] == "3.20"

    response = await client.get("/v1/carrier/missions/history", headers=carrier_headers)
    history = response.json()
    assert history["total"] == 1
    assert history["missions"][0]["id"] == mission_id

    response = await client.post(
        f"/v1/parcels/{parcel_id}/reviews", json={"rating": 5, "comment": "Perfect"}, headers=vendor_headers
    )
    assert response.status_code == 201
    assert response.json()["reviewee_id"] == carrier.id

    assert MissionEvent.PAYMENT_RELEASE_REQUESTED in dispatcher.names()


@pytest.mark.asyncio
async def test_second_accept_is_conflict(client, vendor, vendor_address, carrier, other_carrier):
    parcel = await create_parcel(client, vendor, vendor_address)
    await accept(client, carrier, parcel["id"])

    response = await client.post(
        f"/v1/carrier/parcels/{parcel['id']}/accept", headers=auth_headers(other_carrier)
    )

    assert response.status_code == 409
    body = response.json()
    assert body["error_code"] == "ERR_STATE_001"
    assert body["details"]["current_state"] == "ACCEPTED"


@pytest.mark.asyncio
async def test_wrong_pickup_code_then_lockout(client, mock_redis, vendor, vendor_address, carrier):
    parcel = await create_parcel(client, vendor, vendor_address)
    await reach_packaging_confirmed(client, vendor, carrier, parcel["id"])
    url = f"/v1/parcels/{parcel['id']}/pickup"
    wrong = "000000" if parcel["pickup_code"] != "000000" else "111111"

    for _ in range(settings.pickup_code_max_attempts):
        response = await client.post(url, json={"pickup_code": wrong}, headers=auth_headers(carrier))
        assert response.status_code == 400
        assert response.json()["error_code"] == "ERR_CODE_001"

    # Even the right code is refused while locked out
    response = await client.post(url, json={"pickup_code": parcel["pickup_code"]}, headers=auth_headers(carrier))
    assert response.status_code == 429
    assert response.json()["error_code"] == "ERR_RATE_001"

    # The vendor has a separate budget
    response = await client.post(url, json={"pickup_code": parcel["pickup_code"]}, headers=auth_headers(vendor))
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_pickup_before_packaging_confirmed_is_conflict(client, vendor, vendor_address, carrier):
    parcel = await create_parcel(client, vendor, vendor_address)
    await accept(client, carrier, parcel["id"])

    response = await client.post(
        f"/v1/parcels/{parcel['id']}/pickup", json={"pickup_code": parcel["pickup_code"]},
        headers=auth_headers(carrier),
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_vendor_rejects_packaging(client, vendor, vendor_address, carrier):
    parcel = await create_parcel(client, vendor, vendor_address)
    mission = await accept(client, carrier, parcel["id"])
    await client.post(f"/v1/carrier/missions/{mission['id']}/arrive", headers=auth_headers(carrier))
    await client.post(
        f"/v1/carrier/missions/{mission['id']}/packaging",
        json={"photo_url": "https://img.test/box.jpg"},
        headers=auth_headers(carrier),
    )

    response = await client.post(
        f"/v1/vendor/parcels/{parcel['id']}/packaging/reject",
        json={"reason": "Box is torn"},
        headers=auth_headers(vendor),
    )
    assert response.status_code == 200
    assert response.json()["packaging_state"] == "NOT_SUBMITTED"

    response = await client.get(f"/v1/parcels/{parcel['id']}/packaging", headers=auth_headers(carrier))
    assert response.json()["status"] == "REJECTED"
    assert response.json()["rejection_reason"] == "Box is torn"


@pytest.mark.asyncio
async def test_cancel_by_vendor(client, dispatcher, vendor, vendor_address, carrier):
    parcel = await create_parcel(client, vendor, vendor_address)
    await accept(client, carrier, parcel["id"])

    response = await client.post(
        f"/v1/parcels/{parcel['id']}/cancel", json={"reason": "Customer changed their mind"},
        headers=auth_headers(vendor),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"
    assert response.json()["carrier_id"] is None

    cancelled = dispatcher.payloads(MissionEvent.PARCEL_CANCELLED)[-1]
    assert cancelled["recipient_ids"] == [carrier.id]

    response = await client.post(f"/v1/parcels/{parcel['id']}/cancel", json={}, headers=auth_headers(vendor))
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_half_a_position_is_rejected(client, carrier):
    response = await client.get(
        "/v1/carrier/missions/available", params={"latitude": SHOP_LAT}, headers=auth_headers(carrier)
    )
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION_001"


@pytest.mark.asyncio
async def test_carrier_cannot_read_another_carriers_mission(client, vendor, vendor_address, carrier, other_carrier):
    parcel = await create_parcel(client, vendor, vendor_address)
    mission = await accept(client, carrier, parcel["id"])

    response = await client.get(f"/v1/carrier/missions/{mission['id']}", headers=auth_headers(other_carrier))
    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_PERM_001"


@pytest.mark.asyncio
async def test_vendor_cannot_see_other_vendors_parcel(client, db_session, vendor, vendor_address):
    parcel = await create_parcel(client, vendor, vendor_address)
    rival = await create_user(db_session, "rival", UserRole.VENDOR)

    response = await client.get(f"/v1/vendor/parcels/{parcel['id']}", headers=auth_headers(rival))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_roles_are_enforced(client, vendor, carrier):
    response = await client.get("/v1/carrier/missions/available", headers=auth_headers(vendor))
    assert response.status_code == 403

    response = await client.get("/v1/vendor/parcels", headers=auth_headers(carrier))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_invalid_token_is_unauthorized(client):
    response = await client.get("/v1/vendor/parcels", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_UNAUTHORIZED"


@pytest.mark.asyncio
async def test_health_and_correlation_id(client):
    response = await client.get("/health", headers={"X-Correlation-ID": "trace-123"})
    assert response.status_code == 200
    assert response.headers["X-Correlation-ID"] == "trace-123"
