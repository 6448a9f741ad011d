"""
Packaging auto-confirmation scheduler tests.
"""

import asyncio
import pytest
from datetime import datetime, timedelta

from parcelhop.app.domain.missions import state as states
from parcelhop.app.domain.missions.events import MissionEvent
from parcelhop.app.domain.missions.mission_service import MissionService
from parcelhop.app.repositories.parcel_repository import SQLAlchemyMissionRepository
from parcelhop.app.services.audit import get_audit_trail, AuditAction
from parcelhop.app.services.scheduler import PackagingConfirmationScheduler, JOB_ID

from conftest import TestingSessionLocal, immediate_parcel

GRACE = timedelta(hours=12)


async def submit_packaging(repository, dispatcher, parcel_service, vendor, address, carrier, hours_ago: float):
    """Create a parcel whose packaging was submitted ``hours_ago`` and never answered."""
    parcel = await parcel_service.create_parcel(vendor.id, immediate_parcel(address.id))
    submitted_at = datetime.utcnow() - timedelta(hours=hours_ago)
    service = MissionService(repository, dispatcher, clock=lambda: submitted_at)

    accepted = await service.accept(parcel.id, carrier.id)
    await service.arrived_at_pickup(accepted.mission.id, carrier.id)
    await service.confirm_packaging(accepted.mission.id, carrier.id, "https://img.test/box.jpg")
    return parcel


@pytest.fixture
def scheduler(dispatcher):
    return PackagingConfirmationScheduler(TestingSessionLocal, dispatcher, grace_period=GRACE)


@pytest.mark.asyncio
async def test_sweep_confirms_only_expired_handshakes(scheduler, repository, dispatcher, parcel_service, vendor, vendor_address, carrier, db_session):
    expired = await submit_packaging(repository, dispatcher, parcel_service, vendor, vendor_address, carrier, hours_ago=13)
    fresh = await submit_packaging(repository, dispatcher, parcel_service, vendor, vendor_address, carrier, hours_ago=2)

    result = await scheduler.sweep()

    assert result.processed_count == 1
    assert [(o.parcel_id, o.result) for o in result.outcomes] == [(expired.id, "auto_confirmed")]

    parcel = await repository.get_parcel_by_id(expired.id)
    assert parcel.state == states.PACKAGING_CONFIRMED
    assert parcel.packaging_auto_confirmed is True
    assert (await repository.get_parcel_by_id(fresh.id)).state == states.PACKAGING_PENDING

    confirmed = dispatcher.payloads(MissionEvent.PACKAGING_CONFIRMED)[-1]
    assert confirmed["auto_confirmed"] is True
    assert confirmed["recipient_ids"] == [vendor.id, carrier.id]

    trail = await get_audit_trail(db_session, action=AuditAction.PACKAGING_AUTO_CONFIRMED)
    assert [log.entity_id for log in trail] == [expired.id]
    assert trail[0].actor_id is None


@pytest.mark.asyncio
async def test_second_sweep_is_a_no_op(scheduler, repository, dispatcher, parcel_service, vendor, vendor_address, carrier):
    await submit_packaging(repository, dispatcher, parcel_service, vendor, vendor_address, carrier, hours_ago=20)

    first = await scheduler.sweep()
    second = await scheduler.sweep()

    assert first.processed_count == 1
    assert second.processed_count == 0
    assert second.outcomes == []


@pytest.mark.asyncio
async def test_one_failure_does_not_stop_the_sweep(mocker, scheduler, repository, dispatcher, parcel_service, vendor, vendor_address, carrier):
    broken = await submit_packaging(repository, dispatcher, parcel_service, vendor, vendor_address, carrier, hours_ago=14)
    healthy = await submit_packaging(repository, dispatcher, parcel_service, vendor, vendor_address, carrier, hours_ago=13)

    original = MissionService.auto_confirm_packaging

    async def flaky(self, parcel_id):
        if parcel_id == broken.id:
            raise RuntimeError("storage hiccup")
        return await original(self, parcel_id)

    mocker.patch.object(MissionService, "auto_confirm_packaging", flaky)

    result = await scheduler.sweep()

    outcomes = {o.parcel_id: o for o in result.outcomes}
    assert outcomes[broken.id].result == "error"
    assert "storage hiccup" in outcomes[broken.id].error
    assert outcomes[healthy.id].result == "auto_confirmed"
    assert result.processed_count == 1

    assert (await repository.get_parcel_by_id(broken.id)).state == states.PACKAGING_PENDING
    assert (await repository.get_parcel_by_id(healthy.id)).state == states.PACKAGING_CONFIRMED


@pytest.mark.asyncio
async def test_vendor_answer_during_sweep_is_skipped(mocker, scheduler, repository, dispatcher, parcel_service, vendor, vendor_address, carrier):
    parcel = await submit_packaging(repository, dispatcher, parcel_service, vendor, vendor_address, carrier, hours_ago=13)

    original = MissionService.auto_confirm_packaging

    async def vendor_first(self, parcel_id):
        # The vendor confirms between the sweep's query and its write
        async with TestingSessionLocal() as session:
            await MissionService(SQLAlchemyMissionRepository(session), dispatcher).vendor_confirm_packaging(
                parcel_id, vendor.id
            )
        return await original(self, parcel_id)

    mocker.patch.object(MissionService, "auto_confirm_packaging", vendor_first)

    result = await scheduler.sweep()

    assert result.processed_count == 0
    assert [(o.parcel_id, o.result) for o in result.outcomes] == [(parcel.id, "skipped")]
    assert (await repository.get_parcel_by_id(parcel.id)).packaging_auto_confirmed is False


@pytest.mark.asyncio
async def test_overlapping_sweep_is_skipped_and_stop_waits(mocker, scheduler, repository, dispatcher, parcel_service, vendor, vendor_address, carrier):
    parcel = await submit_packaging(repository, dispatcher, parcel_service, vendor, vendor_address, carrier, hours_ago=13)

    started = asyncio.Event()
    release = asyncio.Event()
    original = MissionService.auto_confirm_packaging

    async def slow(self, parcel_id):
        started.set()
        await release.wait()
        return await original(self, parcel_id)

    mocker.patch.object(MissionService, "auto_confirm_packaging", slow)

    in_flight = asyncio.create_task(scheduler.sweep())
    await started.wait()
    assert scheduler.is_sweeping

    overlapping = await scheduler.sweep()
    assert overlapping.processed_count == 0
    assert overlapping.outcomes == []

    stopping = asyncio.create_task(scheduler.stop())
    await asyncio.sleep(0.05)
    assert not stopping.done()

    release.set()
    result = await in_flight
    await stopping

    assert result.processed_count == 1
    assert (await repository.get_parcel_by_id(parcel.id)).state == states.PACKAGING_CONFIRMED


@pytest.mark.asyncio
async def test_start_registers_single_instance_interval_job(scheduler):
    scheduler.start()
    try:
        job = scheduler._scheduler.get_job(JOB_ID)
        assert job is not None
        assert job.max_instances == 1
        assert job.coalesce is True
        assert job.trigger.interval == timedelta(minutes=60)
    finally:
        await scheduler.stop()

    assert scheduler._scheduler is None


@pytest.mark.asyncio
async def test_zero_grace_period_is_honoured(repository, dispatcher, parcel_service, vendor, vendor_address, carrier):
    parcel = await submit_packaging(repository, dispatcher, parcel_service, vendor, vendor_address, carrier, hours_ago=0.5)

    scheduler = PackagingConfirmationScheduler(TestingSessionLocal, dispatcher, grace_period=timedelta(0))
    assert scheduler.grace_period == timedelta(0)

    result = await scheduler.sweep()

    assert [(o.parcel_id, o.result) for o in result.outcomes] == [(parcel.id, "auto_confirmed")]
    assert (await repository.get_parcel_by_id(parcel.id)).state == states.PACKAGING_CONFIRMED


@pytest.mark.asyncio
async def test_zero_grace_period_leaves_no_hours_remaining(repository, dispatcher, parcel_service, vendor, vendor_address, carrier):
    parcel = await submit_packaging(repository, dispatcher, parcel_service, vendor, vendor_address, carrier, hours_ago=0.5)

    service = MissionService(repository, dispatcher, grace_period=timedelta(0))
    status = await service.get_packaging_status(parcel.id, vendor.id)

    assert status.status == "CARRIER_CONFIRMED"
    assert status.hours_remaining == 0
