import asyncio

import pytest

from vacancy.concurrency import ChannelClosedError, TimeoutError
from vacancy.market import OccupancyStatus, OccupyResult, Registry, Resource
from vacancy.market.resource import _Status


class SilentResource(Resource):
    """Never answers status requests."""

    async def _handle(self, request):
        if isinstance(request, _Status):
            return
        await super()._handle(request)


class SlowRegistry(Registry):
    """Delays every publish that marks a resource occupied."""

    def __init__(self, delay):
        super().__init__()
        self.delay = delay

    async def put(self, resource_id, attributes, status, occupant_id=None):
        if status is OccupancyStatus.OCCUPIED:
            await asyncio.sleep(self.delay)
        return await super().put(resource_id, attributes, status, occupant_id)


async def settle():
    """Let the resource tasks drain their mailboxes."""
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_create_registers_vacant(registry):
    resource = await Resource.create(registry, {"quality": 0.5}, resource_id="r1")
    try:
        record = await registry.get("r1")
        assert record.status is OccupancyStatus.VACANT
        assert record.attributes == {"quality": 0.5}
        assert record.occupant_id is None
        assert resource.running
    finally:
        await resource.stop()


@pytest.mark.asyncio
async def test_generated_ids_are_unique(registry):
    first = await Resource.create(registry, {})
    second = await Resource.create(registry, {})
    try:
        assert first.id != second.id
        assert len(registry) == 2
    finally:
        await first.stop()
        await second.stop()


@pytest.mark.asyncio
async def test_attributes_are_read_only(registry):
    source = {"quality": 0.5}
    resource = await Resource.create(registry, source)
    try:
        source["quality"] = 0.1
        assert resource.attributes == {"quality": 0.5}
        with pytest.raises(TypeError):
            resource.attributes["quality"] = 1.0  # type: ignore[index]
    finally:
        await resource.stop()


@pytest.mark.asyncio
async def test_occupy_succeeds_when_vacant_and_publishes_before_reply(registry):
    resource = await Resource.create(registry, {"quality": 0.5}, resource_id="r1")
    try:
        assert await resource.occupy("actor-a") is OccupyResult.ACQUIRED

        # No extra scheduling needed: the record was written before the reply.
        record = await registry.get("r1")
        assert record.status is OccupancyStatus.OCCUPIED
        assert record.occupant_id == "actor-a"
    finally:
        await resource.stop()


@pytest.mark.asyncio
async def test_occupy_fails_when_already_occupied(registry):
    resource = await Resource.create(registry, {"quality": 0.5})
    try:
        assert await resource.occupy("actor-a") is OccupyResult.ACQUIRED
        assert await resource.occupy("actor-b") is OccupyResult.ALREADY_OCCUPIED
        # Same caller retrying is refused too.
        assert await resource.occupy("actor-a") is OccupyResult.ALREADY_OCCUPIED

        assert (await resource.status()).occupant_id == "actor-a"
    finally:
        await resource.stop()


@pytest.mark.asyncio
async def test_concurrent_claims_have_exactly_one_winner(registry):
    resource = await Resource.create(registry, {"quality": 0.5})
    try:
        results = await asyncio.gather(*(resource.occupy(f"actor-{i}") for i in range(10)))

        assert results.count(OccupyResult.ACQUIRED) == 1
        assert results.count(OccupyResult.ALREADY_OCCUPIED) == 9
        # The first request to arrive wins.
        assert results[0] is OccupyResult.ACQUIRED
        assert (await resource.status()).occupant_id == "actor-0"
    finally:
        await resource.stop()


@pytest.mark.asyncio
async def test_vacate_makes_resource_vacant_again(registry):
    resource = await Resource.create(registry, {"quality": 0.5}, resource_id="r1")
    try:
        await resource.occupy("actor-a")
        resource.vacate()
        await settle()

        record = await registry.get("r1")
        assert record.status is OccupancyStatus.VACANT
        assert record.occupant_id is None
        assert await resource.occupy("actor-b") is OccupyResult.ACQUIRED
    finally:
        await resource.stop()


@pytest.mark.asyncio
async def test_vacate_is_fire_and_forget(registry):
    """Right after a vacate send the registry may still show the old occupant."""
    resource = await Resource.create(registry, {"quality": 0.5}, resource_id="r1")
    try:
        await resource.occupy("actor-a")

        assert resource.vacate() is None
        stale = await registry.get("r1")
        assert stale.status is OccupancyStatus.OCCUPIED

        await settle()
        assert (await registry.get("r1")).status is OccupancyStatus.VACANT
    finally:
        await resource.stop()


@pytest.mark.asyncio
async def test_vacate_is_idempotent(registry):
    resource = await Resource.create(registry, {"quality": 0.5}, resource_id="r1")
    try:
        resource.vacate()
        resource.vacate()
        await settle()

        assert (await registry.get("r1")).status is OccupancyStatus.VACANT
        assert (await resource.status()).occupant_id is None
        assert resource.running
    finally:
        await resource.stop()


@pytest.mark.asyncio
async def test_vacate_ignores_who_occupies(registry):
    resource = await Resource.create(registry, {"quality": 0.5})
    try:
        await resource.occupy("actor-a")
        resource.vacate()
        snapshot = await resource.status()
        assert snapshot.occupant_id is None
    finally:
        await resource.stop()


@pytest.mark.asyncio
async def test_status_returns_current_state(registry):
    resource = await Resource.create(registry, {"quality": 0.5}, resource_id="r1")
    try:
        snapshot = await resource.status()
        assert snapshot.resource_id == "r1"
        assert snapshot.attributes == {"quality": 0.5}
        assert snapshot.occupant_id is None

        await resource.occupy("actor-a")
        assert (await resource.status(timeout=1.0)).occupant_id == "actor-a"
    finally:
        await resource.stop()


@pytest.mark.asyncio
async def test_status_timeout(registry):
    resource = await SilentResource.create(registry, {"quality": 0.5})
    try:
        with pytest.raises(TimeoutError):
            await resource.status(timeout=0.05)
        # Still serving other requests.
        assert await resource.occupy("actor-a") is OccupyResult.ACQUIRED
    finally:
        await resource.stop()


@pytest.mark.asyncio
async def test_stop_applies_pending_vacates(registry):
    resource = await Resource.create(registry, {"quality": 0.5}, resource_id="r1")
    await resource.occupy("actor-a")

    resource.vacate()
    await resource.stop()

    assert not resource.running
    assert (await registry.get("r1")).status is OccupancyStatus.VACANT
    with pytest.raises(ChannelClosedError):
        await resource.occupy("actor-b")
    with pytest.raises(ChannelClosedError):
        resource.vacate()


@pytest.mark.asyncio
async def test_start_twice_raises(registry):
    resource = await Resource.create(registry, {})
    try:
        with pytest.raises(RuntimeError):
            await resource.start()
    finally:
        await resource.stop()


@pytest.mark.asyncio
async def test_handler_failure_reaches_caller_and_loop_survives(registry):
    resource = await Resource.create(registry, {"quality": 0.5})
    original_publish = resource._publish
    calls = 0

    async def flaky_publish():
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("registry unavailable")
        await original_publish()

    resource._publish = flaky_publish  # type: ignore[method-assign]
    try:
        with pytest.raises(RuntimeError, match="registry unavailable"):
            await resource.occupy("actor-a")
        assert resource.running
        snapshot = await resource.status()
        assert snapshot.occupant_id is None
        assert await resource.occupy("actor-b") is OccupyResult.ACQUIRED
    finally:
        await resource.stop()


@pytest.mark.asyncio
async def test_stop_fails_request_in_flight():
    registry = SlowRegistry(delay=0.2)
    resource = await Resource.create(registry, {"quality": 0.5}, resource_id="r1")
    claim = asyncio.create_task(resource.occupy("actor-a"))
    await asyncio.sleep(0.02)

    await resource.stop()
    done, _ = await asyncio.wait({claim}, timeout=0.5)

    assert claim in done
    with pytest.raises(ChannelClosedError):
        claim.result()
    assert (await registry.get("r1")).is_vacant


@pytest.mark.asyncio
async def test_stop_fails_queued_requests():
    registry = SlowRegistry(delay=0.2)
    resource = await Resource.create(registry, {"quality": 0.5})
    first = asyncio.create_task(resource.occupy("actor-a"))
    second = asyncio.create_task(resource.occupy("actor-b"))
    status = asyncio.create_task(resource.status())
    await asyncio.sleep(0.02)

    await resource.stop()
    await asyncio.wait({first, second, status}, timeout=0.5)

    for task in (first, second, status):
        assert task.done()
        assert isinstance(task.exception(), ChannelClosedError)


@pytest.mark.asyncio
async def test_claim_abandoned_during_publish_is_rolled_back():
    registry = SlowRegistry(delay=0.05)
    resource = await Resource.create(registry, {"quality": 0.5}, resource_id="r1")
    try:
        claim = asyncio.create_task(resource.occupy("actor-a"))
        await asyncio.sleep(0.02)
        claim.cancel()
        await asyncio.sleep(0.1)

        assert claim.cancelled()
        assert (await resource.status()).occupant_id is None
        assert (await registry.get("r1")).is_vacant
        assert await resource.occupy("actor-b") is OccupyResult.ACQUIRED
    finally:
        await resource.stop()
