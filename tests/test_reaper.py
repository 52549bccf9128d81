import asyncio

from connections import DISCONNECTED


async def join(service, connection, code="ABC123"):
    await service.handler.join(connection, code, connection.viewer_id)


async def test_empty_room_is_reaped(service):
    service.store.create("ABC123", "vid1", "alice")

    assert await service.reaper.sweep() == ["ABC123"]
    assert "ABC123" not in service.store
    assert await service.reaper.sweep() == []


async def test_active_room_survives(service, clock, connect):
    service.store.create("ABC123", "vid1", "alice")
    await join(service, connect("alice"))
    clock.advance(299)

    assert await service.reaper.sweep() == []
    assert "ABC123" in service.store


async def test_inactive_room_is_announced_closed_and_removed(service, clock, connect, frames):
    service.store.create("ABC123", "vid1", "alice")
    alice, bob = connect("alice"), connect("bob")
    await join(service, alice)
    await join(service, bob)
    await frames(alice)
    await frames(bob)
    clock.advance(301)

    assert await service.reaper.sweep() == ["ABC123"]

    for connection in (alice, bob):
        assert await frames(connection) == [
            {"type": "room_closing", "reason": "inactive", "message": "Room closed due to inactivity"},
        ]
        assert connection.transport.closed == (1000, "Room closed due to inactivity")
        assert connection.state == DISCONNECTED
    assert "ABC123" not in service.store
    assert service.registry.total() == 0


async def test_disconnect_after_reap_is_harmless(service, clock, connect):
    service.store.create("ABC123", "vid1", "alice")
    alice = connect("alice")
    await join(service, alice)
    clock.advance(301)
    await service.reaper.sweep()
    service.store.create("ABC123", "vid2", "bob")

    await service.handler.disconnect(alice)

    assert service.store.get("ABC123").video_id == "vid2"


async def test_sweep_waits_for_room_lock(service, connect):
    service.store.create("ABC123", "vid1", "alice")

    async with service.locks.for_room("ABC123"):
        # the join queues on the room lock ahead of the sweep
        joining = asyncio.create_task(service.handler.join(connect("alice"), "ABC123", "alice"))
        await asyncio.sleep(0)
        sweep = asyncio.create_task(service.reaper.sweep())
        await asyncio.sleep(0)
        assert not joining.done()
        assert not sweep.done()

    assert await joining is True
    assert await sweep == []
    assert "ABC123" in service.store


async def test_run_loop_sweeps_on_interval(service):
    service.reaper.interval_seconds = 0.01
    service.store.create("ABC123", "vid1", "alice")

    service.reaper.start()
    for _ in range(100):
        if "ABC123" not in service.store:
            break
        await asyncio.sleep(0.01)
    await service.reaper.stop()

    assert "ABC123" not in service.store
