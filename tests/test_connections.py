from connections import ConnectionRegistry, NORMAL_CLOSURE, POLICY_VIOLATION


async def test_frames_are_written_in_order_then_closed(connect):
    connection = connect("alice")

    connection.send_text('{"n": 1}')
    connection.send_text('{"n": 2}')
    connection.close(NORMAL_CLOSURE, "bye")
    await connection.flush()

    assert connection.transport.sent == [{"n": 1}, {"n": 2}]
    assert connection.transport.closed == (NORMAL_CLOSURE, "bye")
    assert connection.send_text('{"n": 3}') is False
    await connection.stop()


async def test_transport_failure_is_swallowed(connect):
    connection = connect("alice")
    connection.transport.fail = True

    assert connection.send_text('{"n": 1}') is True
    await connection.flush()

    assert connection.is_open is False
    assert connection.send_text('{"n": 2}') is False
    await connection.stop()


async def test_registry_join_leave_count(connect):
    registry = ConnectionRegistry()
    alice, bob = connect("alice"), connect("bob")

    assert registry.count("ROOM") == 0
    assert registry.join("ROOM", alice) == 1
    assert registry.join("ROOM", bob) == 2
    assert registry.contains("ROOM", "bob")
    assert registry.leave("ROOM", "alice") == 1
    assert registry.leave("ROOM", "alice") == 1
    assert registry.viewer_ids("ROOM") == ["bob"]
    assert registry.leave("MISSING", "bob") == 0
    assert registry.total() == 1


async def test_for_each_iterates_a_snapshot(connect):
    registry = ConnectionRegistry()
    for name in ("alice", "bob", "carol"):
        registry.join("ROOM", connect(name))

    visited = []

    def visit(connection):
        visited.append(connection.viewer_id)
        # a viewer dropping out mid-iteration must not disturb the others
        registry.leave("ROOM", "bob")

    registry.for_each("ROOM", visit)

    assert visited == ["alice", "bob", "carol"]
    assert registry.count("ROOM") == 2


async def test_drop_returns_held_connections(connect):
    registry = ConnectionRegistry()
    registry.create_bucket("ROOM")
    registry.join("ROOM", connect("alice"))

    dropped = registry.drop("ROOM")

    assert [c.viewer_id for c in dropped] == ["alice"]
    assert not registry.has_bucket("ROOM")
    assert registry.drop("ROOM") == []


async def test_reader_that_falls_behind_is_closed(connect):
    connection = connect("alice", max_frames=2)

    assert connection.send_text('{"n": 1}') is True
    assert connection.send_text('{"n": 2}') is True
    assert connection.send_text('{"n": 3}') is False
    assert connection.is_open is False
    await connection.flush()

    assert connection.transport.sent == [{"n": 1}, {"n": 2}]
    assert connection.transport.closed == (POLICY_VIOLATION, "Too many undelivered messages")
    await connection.stop()
