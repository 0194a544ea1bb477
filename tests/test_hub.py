import asyncio
import json
import threading

import pytest

from DB import StorageError
from Hub import BroadcastHub, SubscriberState

from conftest import FakeConnection


async def drain(hub, sub) -> None:
    """Let the subscriber's pump send everything queued so far, then stop."""
    sub.queue.put_nowait(None)
    await hub.pump(sub)


def decode(sent):
    return [json.loads(s) for s in sent]


@pytest.mark.asyncio
async def test_join_on_empty_store_sends_no_bootstrap(store) -> None:
    hub = BroadcastHub(store)
    conn = FakeConnection()

    sub = await hub.join(conn)
    await drain(hub, sub)

    assert conn.accepted
    assert sub.state is SubscriberState.OPEN
    assert conn.sent == []
    assert hub.open_count() == 1


@pytest.mark.asyncio
async def test_join_sends_latest_once(store) -> None:
    store.append(20.0, 40.0)
    latest = store.append(22.0, 41.0)
    hub = BroadcastHub(store)
    conn = FakeConnection()

    sub = await hub.join(conn)
    await drain(hub, sub)

    assert decode(conn.sent) == [{"type": "latest-reading", "data": latest.model_dump()}]


@pytest.mark.asyncio
async def test_bootstrapped_reading_is_not_sent_again(store) -> None:
    reading = store.append(20.0, 40.0)
    hub = BroadcastHub(store)
    sub = await hub.join(FakeConnection())

    # publish of the same reading racing with join
    assert hub.publish(reading) == 0
    assert sub.queue.qsize() == 1


@pytest.mark.asyncio
async def test_publish_preserves_order_per_subscriber(store) -> None:
    hub = BroadcastHub(store)
    a, b = FakeConnection(), FakeConnection()
    sub_a = await hub.join(a)
    sub_b = await hub.join(b)

    r1 = store.append(20.0, 40.0)
    r2 = store.append(21.0, 41.0)
    r3 = store.append(22.0, 42.0)
    for r in (r1, r2, r3):
        assert hub.publish(r) == 2

    await drain(hub, sub_a)
    await drain(hub, sub_b)

    for conn in (a, b):
        msgs = decode(conn.sent)
        assert [m["type"] for m in msgs] == ["new-reading"] * 3
        assert [m["data"]["id"] for m in msgs] == [r1.id, r2.id, r3.id]


@pytest.mark.asyncio
async def test_failed_subscriber_does_not_affect_others(store) -> None:
    hub = BroadcastHub(store)
    good, bad = FakeConnection(), FakeConnection(fail=True)
    sub_good = await hub.join(good)
    sub_bad = await hub.join(bad)

    reading = store.append(25.0, 50.0)
    hub.publish(reading)

    await hub.pump(sub_bad)
    await drain(hub, sub_good)

    assert sub_bad.state is SubscriberState.CLOSED
    assert decode(good.sent)[0]["data"]["id"] == reading.id
    assert hub.open_count() == 1


@pytest.mark.asyncio
async def test_closed_subscriber_misses_messages(store) -> None:
    hub = BroadcastHub(store)
    conn = FakeConnection()
    sub = await hub.join(conn)

    hub.leave(sub)
    hub.leave(sub)  # second disconnect notification is a no-op

    assert hub.publish(store.append(20.0, 40.0)) == 0
    await hub.pump(sub)
    assert conn.sent == []
    assert hub.open_count() == 0


class BrokenStore:
    def latest(self):
        raise StorageError("disk I/O error")


@pytest.mark.asyncio
async def test_join_survives_bootstrap_read_failure() -> None:
    hub = BroadcastHub(BrokenStore())
    sub = await hub.join(FakeConnection())

    assert sub.state is SubscriberState.OPEN
    assert sub.queue.empty()


class RecordingStore:
    """Remembers which thread served the bootstrap read."""

    def __init__(self, store) -> None:
        self._store = store
        self.threads = []

    def latest(self):
        self.threads.append(threading.get_ident())
        return self._store.latest()


@pytest.mark.asyncio
async def test_bootstrap_read_runs_off_the_event_loop(store) -> None:
    store.append(20.0, 40.0)
    recording = RecordingStore(store)
    hub = BroadcastHub(recording)

    await hub.join(FakeConnection())

    assert recording.threads
    assert threading.get_ident() not in recording.threads


@pytest.mark.asyncio
async def test_join_waits_for_inflight_ingest(store) -> None:
    hub = BroadcastHub(store)
    conn = FakeConnection()

    async with hub.lane:
        joining = asyncio.create_task(hub.join(conn))
        await asyncio.sleep(0.05)
        assert not joining.done()
        assert not conn.accepted

        # the write that was in flight lands before the newcomer's bootstrap
        reading = store.append(21.0, 41.0)
        hub.publish(reading)

    sub = await joining
    await drain(hub, sub)

    assert decode(conn.sent) == [{"type": "latest-reading", "data": reading.model_dump()}]


@pytest.mark.asyncio
async def test_stalled_subscriber_is_dropped_when_queue_fills(store) -> None:
    hub = BroadcastHub(store, max_pending=3)
    sub_stalled = await hub.join(FakeConnection())
    sub_healthy = await hub.join(FakeConnection())

    readings = [store.append(20.0 + i, 40.0) for i in range(4)]
    taken = []
    for r in readings[:3]:
        hub.publish(r)
        # the healthy viewer keeps up, the stalled one never reads
        taken.append(json.loads(sub_healthy.queue.get_nowait())["data"]["id"])

    assert hub.publish(readings[3]) == 1

    assert sub_stalled.state is SubscriberState.CLOSED
    assert sub_healthy.state is SubscriberState.OPEN
    assert hub.open_count() == 1
    taken.append(json.loads(sub_healthy.queue.get_nowait())["data"]["id"])
    assert taken == [r.id for r in readings]

    # the dropped viewer's pump exits instead of sending stale messages
    await hub.pump(sub_stalled)
