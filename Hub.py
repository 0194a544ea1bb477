# Hub.py
#
# Live subscriber registry for the dashboard WebSocket.
#
# - join(): register as OPEN, queue the latest reading as bootstrap, accept
# - publish(): queue a "new-reading" message for every OPEN subscriber
# - pump(): the only sender for a subscriber, drains its queue in order
# - leave(): CLOSED, removed from the set, pump stops
#
# Order per subscriber = order of publish() calls, because each subscriber
# has one FIFO queue and exactly one pump draining it.

import asyncio
import logging
import threading
from enum import Enum
from itertools import count
from typing import Any, List, Optional, Set

from starlette.concurrency import run_in_threadpool

from DB import ReadingStore, StorageError
from MSG import Reading, ReadingMessage

logger = logging.getLogger(__name__)

# messages a slow viewer may fall behind before it is dropped
MAX_PENDING = 256

_subscriber_ids = count(1)


class SubscriberState(str, Enum):
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


def encode_message(kind: str, reading: Reading) -> str:
    return ReadingMessage(type=kind, data=reading).model_dump_json()


class Subscriber:
    def __init__(self, connection: Any, max_pending: int = MAX_PENDING) -> None:
        self.id = next(_subscriber_ids)
        self.connection = connection
        self.state = SubscriberState.CONNECTING
        self.queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue(maxsize=max_pending)
        # highest reading id already queued; bootstrap + publish never repeat a reading
        self.last_id = 0

    def offer(self, reading_id: int, text: str) -> bool:
        """Queue a message; raises asyncio.QueueFull when the viewer is too far behind."""
        if self.state is not SubscriberState.OPEN or reading_id <= self.last_id:
            return False
        self.queue.put_nowait(text)
        self.last_id = reading_id
        return True


class BroadcastHub:
    def __init__(self, store: ReadingStore, max_pending: int = MAX_PENDING) -> None:
        self._store = store
        self._max_pending = max_pending
        self._lock = threading.Lock()
        self._subscribers: Set[Subscriber] = set()
        # Held by the ingest path around append + publish, and by join()
        # around register + bootstrap, so neither sees the other half done.
        self.lane = asyncio.Lock()

    def open_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    async def join(self, connection: Any) -> Subscriber:
        sub = Subscriber(connection, self._max_pending)

        # Registered before the handshake completes, so a client that has been
        # accepted never misses a publish. Nothing is sent until pump() runs.
        async with self.lane:
            with self._lock:
                sub.state = SubscriberState.OPEN
                self._subscribers.add(sub)

            try:
                latest = await run_in_threadpool(self._store.latest)
            except StorageError as e:
                logger.warning("Bootstrap skipped for subscriber %s: %s", sub.id, e)
                latest = None

            if latest is not None:
                sub.offer(latest.id, encode_message("latest-reading", latest))

        try:
            await connection.accept()
        except Exception:
            self.leave(sub)
            raise

        logger.info("WebSocket client connected (subscriber=%s)", sub.id)
        return sub

    def publish(self, reading: Reading) -> int:
        """Queue ``reading`` for every open subscriber. Call while holding ``lane``."""
        text = encode_message("new-reading", reading)
        delivered = 0
        overflowed: List[Subscriber] = []
        with self._lock:
            for sub in self._subscribers:
                try:
                    if sub.offer(reading.id, text):
                        delivered += 1
                except asyncio.QueueFull:
                    overflowed.append(sub)

        for sub in overflowed:
            logger.warning("Subscriber %s fell %s messages behind, dropping it", sub.id, self._max_pending)
            self.leave(sub)
        return delivered

    def leave(self, sub: Subscriber) -> None:
        with self._lock:
            if sub.state is SubscriberState.CLOSED:
                return
            sub.state = SubscriberState.CLOSED
            self._subscribers.discard(sub)

        # wake the pump so it can exit; a full queue means it exits on its next get()
        try:
            sub.queue.put_nowait(None)
        except asyncio.QueueFull:
            pass
        logger.info("WebSocket client disconnected (subscriber=%s)", sub.id)

    async def pump(self, sub: Subscriber) -> None:
        while True:
            text = await sub.queue.get()
            if text is None or sub.state is SubscriberState.CLOSED:
                return
            try:
                await sub.connection.send_text(text)
            except Exception as e:
                logger.warning("Delivery to subscriber %s failed: %s", sub.id, e)
                self.leave(sub)
                return
