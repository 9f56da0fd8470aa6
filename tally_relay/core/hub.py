"""
core/hub.py — Fan-out of status and tally messages to browser subscribers.

Each subscriber gets a small outbox drained by its own sender task, so a
broadcast only enqueues and never waits on a slow client. Subscribers that are
not ready, or whose outbox is full, miss that message; a subscriber whose send
fails is dropped. None of this reaches the caller or the other subscribers.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from typing import Optional, Protocol

from .errors import SubscriberSendError

log = logging.getLogger(__name__)

WELCOME_MESSAGE = "WebSocket connection established."
DEFAULT_OUTBOX_SIZE = 16
CLOSE_TIMEOUT = 1.0

_CLOSE = object()


class SubscriberTransport(Protocol):
    def is_ready(self) -> bool: ...

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


class SubscriberHandle:
    def __init__(self, subscriber_id: int, transport: SubscriberTransport, outbox_size: int = DEFAULT_OUTBOX_SIZE):
        self.id = subscriber_id
        self.transport = transport
        self.failed = False
        self.closed = False
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=outbox_size)
        self._task: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        return f"<SubscriberHandle #{self.id}>"

    def start(self) -> None:
        self._task = asyncio.create_task(self._pump(), name=f"tally-subscriber-{self.id}")

    def offer(self, data: str) -> bool:
        """Queue `data` for this subscriber. False when it was skipped."""
        if self.closed or self.failed or not self.transport.is_ready():
            return False
        try:
            self._outbox.put_nowait(data)
        except asyncio.QueueFull:
            log.warning(f"Subscriber {self.id} is not keeping up, skipping message")
            return False
        return True

    async def drain(self) -> None:
        await self._outbox.join()

    async def close(self, code: int = 1001) -> None:
        if self.closed:
            return
        self.closed = True
        if self._task is not None and not self._task.done():
            try:
                self._outbox.put_nowait(_CLOSE)
            except asyncio.QueueFull:
                self._task.cancel()
            _, pending = await asyncio.wait({self._task}, timeout=CLOSE_TIMEOUT)
            for task in pending:
                task.cancel()
        try:
            await self.transport.close(code)
        except Exception as e:
            log.debug(f"Error closing subscriber {self.id}: {e}")

    async def _pump(self) -> None:
        try:
            while True:
                item = await self._outbox.get()
                try:
                    if item is _CLOSE:
                        return
                    await self._deliver(item)
                except SubscriberSendError as e:
                    log.info(f"Dropping subscriber {self.id}: {e}")
                    self.failed = True
                    return
                finally:
                    self._outbox.task_done()
        finally:
            while not self._outbox.empty():
                self._outbox.get_nowait()
                self._outbox.task_done()

    async def _deliver(self, data: str) -> None:
        try:
            await self.transport.send_text(data)
        except Exception as e:
            raise SubscriberSendError(str(e) or type(e).__name__) from e


class BroadcastHub:
    def __init__(self, outbox_size: int = DEFAULT_OUTBOX_SIZE):
        self.outbox_size = outbox_size
        self.last_status: Optional[str] = None
        self._subscribers: set[SubscriberHandle] = set()
        self._lock = asyncio.Lock()
        self._ids = itertools.count(1)
        self._closed = False

    def count(self) -> int:
        return len(self._subscribers)

    def is_closed(self) -> bool:
        return self._closed

    async def subscribe(self, transport: SubscriberTransport) -> SubscriberHandle:
        """
        Add a subscriber. It is sent the welcome message right away, then the
        last upstream status so it does not start from stale context.
        """
        if self._closed:
            raise RuntimeError("Broadcast hub is closed")
        handle = SubscriberHandle(next(self._ids), transport, self.outbox_size)
        handle.start()
        async with self._lock:
            self._subscribers.add(handle)
            total = len(self._subscribers)
        log.info(f"WebSocket client {handle.id} connected. Total: {total}")
        handle.offer(json.dumps({"message": WELCOME_MESSAGE}))
        if self.last_status:
            handle.offer(json.dumps({"message": self.last_status}))
        return handle

    async def unsubscribe(self, handle: SubscriberHandle) -> None:
        async with self._lock:
            known = handle in self._subscribers
            self._subscribers.discard(handle)
            total = len(self._subscribers)
        await handle.close()
        if known:
            log.info(f"WebSocket client {handle.id} disconnected. Total: {total}")

    async def broadcast(self, message: dict) -> int:
        """Queue `message` for every ready subscriber; returns how many took it."""
        data = json.dumps(message)
        async with self._lock:
            handles = list(self._subscribers)
        delivered = 0
        dead = []
        for handle in handles:
            if handle.failed:
                dead.append(handle)
            elif handle.offer(data):
                delivered += 1
        for handle in dead:
            await self.unsubscribe(handle)
        return delivered

    async def broadcast_status(self, text: str) -> int:
        self.last_status = text
        return await self.broadcast({"message": text})

    async def drain(self) -> None:
        """Wait until every queued message has been handed to its transport."""
        async with self._lock:
            handles = list(self._subscribers)
        await asyncio.gather(*(h.drain() for h in handles))

    async def close(self, notice: Optional[str] = None, code: int = 1001) -> None:
        """Send `notice` to everyone, then close all transports. Idempotent."""
        if self._closed:
            return
        self._closed = True
        async with self._lock:
            handles = list(self._subscribers)
            self._subscribers.clear()
        if notice:
            self.last_status = notice
            data = json.dumps({"message": notice})
            for handle in handles:
                handle.offer(data)
        await asyncio.gather(*(h.close(code) for h in handles))
        log.info("WebSocket server closed.")
