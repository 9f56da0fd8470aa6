"""
core/session.py — One asyncio TCP session to the vMix API.

The session owns the socket and the line framing, nothing else. It never
retries: a failed connect raises ConnectError, a dropped socket raises
ConnectionLostError from the reader and fires the close listeners once.
Reconnecting is LifecycleController's job.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import AsyncIterator, Callable, Optional

from .errors import ConnectError, ConnectionLostError
from .protocol import SUBSCRIBE_TALLY, UNSUBSCRIBE_TALLY, decode_line, encode_line

log = logging.getLogger(__name__)

CloseCallback = Callable[[Optional[BaseException]], None]


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    HANDSHAKING_NAMES = "handshaking_names"
    SUBSCRIBED = "subscribed"
    CLOSING = "closing"


class SwitcherSession:
    def __init__(self, host: str, port: int, connect_timeout: float = 5.0):
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout

        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._state = SessionState.DISCONNECTED
        self._finished = False
        self._close_listeners: list[CloseCallback] = []

    def __repr__(self) -> str:
        return f"<SwitcherSession {self.host}:{self.port} {self._state.value}>"

    @property
    def state(self) -> SessionState:
        return self._state

    def is_open(self) -> bool:
        return self._writer is not None and not self._finished

    def on_close(self, callback: CloseCallback) -> None:
        """
        Register a listener fired exactly once when the session ends, with the
        error that ended it or None for a local close().
        """
        self._close_listeners.append(callback)

    # ── Connection ────────────────────────────────────────────────────

    async def connect(self) -> "SwitcherSession":
        if self._writer is not None or self._finished:
            raise ConnectError("session already used; create a new one per attempt")
        self._state = SessionState.CONNECTING
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.connect_timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            self._state = SessionState.DISCONNECTED
            self._finished = True
            reason = str(e) or type(e).__name__
            raise ConnectError(f"cannot reach vMix API at {self.host}:{self.port}: {reason}") from e
        self._state = SessionState.HANDSHAKING_NAMES
        log.info(f"Connected to vMix API {self.host}:{self.port}")
        return self

    async def close(self) -> None:
        """Close the socket. Safe to call repeatedly and after a failure."""
        if self._finished:
            return
        self._state = SessionState.CLOSING
        writer, self._writer = self._writer, None
        self._reader = None
        try:
            if writer is not None:
                writer.close()
                try:
                    await writer.wait_closed()
                except OSError as e:
                    log.debug(f"Error while closing vMix socket: {e}")
        finally:
            self._finish(None)

    def _finish(self, error: Optional[BaseException]) -> None:
        if self._finished:
            return
        self._finished = True
        self._state = SessionState.DISCONNECTED
        if error is not None and self._writer is not None:
            self._writer.close()
        self._writer = None
        self._reader = None
        for cb in self._close_listeners:
            try:
                cb(error)
            except Exception as e:
                log.error(f"Session close listener error: {e}")

    # ── Line I/O ──────────────────────────────────────────────────────

    async def send(self, line: str) -> None:
        if not self.is_open():
            raise ConnectionLostError("vMix session is not open")
        log.debug(f"Sending to vMix: {line}")
        try:
            self._writer.write(encode_line(line))
            await self._writer.drain()
        except OSError as e:
            self._finish(e)
            raise ConnectionLostError(f"vMix write failed: {e}") from e

    async def read_line(self) -> str:
        if not self.is_open():
            raise ConnectionLostError("vMix session is not open")
        try:
            raw = await self._reader.readline()
        except (OSError, asyncio.IncompleteReadError, ValueError) as e:
            self._finish(e)
            raise ConnectionLostError(f"vMix read failed: {e}") from e
        if not raw:
            error = ConnectionLostError("vMix closed the connection")
            self._finish(error)
            raise error
        line = decode_line(raw)
        log.debug(f"Received data from vMix: {line}")
        return line

    async def lines(self) -> AsyncIterator[str]:
        """Yield inbound lines until the session ends (ConnectionLostError)."""
        while True:
            yield await self.read_line()

    # ── Tally subscription ────────────────────────────────────────────

    async def subscribe(self) -> None:
        await self.send(SUBSCRIBE_TALLY)
        self._state = SessionState.SUBSCRIBED

    async def unsubscribe(self) -> None:
        await self.send(UNSUBSCRIBE_TALLY)
