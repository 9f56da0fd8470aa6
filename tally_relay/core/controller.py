"""
core/controller.py — Owns the switcher connection and drives it through its lifecycle.

  IDLE → CONNECTING → HANDSHAKING → SUBSCRIBED → DISCONNECTED → CONNECTING …
                                         any state → SHUTTING_DOWN

Every state change goes through LifecycleController._transition(). Only one
SwitcherSession exists at a time; it is created per attempt and discarded,
together with its InputDirectory, when the attempt ends.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from .backoff import Backoff
from .decoder import DecoderMode, TallyDecoder
from .directory import DEFAULT_INPUT_COUNT, InputDirectory
from .errors import ConnectError, ConnectionLostError, HandshakeError
from .hub import BroadcastHub
from .session import SwitcherSession

log = logging.getLogger(__name__)

CONNECTED_STATUS = "Connected to vMix API"
DISCONNECTED_STATUS = "vMix connection closed."
SHUTDOWN_NOTICE = "Tally relay shutting down."

SessionFactory = Callable[[str, int], SwitcherSession]


class ControllerState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    SUBSCRIBED = "subscribed"
    DISCONNECTED = "disconnected"
    SHUTTING_DOWN = "shutting_down"


class LifecycleController:
    def __init__(
        self,
        host: str,
        port: int,
        hub: BroadcastHub,
        input_count: int = DEFAULT_INPUT_COUNT,
        backoff: Optional[Backoff] = None,
        connect_timeout: float = 5.0,
        handshake_timeout: float = 10.0,
        session_factory: Optional[SessionFactory] = None,
    ):
        if input_count < 1:
            raise ValueError("input_count must be >= 1")
        self.host = host
        self.port = port
        self.hub = hub
        self.input_count = input_count
        self.backoff = backoff or Backoff()
        self.connect_timeout = connect_timeout
        self.handshake_timeout = handshake_timeout
        self._session_factory = session_factory or self._default_session
        self.attempts = 0

        self._state = ControllerState.IDLE
        self._session: Optional[SwitcherSession] = None
        self._decoder = TallyDecoder()
        self._stopping = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def _default_session(self, host: str, port: int) -> SwitcherSession:
        return SwitcherSession(host, port, connect_timeout=self.connect_timeout)

    # ── State ─────────────────────────────────────────────────────────

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def directory(self) -> InputDirectory:
        return self._decoder.directory

    @property
    def decoder_mode(self) -> DecoderMode:
        return self._decoder.mode

    def is_connected(self) -> bool:
        return self._state is ControllerState.SUBSCRIBED

    def _transition(self, state: ControllerState) -> None:
        if self._state is ControllerState.SHUTTING_DOWN:
            return
        log.debug(f"Controller {self._state.value} → {state.value}")
        self._state = state

    # ── Main loop ─────────────────────────────────────────────────────

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name="tally-relay-controller")
        return self._task

    async def run(self) -> None:
        while not self._stopping.is_set():
            await self._attempt()
            if self._stopping.is_set():
                break
            self._transition(ControllerState.DISCONNECTED)
            delay = self.backoff.next_delay()
            log.warning(f"Retrying connection in {delay / 1000:g} seconds...")
            if await self._wait_for_stop(delay / 1000):
                break

    async def _wait_for_stop(self, seconds: float) -> bool:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def _attempt(self) -> None:
        """One connection attempt, returning when the session is over."""
        self._transition(ControllerState.CONNECTING)
        self.attempts += 1
        log.info(f"Attempting to connect to vMix API at {self.host}:{self.port}...")
        session = self._session_factory(self.host, self.port)
        try:
            await session.connect()
        except ConnectError as e:
            log.error(f"Error connecting to vMix API: {e}")
            if self.hub.last_status != DISCONNECTED_STATUS:
                await self.hub.broadcast_status(DISCONNECTED_STATUS)
            return

        self._session = session
        try:
            self._transition(ControllerState.HANDSHAKING)
            await self.hub.broadcast_status(CONNECTED_STATUS)
            await self._handshake(session)
            await session.subscribe()
            self._transition(ControllerState.SUBSCRIBED)
            self.backoff.reset()
            log.info(f"Subscribed to tally changes ({len(self.directory)} inputs named)")
            await self._relay_tallies(session)
        except HandshakeError as e:
            log.error(f"vMix handshake failed: {e}")
        except ConnectionLostError as e:
            log.warning(f"vMix connection lost: {e}")
        # Not in a finally: on cancellation shutdown() still needs the session.
        await self._teardown(session)

    async def _handshake(self, session: SwitcherSession) -> None:
        self._decoder.await_handshake()
        try:
            directory = await asyncio.wait_for(
                InputDirectory.resolve(session, self.input_count),
                timeout=self.handshake_timeout,
            )
        except asyncio.TimeoutError as e:
            raise HandshakeError(f"input names not received within {self.handshake_timeout:g}s") from e
        log.debug(f"Input names fetched: {directory.as_dict()}")
        self._decoder.enter_steady_state(directory)

    async def _relay_tallies(self, session: SwitcherSession) -> None:
        async for line in session.lines():
            event = self._decoder.feed(line)
            if event is not None:
                log.info(f"Active input: {event.value}")
                await self.hub.broadcast(event.to_message())

    async def _teardown(self, session: SwitcherSession) -> None:
        self._decoder.await_handshake()
        self._session = None
        await session.close()
        await self.hub.broadcast_status(DISCONNECTED_STATUS)

    # ── Shutdown ──────────────────────────────────────────────────────

    async def shutdown(self) -> None:
        """
        Stop for good: cancel any pending reconnect, unsubscribe (best-effort),
        close the session and the hub. Calling it again is a no-op.
        """
        if self._state is ControllerState.SHUTTING_DOWN:
            return
        log.info("Shutting down tally relay...")
        # State and stop flag flip before the first await, so a backoff timer
        # firing now cannot start another attempt.
        self._transition(ControllerState.SHUTTING_DOWN)
        self._stopping.set()

        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.wait({task})

        session, self._session = self._session, None
        if session is not None:
            if session.is_open():
                try:
                    await session.unsubscribe()
                except ConnectionLostError as e:
                    log.debug(f"Unsubscribe skipped: {e}")
            await session.close()
        self._decoder.await_handshake()

        await self.hub.close(SHUTDOWN_NOTICE)
        log.info("Tally relay stopped.")
