"""core — vMix session, handshake, tally decoding, fan-out and lifecycle."""
from .backoff import Backoff
from .controller import ControllerState, LifecycleController
from .decoder import DecoderMode, TallyDecoder, TallyEvent, decode
from .directory import InputDirectory, resolve_names
from .errors import (
    ConnectError,
    ConnectionLostError,
    DecodeError,
    HandshakeError,
    SubscriberSendError,
    TallyRelayError,
)
from .hub import BroadcastHub, SubscriberHandle
from .session import SessionState, SwitcherSession

__all__ = [
    "Backoff",
    "BroadcastHub",
    "ConnectError",
    "ConnectionLostError",
    "ControllerState",
    "DecodeError",
    "DecoderMode",
    "HandshakeError",
    "InputDirectory",
    "LifecycleController",
    "SessionState",
    "SubscriberHandle",
    "SubscriberSendError",
    "SwitcherSession",
    "TallyDecoder",
    "TallyEvent",
    "TallyRelayError",
    "decode",
    "resolve_names",
]
