"""
core/errors.py — Failure taxonomy for the switcher relay.

ConnectError and HandshakeError are recovered by reconnecting with backoff.
DecodeError drops a single line. SubscriberSendError drops a single subscriber.
"""

from __future__ import annotations


class TallyRelayError(Exception):
    pass


class ConnectError(TallyRelayError):
    """The switcher refused or could not be reached."""


class ConnectionLostError(TallyRelayError):
    """An open switcher session failed or was closed by the peer."""


class HandshakeError(TallyRelayError):
    """Input name resolution could not complete on this session."""


class DecodeError(TallyRelayError):
    """A tally notification line could not be parsed."""


class SubscriberSendError(TallyRelayError):
    pass
