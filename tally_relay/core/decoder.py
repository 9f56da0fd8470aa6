"""
core/decoder.py — TALLY OK notifications → TallyEvent.

`TALLY OK 0120` carries one digit per input: 0 off, 1 program, 2 preview.
The first '1' (1-indexed) is the live input.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from .directory import InputDirectory
from .errors import DecodeError
from .protocol import TALLY_OK, is_tally_line

log = logging.getLogger(__name__)

TALLY_STATES = frozenset("012")
PROGRAM = "1"


@dataclass(frozen=True)
class TallyEvent:
    slot: int
    value: Union[str, int]

    def to_message(self) -> dict:
        return {"tally": self.value}


def parse_active_slot(bitmask: str) -> Optional[int]:
    """1-based slot of the first program input, None if nothing is live."""
    if not bitmask:
        raise DecodeError("empty tally bitmask")
    if not set(bitmask) <= TALLY_STATES:
        raise DecodeError(f"unexpected tally bitmask {bitmask!r}")
    index = bitmask.find(PROGRAM)
    return index + 1 if index >= 0 else None


def decode(line: str, directory: Optional[InputDirectory] = None) -> Optional[TallyEvent]:
    """
    Decode one inbound line. Returns None for lines that are not tally
    notifications and for notifications with no live input; raises
    DecodeError for a malformed bitmask.
    """
    if not is_tally_line(line):
        return None
    slot = parse_active_slot(line[len(TALLY_OK):].strip())
    if slot is None:
        return None
    name = directory.lookup(slot) if directory is not None else None
    # Blank titles fall back to the slot number like unresolved ones.
    return TallyEvent(slot=slot, value=name if name else slot)


class DecoderMode(str, Enum):
    AWAITING_HANDSHAKE = "awaiting_handshake"
    STEADY_STATE = "steady_state"


class TallyDecoder:
    """
    Stateful front of decode(). Until the controller switches it to
    STEADY_STATE, every line belongs to the handshake and yields nothing.
    """

    def __init__(self):
        self.mode = DecoderMode.AWAITING_HANDSHAKE
        self.directory = InputDirectory.empty()

    def await_handshake(self) -> None:
        self.mode = DecoderMode.AWAITING_HANDSHAKE
        self.directory = InputDirectory.empty()

    def enter_steady_state(self, directory: InputDirectory) -> None:
        self.directory = directory
        self.mode = DecoderMode.STEADY_STATE

    def feed(self, line: str) -> Optional[TallyEvent]:
        if self.mode is not DecoderMode.STEADY_STATE:
            return None
        try:
            return decode(line, self.directory)
        except DecodeError as e:
            log.warning(f"Dropping tally line {line!r}: {e}")
            return None
