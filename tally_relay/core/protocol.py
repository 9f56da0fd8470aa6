"""
core/protocol.py — vMix TCP API line codec.

The API is ASCII, one command or response per CRLF-terminated line:
  → XMLTEXT vmix/inputs/input[3]/@title     ← XMLTEXT OK Camera 3
  → SUBSCRIBE TALLY                          ← TALLY OK 0120
  → UNSUBSCRIBE TALLY
API: https://www.vmix.com/help25/index.htm?DeveloperAPI.html
"""

from __future__ import annotations

from typing import Optional

DEFAULT_TCP_PORT = 8099
LINE_TERMINATOR = b"\r\n"

XMLTEXT = "XMLTEXT"
XMLTEXT_OK = "XMLTEXT OK"
TALLY_OK = "TALLY OK"
SUBSCRIBE_TALLY = "SUBSCRIBE TALLY"
UNSUBSCRIBE_TALLY = "UNSUBSCRIBE TALLY"


def name_query(slot: int) -> str:
    """XMLTEXT query for the title of input `slot` (1-based)."""
    return f"{XMLTEXT} vmix/inputs/input[{slot}]/@title"


def encode_line(line: str) -> bytes:
    return line.encode("ascii", errors="replace") + LINE_TERMINATOR


def decode_line(raw: bytes) -> str:
    # Only the terminator is removed; trailing spaces can be part of a payload.
    return raw.decode("ascii", errors="replace").rstrip("\r\n")


def match_name_response(line: str) -> Optional[str]:
    """
    Return the trimmed title carried by an `XMLTEXT OK` line, or None when the
    line is something else. An empty title comes back as "".
    """
    if line == XMLTEXT_OK or line.startswith(XMLTEXT_OK + " "):
        return line[len(XMLTEXT_OK):].strip()
    return None


def is_tally_line(line: str) -> bool:
    return line == TALLY_OK or line.startswith(TALLY_OK + " ")
