"""
core/directory.py — Input slot → title directory and the handshake that fills it.

vMix answers XMLTEXT queries without any correlation token, so names are
resolved strictly one slot at a time: the query for slot i+1 goes out only
after the XMLTEXT OK for slot i has been read.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from .errors import ConnectionLostError, HandshakeError
from .protocol import XMLTEXT, match_name_response, name_query

log = logging.getLogger(__name__)

DEFAULT_INPUT_COUNT = 8


class InputDirectory:
    """Immutable slot → name mapping. Either empty or complete for 1..count."""

    def __init__(self, names: Optional[Mapping[int, str]] = None, count: int = 0):
        names = dict(names or {})
        if names and set(names) != set(range(1, count + 1)):
            raise ValueError(f"directory must cover inputs 1..{count}, got {sorted(names)}")
        self._names = names
        self.count = count if names else 0

    @classmethod
    def empty(cls) -> "InputDirectory":
        return cls()

    @classmethod
    def from_names(cls, names: Mapping[int, str], count: int) -> "InputDirectory":
        if count < 1:
            raise ValueError("count must be >= 1")
        if not names:
            raise ValueError("no names resolved")
        return cls(names, count)

    @classmethod
    async def resolve(cls, session, count: int = DEFAULT_INPUT_COUNT) -> "InputDirectory":
        return cls.from_names(await resolve_names(session, count), count)

    def lookup(self, slot: int) -> Optional[str]:
        return self._names.get(slot)

    def is_empty(self) -> bool:
        return not self._names

    def as_dict(self) -> dict[int, str]:
        return dict(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def __repr__(self) -> str:
        return f"InputDirectory({self._names!r})"


async def resolve_names(session, count: int = DEFAULT_INPUT_COUNT) -> dict[int, str]:
    """
    Ask the switcher for the title of inputs 1..count, one at a time.

    Lines that are not XMLTEXT responses (e.g. stray notifications) are skipped
    while waiting. An XMLTEXT reply other than OK, or losing the socket,
    raises HandshakeError.
    """
    if count < 1:
        raise ValueError("count must be >= 1")
    names: dict[int, str] = {}
    try:
        for slot in range(1, count + 1):
            await session.send(name_query(slot))
            while True:
                line = await session.read_line()
                name = match_name_response(line)
                if name is not None:
                    names[slot] = name
                    log.debug(f"Input name for input {slot}: {name}")
                    break
                if line.startswith(XMLTEXT):
                    raise HandshakeError(f"vMix rejected title query for input {slot}: {line!r}")
                log.debug(f"Ignoring line during handshake: {line!r}")
    except ConnectionLostError as e:
        raise HandshakeError(f"connection lost after {len(names)}/{count} input names: {e}") from e
    log.debug("All input names received.")
    return names
