"""
core/backoff.py — Exponential reconnect delay.

2000 → 4000 → 8000 → 16000 → 32000 → 60000 → 60000 … (ms), back to base on reset().
"""

from __future__ import annotations

DEFAULT_BASE_MS = 2000
DEFAULT_MAX_MS = 60000


class Backoff:
    def __init__(self, base_ms: int = DEFAULT_BASE_MS, max_ms: int = DEFAULT_MAX_MS):
        if base_ms <= 0:
            raise ValueError("base_ms must be positive")
        if max_ms < base_ms:
            raise ValueError("max_ms must be >= base_ms")
        self.base_ms = base_ms
        self.max_ms = max_ms
        self._current = base_ms
        self.failures = 0

    @property
    def current_ms(self) -> int:
        return self._current

    def next_delay(self) -> int:
        """Delay for this failure in ms; the following one doubles, up to max_ms."""
        delay = self._current
        self._current = min(self._current * 2, self.max_ms)
        self.failures += 1
        return delay

    def next_delay_seconds(self) -> float:
        return self.next_delay() / 1000

    def reset(self) -> None:
        self._current = self.base_ms
        self.failures = 0
