"""Time and randomness sources.

Domain code never calls ``datetime.now`` or ``random`` directly. It receives
a :class:`Clock` and a :class:`CodeSource`, which keeps transitions
reproducible under test and lets replays pin "now".
"""

from __future__ import annotations

import secrets
from collections import deque
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime: ...


class CodeSource(Protocol):
    """Source of numeric one-time codes."""

    def digits(self, length: int) -> str: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        if start.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware datetime")
        self._now = start

    def now(self) -> datetime:
        return self._now

    def set(self, moment: datetime) -> None:
        self._now = moment

    def advance(self, delta: timedelta) -> datetime:
        self._now = self._now + delta
        return self._now


class SecretsCodeSource:
    """Uniform digits from the OS CSPRNG."""

    def digits(self, length: int) -> str:
        if length < 1:
            raise ValueError("Code length must be positive")
        return "".join(str(secrets.randbelow(10)) for _ in range(length))


class SequenceCodeSource:
    """Replays preset codes in order. Raises once exhausted."""

    def __init__(self, codes: Iterable[str]) -> None:
        self._codes = deque(codes)

    def digits(self, length: int) -> str:
        if not self._codes:
            raise RuntimeError("SequenceCodeSource exhausted")
        code = self._codes.popleft()
        if len(code) != length or not code.isdigit():
            raise ValueError(f"Preset code {code!r} is not {length} digits")
        return code


system_clock = SystemClock()
secure_codes = SecretsCodeSource()
