# user_email_verification/clock.py
from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Source of the current unix time in whole seconds."""

    def now(self) -> int: ...


class SystemClock:
    def now(self) -> int:
        return int(time.time())


class FixedClock:
    """
    Manually driven clock for cron replays and tests.

    Time only moves when set() or advance() is called.
    """

    def __init__(self, start: int = 0) -> None:
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def set(self, value: int) -> None:
        self._now = int(value)

    def advance(self, seconds: int) -> int:
        self._now += int(seconds)
        return self._now
