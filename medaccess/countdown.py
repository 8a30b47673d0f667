"""
Advisory countdown shown while a login code is pending.

The countdown decrements a remaining-seconds counter once per tick and flags
itself expired at zero. When an asyncio event loop is running it schedules
its own ticks with `loop.call_later`; otherwise the host drives `tick()`
(the Streamlit interface does so from an auto-refresh timer).

The countdown is display state only. Code validity is decided from absolute
timestamps by the login flow.
"""
# medaccess/countdown.py

from __future__ import annotations

import asyncio
from typing import Optional

from medaccess.config import COUNTDOWN_TICK_SECONDS


class Countdown:
    def __init__(self, period: float = COUNTDOWN_TICK_SECONDS, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self.period = period
        self.remaining: Optional[int] = None
        self.expired = False
        self.running = False
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None

    def start(self, seconds: int) -> None:
        """Resets the counter to `seconds` and starts ticking."""
        self.cancel()
        self.remaining = seconds
        self.expired = seconds <= 0
        self.running = not self.expired
        if self.running:
            self._schedule()

    def tick(self) -> None:
        """Advances the countdown by one period."""
        if not self.running:
            return
        self.remaining -= 1
        if self.remaining <= 0:
            self.remaining = 0
            self.expired = True
            self._stop()

    def cancel(self) -> None:
        """Stops ticking and clears the display state."""
        self._stop()
        self.remaining = None
        self.expired = False

    def _stop(self) -> None:
        self.running = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _schedule(self) -> None:
        loop = self._loop or _running_loop()
        if loop is None:
            self._handle = None
            return
        self._handle = loop.call_later(self.period, self._on_timer)

    def _on_timer(self) -> None:
        self._handle = None
        self.tick()
        if self.running:
            self._schedule()


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
