from __future__ import annotations

import threading
import time
from typing import Callable, Protocol


class Clock(Protocol):
    def now_ms(self) -> int:
        ...


class SystemClock:
    def now_ms(self) -> int:
        return int(time.time() * 1000)


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """
    Fires a callback once the clock reaches `deadline_ms`.

    Callbacks must re-enter the engine through its public intents so they
    are serialized like any other input.
    """

    def call_at(self, deadline_ms: int, callback: Callable[[], None]) -> TimerHandle:
        ...


class ThreadingScheduler:
    """
    One daemon threading.Timer per scheduled deadline.
    """

    def __init__(self, *, clock: Clock) -> None:
        self._clock = clock

    def call_at(self, deadline_ms: int, callback: Callable[[], None]) -> TimerHandle:
        delay = max(0, deadline_ms - self._clock.now_ms()) / 1000
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer
