"""
Countdown used by a test session.

``Countdown`` is a plain state machine: each ``tick`` moves one second and
reports whether this is the tick that crossed zero. ``CountdownTimer`` owns the
single background thread that calls a tick function on a fixed interval.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class TimerState:
    remaining_seconds: int
    expired: bool
    fired: bool  # True only on the tick that reached zero

    @property
    def display(self) -> str:
        return format_clock(self.remaining_seconds)

def format_clock(seconds: int) -> str:
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"

class Countdown:
    def __init__(self, total_seconds: int):
        if total_seconds < 0:
            raise ValueError("total_seconds must be >= 0")
        self.total_seconds = int(total_seconds)
        self.remaining_seconds = int(total_seconds)
        self._fired = False

    @classmethod
    def for_minutes(cls, minutes: float) -> "Countdown":
        return cls(int(round(minutes * 60)))

    @property
    def expired(self) -> bool:
        return self._fired

    @property
    def elapsed_seconds(self) -> int:
        return self.total_seconds - max(0, self.remaining_seconds)

    def state(self, fired: bool = False) -> TimerState:
        return TimerState(max(0, self.remaining_seconds), self._fired, fired)

    def tick(self) -> TimerState:
        if self._fired:
            return self.state()
        self.remaining_seconds = max(0, self.remaining_seconds - 1)
        if self.remaining_seconds == 0:
            self._fired = True
            return self.state(fired=True)
        return self.state()

class CountdownTimer:
    """Calls ``on_tick`` every ``interval`` seconds until stopped."""

    def __init__(self, on_tick: Callable[[], TimerState], interval: float = 1.0, name: str = "countdown"):
        self.on_tick = on_tick
        self.interval = interval
        self.name = name
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._cancelled = False

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("timer already started")
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                state = self.on_tick()
            except Exception as e:
                logger.error(f"Timer {self.name} tick failed: {e}", exc_info=True)
                break
            if state.expired:
                break

    def cancel(self) -> bool:
        """Stop ticking. Returns False when the timer was already cancelled."""
        if self._cancelled:
            return False
        self._cancelled = True
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=max(self.interval, 1.0) * 2)
        return True

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)
