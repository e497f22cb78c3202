"""
Backoff schedule and reconnect timer.
"""

from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_BACKOFF_DELAYS = (1.0, 2.0, 4.0, 8.0, 15.0, 30.0, 60.0)


@dataclass(frozen=True)
class BackoffSchedule:
    """Ordered, non-decreasing delays (seconds) between reconnect attempts."""
    delays: tuple[float, ...] = DEFAULT_BACKOFF_DELAYS

    def __post_init__(self):
        delays = tuple(float(d) for d in self.delays)
        if not delays:
            raise ValueError("Backoff schedule needs at least one delay")
        if any(d < 0 for d in delays):
            raise ValueError(f"Backoff delays must be non-negative: {delays}")
        if any(later < earlier for earlier, later in zip(delays, delays[1:])):
            raise ValueError(f"Backoff delays must be non-decreasing: {delays}")
        object.__setattr__(self, "delays", delays)

    def __len__(self) -> int:
        return len(self.delays)

    @property
    def last_index(self) -> int:
        return len(self.delays) - 1

    def delay_for(self, index: int) -> float:
        """Delay for the given step, clamped to the last entry."""
        return self.delays[max(0, min(index, self.last_index))]


class ReconnectPolicy:
    """
    Owns the single pending reconnect timer.

    The callback runs on the timer thread when the delay elapses.
    Thread-safe.
    """

    def __init__(
        self,
        callback: Callable[[], None],
        schedule: BackoffSchedule = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        self._callback = callback
        self._backoff = schedule or BackoffSchedule()
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._index = 0

    @property
    def backoff(self) -> BackoffSchedule:
        return self._backoff

    @property
    def index(self) -> int:
        """Current position in the backoff schedule."""
        with self._lock:
            return self._index

    @property
    def pending(self) -> bool:
        """Is a reconnect timer waiting to fire?"""
        with self._lock:
            return self._timer is not None

    def schedule(self) -> float:
        """
        Start the reconnect timer for the current backoff step.

        Returns the delay used. If a timer is already pending it is
        left alone and its step's delay is returned.
        """
        with self._lock:
            delay = self._backoff.delay_for(self._index)
            if self._timer is not None:
                logger.debug("Reconnect already scheduled, not stacking another timer")
                return delay

            def fire():
                self._fire(timer)

            timer = self._timer_factory(delay, fire)
            timer.daemon = True
            self._timer = timer
            logger.info(f"Reconnect attempt {self._index + 1} scheduled in {delay:.1f}s")
            timer.start()
            return delay

    def _fire(self, timer: threading.Timer) -> None:
        with self._lock:
            if self._timer is not timer:
                # Cancelled or superseded while waiting
                return
            self._timer = None
        self._callback()

    def record_failure(self) -> None:
        """Advance one backoff step, saturating at the end of the schedule."""
        with self._lock:
            self._index = min(self._index + 1, self._backoff.last_index)

    def cancel(self) -> None:
        """Cancel the pending timer, if any."""
        with self._lock:
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
            logger.debug("Pending reconnect cancelled")

    def reset(self) -> None:
        """Cancel any timer and go back to the first backoff step."""
        self.cancel()
        with self._lock:
            self._index = 0
