"""Adaptive poll scheduler.

Runs one poll at a time and re-arms a single-shot timer after every run,
because the interval itself changes with each outcome: busy lists are polled
more often, quiet or failing ones less often, always within
``[min_interval, max_interval]`` minutes.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)

HIGH_ACTIVITY_THRESHOLD = 10
MODERATE_ACTIVITY_THRESHOLD = 5
EMPTY_POLL_ESCALATION = 3

HIGH_ACTIVITY_FACTOR = 0.8
MODERATE_ACTIVITY_FACTOR = 0.9
MILD_BACKOFF_FACTOR = 1.2
STRONG_BACKOFF_FACTOR = 1.5

LAST_POLL_TIME_KEY = "last_fetch_time"
CURRENT_INTERVAL_KEY = "current_interval"
EMPTY_POLLS_KEY = "consecutive_empty_fetches"


class PollInProgress(RuntimeError):
    """A manual poll was requested while another poll was running."""


@dataclass
class PollResult:
    """Outcome of one poll cycle; only ``new_item_count`` drives scheduling."""

    new_item_count: int
    total_items: int | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "new_items": self.new_item_count,
            "total_items": self.total_items,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class SchedulerState:
    """Mutable scheduling state, owned by one :class:`AdaptiveScheduler`."""

    current_interval: float
    consecutive_empty_polls: int = 0
    is_polling: bool = False
    last_poll_at: datetime | None = None
    last_error: str | None = None


@dataclass(frozen=True)
class SchedulerStatus:
    is_polling: bool
    current_interval: float
    last_poll_at: datetime | None
    consecutive_empty_polls: int
    next_poll_estimate: datetime | None
    running: bool
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_polling": self.is_polling,
            "running": self.running,
            "current_interval": self.current_interval,
            "last_poll_at": self.last_poll_at.isoformat() if self.last_poll_at else None,
            "consecutive_empty_polls": self.consecutive_empty_polls,
            "next_poll_estimate": self.next_poll_estimate.isoformat() if self.next_poll_estimate else None,
            "last_error": self.last_error,
        }


class ConfigStore(Protocol):
    """The slice of the database the scheduler persists its snapshot to."""

    def set_config(self, key: str, value: str) -> None: ...


class Timer(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


PollFn = Callable[[], PollResult]
TimerFactory = Callable[[float, Callable[[], None]], Timer]


def _thread_timer(delay: float, callback: Callable[[], None]) -> Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


class AdaptiveScheduler:
    """Self-tuning recurring poll driver.

    Args:
        store: Receives the state snapshot after every poll.
        min_interval: Lower bound for the interval, in minutes.
        max_interval: Upper bound for the interval, in minutes.
        clock: Returns the current time as epoch seconds.
        timer_factory: Builds a single-shot timer ``(delay_seconds, callback)``.
    """

    def __init__(
        self,
        store: ConfigStore,
        *,
        min_interval: float = 60.0,
        max_interval: float = 480.0,
        clock: Callable[[], float] = time.time,
        timer_factory: TimerFactory = _thread_timer,
    ) -> None:
        if min_interval <= 0 or max_interval < min_interval:
            msg = f"invalid interval bounds: [{min_interval}, {max_interval}]"
            raise ValueError(msg)
        self._store = store
        self.min_interval = float(min_interval)
        self.max_interval = float(max_interval)
        self._clock = clock
        self._timer_factory = timer_factory
        self.state = SchedulerState(current_interval=self.min_interval)
        self._poll_lock = threading.Lock()
        self._timer_lock = threading.Lock()
        self._timer: Timer | None = None
        self._poll_fn: PollFn | None = None
        self._running = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self, poll_fn: PollFn) -> None:
        """Poll immediately, then keep polling at the adaptive interval."""
        logger.info("Starting adaptive scheduler with initial interval: %.1f minutes", self.state.current_interval)
        self._poll_fn = poll_fn
        self._running = True
        self.run_once(poll_fn)

    def run_once(self, poll_fn: PollFn) -> PollResult | None:
        """Run one poll unless another is already in flight.

        Returns the poll result, or ``None`` when the poll was skipped or
        failed.  Failures never propagate.
        """
        if not self._poll_lock.acquire(blocking=False):
            logger.info("Poll already in progress, skipping")
            return None
        return self._run_locked(poll_fn)

    def trigger(self, poll_fn: PollFn | None = None) -> PollResult | None:
        """Manually run a poll.

        Raises :class:`PollInProgress` while another poll is in flight;
        otherwise behaves like :meth:`run_once`.
        """
        fn = poll_fn or self._poll_fn
        if fn is None:
            msg = "no poll function registered"
            raise RuntimeError(msg)
        logger.info("Manual poll triggered")
        if not self._poll_lock.acquire(blocking=False):
            raise PollInProgress("Refresh already in progress")
        return self._run_locked(fn)

    def _run_locked(self, poll_fn: PollFn) -> PollResult | None:
        # Caller holds _poll_lock.
        result: PollResult | None = None
        try:
            self.state.is_polling = True
            self.state.last_poll_at = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
            logger.info("Running scheduled poll at %s", self.state.last_poll_at.isoformat())
            try:
                result = poll_fn()
                new_items = int(result.new_item_count)
            except Exception as exc:
                logger.exception("Scheduled poll failed")
                result = None
                self.state.last_error = str(exc)
                self.record_failure()
            else:
                self.state.last_error = None
                self.adapt_interval(new_items)
            self._persist_snapshot()
        finally:
            self.state.is_polling = False
            self._poll_lock.release()

        if self._running:
            self._schedule_next()
        return result

    def get_status(self) -> SchedulerStatus:
        last = self.state.last_poll_at
        next_estimate = last + timedelta(minutes=self.state.current_interval) if last else None
        return SchedulerStatus(
            is_polling=self.state.is_polling,
            current_interval=self.state.current_interval,
            last_poll_at=last,
            consecutive_empty_polls=self.state.consecutive_empty_polls,
            next_poll_estimate=next_estimate,
            running=self._running,
            last_error=self.state.last_error,
        )

    def stop(self) -> None:
        """Cancel the pending timer.  An in-flight poll is left to finish."""
        self._running = False
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
                logger.info("Scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Interval adaptation
    # ------------------------------------------------------------------

    def adapt_interval(self, new_item_count: int) -> None:
        """Apply the activity transition for a successful poll."""
        state = self.state
        if new_item_count > 0:
            state.consecutive_empty_polls = 0
            if new_item_count >= HIGH_ACTIVITY_THRESHOLD:
                state.current_interval = max(state.current_interval * HIGH_ACTIVITY_FACTOR, self.min_interval)
            elif new_item_count >= MODERATE_ACTIVITY_THRESHOLD:
                state.current_interval = max(state.current_interval * MODERATE_ACTIVITY_FACTOR, self.min_interval)
        else:
            state.consecutive_empty_polls += 1
            factor = (
                STRONG_BACKOFF_FACTOR
                if state.consecutive_empty_polls >= EMPTY_POLL_ESCALATION
                else MILD_BACKOFF_FACTOR
            )
            state.current_interval = min(state.current_interval * factor, self.max_interval)

        logger.info(
            "Adaptive scheduling: %d new items, %d consecutive empty polls, next interval: %.1f minutes",
            new_item_count,
            state.consecutive_empty_polls,
            state.current_interval,
        )

    def record_failure(self) -> None:
        """Back off mildly after a failed poll to relieve the upstream."""
        self.state.current_interval = min(self.state.current_interval * MILD_BACKOFF_FACTOR, self.max_interval)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _persist_snapshot(self) -> None:
        state = self.state
        try:
            if state.last_poll_at is not None:
                self._store.set_config(LAST_POLL_TIME_KEY, state.last_poll_at.isoformat())
            self._store.set_config(CURRENT_INTERVAL_KEY, str(state.current_interval))
            self._store.set_config(EMPTY_POLLS_KEY, str(state.consecutive_empty_polls))
        except Exception:
            logger.exception("Failed to persist scheduler snapshot")

    def _schedule_next(self) -> None:
        delay = self.state.current_interval * 60.0
        with self._timer_lock:
            if not self._running:
                return
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self._timer_factory(delay, self._on_timer)
            self._timer.start()
        logger.info("Next poll in %.1f minutes", self.state.current_interval)

    def _on_timer(self) -> None:
        if self._running and self._poll_fn is not None:
            self.run_once(self._poll_fn)
