"""Background refresh of the signing key set.

``RefreshScheduler`` runs a daemon thread that loops forever between two
states until it is stopped:

1. Sleeping: wait for the current delay. The wait is on a
   ``threading.Event`` so ``stop()`` interrupts it immediately.
2. Fetching: call the key source. On success the cache is replaced and the
   next delay is the new set's ``refresh_after``. On any failure the error is
   logged, the cache is left alone and the next delay is the fixed retry delay.

All failure kinds share the same retry delay.
"""

from __future__ import annotations

import enum
import logging
import math
import threading
import time
from typing import TYPE_CHECKING, Final

from .errors import KeyFetchError

if TYPE_CHECKING:
    from .cache_stores import KeyCache
    from .protocols import KeySource

logger = logging.getLogger(__name__)

_DEFAULT_RETRY_DELAY: Final[float] = 10
"""Seconds to wait before retrying after a failed fetch."""

_DEFAULT_MIN_INTERVAL: Final[float] = 1
"""Lower bound for any sleep, so ``max-age=0`` cannot spin the loop."""

_MAX_INTERVAL: Final[float] = threading.TIMEOUT_MAX
"""Upper bound for any sleep; ``Event.wait`` overflows beyond it."""


class SchedulerState(enum.Enum):
    IDLE = "idle"
    SLEEPING = "sleeping"
    FETCHING = "fetching"
    STOPPED = "stopped"


class RefreshScheduler:
    """Keeps a ``KeyCache`` fed from a ``KeySource`` in the background.

    Thread Safety:
        ``start()`` and ``stop()`` may be called from any thread. The worker
        thread is the only writer of the cache.

    Attributes:
        _source: Where fresh key sets come from.
        _cache: Cache updated after each successful fetch.
        _retry_delay: Sleep after a failed fetch.
        _min_interval: Floor applied to every sleep.
        _stop_event: Cancellation signal consumed between iterations.
        _thread: Worker thread, None until started.
    """

    def __init__(
        self,
        source: KeySource,
        cache: KeyCache,
        *,
        initial_delay: float,
        retry_delay: float = _DEFAULT_RETRY_DELAY,
        min_interval: float = _DEFAULT_MIN_INTERVAL,
        name: str = "jwks-refresh",
    ) -> None:
        """Initialize the scheduler without starting it.

        Args:
            source: Key source to poll.
            cache: Cache to replace on success.
            initial_delay: First sleep, normally the ``refresh_after`` of the
                key set the cache was created with.
            retry_delay: Sleep after a failed fetch. Default: 10 seconds.
            min_interval: Floor applied to every sleep. Default: 1 second.
            name: Worker thread name.

        Raises:
            ValueError: If a delay is negative or retry_delay is not a positive
                finite number. Delays above ``threading.TIMEOUT_MAX`` are capped.
        """
        if initial_delay < 0:
            raise ValueError(f"initial_delay must not be negative, got {initial_delay}")
        if not (math.isfinite(retry_delay) and retry_delay > 0):
            raise ValueError(f"retry_delay must be a positive number, got {retry_delay}")
        if min_interval < 0:
            raise ValueError(f"min_interval must not be negative, got {min_interval}")

        self._source = source
        self._cache = cache
        self._retry_delay = retry_delay
        self._min_interval = min_interval
        self._name = name

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._state = SchedulerState.IDLE
        self._last_delay: float = self._clamp(initial_delay)
        self._next_refresh_at: float | None = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def last_delay(self) -> float:
        """Delay chosen after the most recent fetch (or the initial delay)."""
        return self._last_delay

    @property
    def next_refresh_in(self) -> float | None:
        """Seconds until the next fetch, or None when not sleeping."""
        next_at = self._next_refresh_at
        if next_at is None:
            return None
        return max(0.0, next_at - time.monotonic())

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self) -> None:
        """Start the worker thread.

        Raises:
            RuntimeError: If already started or stopped.
        """
        with self._lock:
            if self._thread is not None or self._stop_event.is_set():
                raise RuntimeError("RefreshScheduler can only be started once")
            self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
            self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Signal the loop to stop and wait for the worker to exit.

        Safe to call more than once, and before ``start()``. A fetch already
        in flight finishes (it is bounded by the source's HTTP timeout), after
        which no further fetch happens.
        """
        with self._lock:
            self._stop_event.set()
            thread = self._thread

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Key refresh thread did not stop within %ss", timeout)
                return

        self._state = SchedulerState.STOPPED
        self._next_refresh_at = None

    def run_once(self) -> float:
        """Perform one fetch step and return the delay before the next one."""
        self._state = SchedulerState.FETCHING
        try:
            key_set = self._source.fetch()
            self._cache.replace(key_set)
            delay = self._clamp(key_set.refresh_after)
        except KeyFetchError as e:
            delay = self._clamp(self._retry_delay)
            logger.warning(
                "Error getting public keys (%s: %s); retrying in %ss", e.kind, e, delay
            )
        except Exception:
            delay = self._clamp(self._retry_delay)
            logger.exception("Unexpected error getting public keys; retrying in %ss", delay)
        else:
            logger.debug(
                "Updated %d signing keys; next refresh in %ss", len(key_set), delay
            )

        self._last_delay = delay
        return delay

    def _run(self) -> None:
        delay = self._last_delay
        while True:
            self._state = SchedulerState.SLEEPING
            self._next_refresh_at = time.monotonic() + delay
            if self._stop_event.wait(delay):
                break
            self._next_refresh_at = None
            delay = self.run_once()

        self._state = SchedulerState.STOPPED
        self._next_refresh_at = None
        logger.info("Stopped refreshing public keys")

    def _clamp(self, delay: float) -> float:
        try:
            seconds = float(delay)
        except OverflowError:
            seconds = _MAX_INTERVAL
        if math.isnan(seconds):
            seconds = self._retry_delay
        return min(max(seconds, self._min_interval), _MAX_INTERVAL)
