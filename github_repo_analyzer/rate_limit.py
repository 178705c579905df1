"""Quota tracking and request slots shared by every request of one client."""

import logging
import threading
import time
from collections import deque
from enum import Enum

from .errors import Cancelled, RateLimited

logger = logging.getLogger(__name__)

REMAINING_HEADER = "x-ratelimit-remaining"
RESET_HEADER = "x-ratelimit-reset"
RETRY_AFTER_HEADER = "retry-after"


class LimiterState(Enum):
    READY = "ready"
    THROTTLED = "throttled"
    FAILED = "failed"


class RateLimiter:
    """Ready/Throttled/Failed state machine for one client instance.

    All fields are guarded by ``_lock``. Waiting happens outside the lock so
    callers can observe the state while someone sleeps.
    """

    def __init__(self, default_cooldown: float = 60.0, max_throttles: int = 3):
        self.default_cooldown = default_cooldown
        self.max_throttles = max_throttles
        self._lock = threading.Lock()
        self._state = LimiterState.READY
        self._until = 0.0
        self._remaining: int | None = None
        self._reset_at: float | None = None
        self.throttle_count = 0

    @property
    def state(self) -> LimiterState:
        with self._lock:
            return self._state

    @property
    def remaining(self) -> int | None:
        with self._lock:
            return self._remaining

    @property
    def until(self) -> float:
        with self._lock:
            return self._until

    def acquire(self, path: str = "", cancel: threading.Event | None = None) -> None:
        """Block until a request may be issued, then reserve one unit of quota."""
        while True:
            if cancel is not None and cancel.is_set():
                raise Cancelled("Analysis cancelled")
            with self._lock:
                now = time.time()
                if self._state is LimiterState.FAILED:
                    raise RateLimited(path, "rate limit retry budget exhausted")
                if self._state is LimiterState.THROTTLED:
                    if now < self._until:
                        wait = self._until - now
                    else:
                        self._state = LimiterState.READY
                        self._remaining = None
                        wait = 0.0
                elif self._remaining is not None and self._remaining <= 0:
                    self._throttle(self._reset_at)
                    continue
                else:
                    if self._remaining is not None:
                        self._remaining -= 1
                    return
            if wait > 0:
                logger.warning("Rate limited, waiting %.0fs before requesting %s", wait, path or "/")
                pause(wait, cancel)

    def observe(self, headers) -> None:
        """Update quota from response headers. Zero remaining throttles later requests."""
        remaining = _parse_number(headers.get(REMAINING_HEADER))
        reset_at = _parse_number(headers.get(RESET_HEADER))
        with self._lock:
            if reset_at is not None:
                self._reset_at = reset_at
            if remaining is None:
                return
            self._remaining = int(remaining)
            if self._remaining <= 0 and self._state is LimiterState.READY:
                self._throttle(self._reset_at)

    def rate_limited(self, headers, path: str = "", attempt: int = 1) -> None:
        """Record a rate-limit response for the attempt-th time on one request."""
        retry_after = _parse_number(headers.get(RETRY_AFTER_HEADER))
        reset_at = _parse_number(headers.get(RESET_HEADER))
        with self._lock:
            if attempt > self.max_throttles:
                self._state = LimiterState.FAILED
                raise RateLimited(path, f"still rate limited after {self.max_throttles} waits")
            if retry_after is not None:
                self._throttle(time.time() + retry_after)
            else:
                self._throttle(reset_at)

    def _throttle(self, until: float | None) -> None:
        # Caller holds the lock
        if until is None:
            until = time.time() + self.default_cooldown
        if self._state is LimiterState.THROTTLED:
            until = max(self._until, until)
        self.throttle_count += 1
        self._state = LimiterState.THROTTLED
        self._until = until
        self._remaining = None


class RequestSlots:
    """Bounded number of in-flight requests, handed out in FIFO order."""

    def __init__(self, limit: int):
        if limit < 1:
            raise ValueError("limit must be positive")
        self.limit = limit
        self._lock = threading.Lock()
        self._active = 0
        self._waiters: deque[threading.Event] = deque()

    @property
    def active(self) -> int:
        with self._lock:
            return self._active

    def acquire(self) -> None:
        with self._lock:
            if self._active < self.limit and not self._waiters:
                self._active += 1
                return
            turn = threading.Event()
            self._waiters.append(turn)
        turn.wait()

    def release(self) -> None:
        with self._lock:
            if self._waiters:
                # Slot passes straight to the oldest waiter, so _active is unchanged
                self._waiters.popleft().set()
            else:
                self._active -= 1

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, *exc):
        self.release()
        return False


def pause(seconds: float, cancel: threading.Event | None = None) -> None:
    """Sleep for ``seconds``, waking early with Cancelled once ``cancel`` is set."""
    if cancel is None:
        time.sleep(seconds)
    elif cancel.wait(seconds):
        raise Cancelled("Analysis cancelled")


def _parse_number(val) -> float | None:
    if val is None:
        return None
    try:
        return float(val)
    except (TypeError, ValueError):
        return None
