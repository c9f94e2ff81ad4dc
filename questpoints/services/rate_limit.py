"""
Rate Limiting: per-client request caps over a sliding window.

Two process-wide limiters exist:
- spin: paid draws (double clicks, retry loops, scripts), 8 per minute
- public list: public read endpoints (rates, catalog, leaderboard,
  profiles), 60 per minute

Both run as request dependencies, before any catalog read or debit.

INVARIANTS:
- Limits are HARD CAPS over a sliding window
- Exceedance is TERMINAL for the request; nothing is charged
- Client IPs are hashed before they are stored or logged
- Memory is bounded by the clients active within one window: idle keys
  are swept at most once per window
"""

import hashlib
import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from threading import Lock

from questpoints.config import settings
from questpoints.models.failure import FailureKind, KnownError

logger = logging.getLogger(__name__)

# Sliding window length in seconds
DEFAULT_WINDOW_SECONDS = 60.0


class RateLimitExceededError(KnownError):
    """
    Exception raised when a client exceeds a request limit.

    Returns HTTP 429.
    """

    def __init__(self, ip_hash: str, limit: int, window_seconds: float, message: str):
        self.ip_hash = ip_hash
        self.limit = limit
        self.window_seconds = window_seconds
        super().__init__(
            kind=FailureKind.RATE_LIMITED,
            message=message,
            detail=f"limit: {limit} per {int(window_seconds)}s",
            suggestion="Wait a moment and try again.",
            status_code=429,
        )


@dataclass
class RateLimiter:
    """
    Thread-safe sliding-window limiter keyed by hashed client IP.

    A key only exists while it holds at least one timestamp. A key's
    timestamps are pruned on each of its checks; keys with no request in
    the last window are dropped by a sweep that runs once per window.
    """

    name: str
    requests_per_window: int
    window_seconds: float = DEFAULT_WINDOW_SECONDS
    message: str = "Too many requests. Please slow down."
    clock: Callable[[], float] = time.monotonic

    _hits: dict[str, deque[float]] = field(default_factory=dict)
    _last_sweep: float | None = None
    _lock: Lock = field(default_factory=Lock)

    def hash_ip(self, ip_address: str) -> str:
        """
        Hash an IP address for privacy-safe logging.

        Uses SHA-256 truncated to 12 characters.
        """
        return hashlib.sha256(ip_address.encode()).hexdigest()[:12]

    @property
    def tracked_clients(self) -> int:
        """Number of client keys currently held in memory."""
        with self._lock:
            return len(self._hits)

    def check(self, ip_address: str) -> None:
        """
        Count a request and fail if the client is over its limit.

        Raises:
            RateLimitExceededError: If the window is already full
        """
        ip_hash = self.hash_ip(ip_address)
        now = self.clock()

        with self._lock:
            self._maybe_sweep(now)

            hits = self._hits.get(ip_hash)
            if hits is not None:
                self._prune(hits, now)
            in_window = len(hits) if hits else 0

            if in_window >= self.requests_per_window:
                logger.warning(
                    "RATE_LIMIT_EXCEEDED",
                    extra={
                        "limiter": self.name,
                        "ip_hash": ip_hash,
                        "requests_in_window": in_window,
                        "limit": self.requests_per_window,
                    },
                )
                raise RateLimitExceededError(
                    ip_hash, self.requests_per_window, self.window_seconds, self.message
                )

            if hits is None:
                hits = self._hits[ip_hash] = deque()
            hits.append(now)

    def remaining(self, ip_address: str) -> int:
        """Requests the client may still make in the current window."""
        ip_hash = self.hash_ip(ip_address)
        now = self.clock()
        with self._lock:
            hits = self._hits.get(ip_hash, ())
            recent = sum(1 for t in hits if now - t < self.window_seconds)
            return max(0, self.requests_per_window - recent)

    def _prune(self, hits: deque[float], now: float) -> None:
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()

    def _maybe_sweep(self, now: float) -> None:
        if self._last_sweep is None:
            self._last_sweep = now
            return
        if now - self._last_sweep < self.window_seconds:
            return

        stale = [key for key, hits in self._hits.items() if now - hits[-1] >= self.window_seconds]
        for key in stale:
            del self._hits[key]
        self._last_sweep = now

        if stale:
            logger.debug("RATE_LIMIT_SWEPT", extra={"limiter": self.name, "dropped": len(stale)})


# =============================================================================
# GLOBAL LIMITER INSTANCES
# =============================================================================

_spin_rate_limiter: RateLimiter | None = None
_public_list_rate_limiter: RateLimiter | None = None


def get_spin_rate_limiter() -> RateLimiter:
    """Get the global spin limiter instance."""
    global _spin_rate_limiter
    if _spin_rate_limiter is None:
        _spin_rate_limiter = RateLimiter(
            name="spin",
            requests_per_window=settings.gacha_spins_per_minute,
            message="Too many gacha spins. Please slow down.",
        )
    return _spin_rate_limiter


def get_public_list_rate_limiter() -> RateLimiter:
    """Get the global limiter for public read endpoints."""
    global _public_list_rate_limiter
    if _public_list_rate_limiter is None:
        _public_list_rate_limiter = RateLimiter(
            name="public_list",
            requests_per_window=settings.public_requests_per_minute,
        )
    return _public_list_rate_limiter


def reset_rate_limiters() -> None:
    """Reset both global limiters (for testing)."""
    global _spin_rate_limiter, _public_list_rate_limiter
    _spin_rate_limiter = None
    _public_list_rate_limiter = None
