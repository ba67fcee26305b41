import math
import time
import threading
from typing import Callable, Dict, Tuple

from fastapi import Request

from core.config import settings
from core.errors import RateLimitedError


class FixedWindowRateLimiter:
    """Counts hits per key inside fixed windows of ``window_seconds``.

    State lives in process memory, so each worker enforces its own limit.
    """

    def __init__(self, max_requests: int, window_seconds: float, message: str = "", clock: Callable[[], float] = time.monotonic):
        self.max = max_requests
        self.window = window_seconds
        self.message = message or "Too many requests from this IP, please try again later"
        self.clock = clock
        self._store: Dict[str, Tuple[float, int]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def hit(self, key: str) -> Tuple[bool, int]:
        """Record one request; returns (allowed, seconds until the window resets)."""
        now = self.clock()
        with self._lock:
            if now - self._last_sweep >= self.window:
                self._evict_expired(now)
            start, count = self._store.get(key, (now, 0))
            if now - start >= self.window:
                start, count = now, 0
            retry_after = max(math.ceil(start + self.window - now), 0)
            if count >= self.max:
                self._store[key] = (start, count)
                return False, retry_after
            self._store[key] = (start, count + 1)
            return True, retry_after

    def _evict_expired(self, now: float) -> None:
        """Drop windows that have already closed; caller holds the lock."""
        expired = [key for key, (start, _) in self._store.items() if now - start >= self.window]
        for key in expired:
            del self._store[key]
        self._last_sweep = now

    @property
    def tracked_keys(self) -> int:
        return len(self._store)

    def reset(self) -> None:
        with self._lock:
            self._store.clear()


def client_ip(request: Request) -> str:
    """Address used as the rate-limit key.

    X-Forwarded-For is only honoured when the direct peer is listed in
    ``settings.TRUSTED_PROXIES``. The chain is walked from the right and the
    first hop that is not itself a trusted proxy wins.
    """
    peer = request.client.host if request.client else "unknown"
    trusted = set(settings.TRUSTED_PROXIES)
    if peer not in trusted:
        return peer
    forwarded = request.headers.get("x-forwarded-for")
    if not forwarded:
        return peer
    hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
    for hop in reversed(hops):
        if hop not in trusted:
            return hop
    return hops[0] if hops else peer


def limit_by_ip(limiter: FixedWindowRateLimiter):
    """FastAPI dependency that rejects the request once ``limiter`` is exhausted for the client IP."""

    async def _dependency(request: Request) -> None:
        if not settings.RATE_LIMIT_ENABLED:
            return
        allowed, retry_after = limiter.hit(client_ip(request))
        if not allowed:
            raise RateLimitedError(limiter.message, retry_after=retry_after)

    return _dependency


login_limiter = FixedWindowRateLimiter(
    settings.LOGIN_RATE_LIMIT,
    settings.LOGIN_RATE_WINDOW_SECONDS,
    "Too many login attempts from this IP, please try again later",
)
signup_limiter = FixedWindowRateLimiter(
    settings.SIGNUP_RATE_LIMIT,
    settings.SIGNUP_RATE_WINDOW_SECONDS,
    "Too many accounts created from this IP, please try again later",
)
otp_limiter = FixedWindowRateLimiter(
    settings.OTP_RATE_LIMIT,
    settings.OTP_RATE_WINDOW_SECONDS,
    "Too many OTP requests from this IP, please try again later",
)
