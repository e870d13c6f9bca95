"""Per-client rate limiting and MCP admission control."""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

TOO_MANY_REQUESTS = "Too many requests. Please try again later."


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after_s: float
    window_s: float

    def headers(self) -> dict[str, str]:
        """IETF draft-7 combined RateLimit headers."""
        reset = max(0, math.ceil(self.reset_after_s))
        headers = {
            "RateLimit": f"limit={self.limit}, remaining={self.remaining}, reset={reset}",
            "RateLimit-Policy": f"{self.limit};w={math.ceil(self.window_s)}",
        }
        if not self.allowed:
            headers["Retry-After"] = str(max(1, reset))
        return headers


class RateLimitExceeded(Exception):
    def __init__(self, decision: RateLimitDecision) -> None:
        super().__init__(TOO_MANY_REQUESTS)
        self.decision = decision


class FixedWindowRateLimiter:
    """Count hits per client key in fixed windows of `window_s` seconds."""

    def __init__(
        self,
        *,
        name: str,
        limit: int,
        window_s: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.name = name
        self.limit = limit
        self.window_s = window_s
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def hit(self, key: str) -> RateLimitDecision:
        with self._lock:
            now = self._clock()
            self._sweep(now)
            started_at, count = self._windows.get(key, (now, 0))
            if now - started_at >= self.window_s:
                started_at, count = now, 0

            allowed = count < self.limit
            if allowed:
                count += 1
            self._windows[key] = (started_at, count)

        decision = RateLimitDecision(
            allowed=allowed,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset_after_s=started_at + self.window_s - now,
            window_s=self.window_s,
        )
        if not allowed:
            logger.warning("rate_limit event=rejected limiter=%s client=%s", self.name, key)
        return decision

    def _sweep(self, now: float) -> None:
        # Drop expired windows so idle clients do not accumulate.
        if now - self._last_sweep < self.window_s:
            return
        self._last_sweep = now
        expired = [
            key
            for key, (started_at, _) in self._windows.items()
            if now - started_at >= self.window_s
        ]
        for key in expired:
            del self._windows[key]


class AdmissionGate:
    """Reject work beyond a fixed number of in-flight MCP exchanges.

    Not a queue: `try_acquire` answers immediately. Each successful acquire must
    be paired with exactly one `release`.
    """

    def __init__(self, limit: int) -> None:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        self.limit = limit
        self._active = 0
        self._lock = threading.Lock()

    @property
    def active(self) -> int:
        return self._active

    def try_acquire(self) -> bool:
        with self._lock:
            if self._active >= self.limit:
                return False
            self._active += 1
            return True

    def release(self) -> None:
        with self._lock:
            if self._active == 0:
                raise RuntimeError("AdmissionGate released more times than acquired")
            self._active -= 1


def client_address(
    headers: Mapping[str, str],
    peer_host: str | None,
    *,
    trust_proxy: bool,
) -> str:
    """Client key for rate limiting; trusts exactly one proxy hop when enabled."""
    if trust_proxy:
        forwarded = headers.get("x-forwarded-for", "")
        hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
        if hops:
            return hops[-1]
    return peer_host or "unknown"
