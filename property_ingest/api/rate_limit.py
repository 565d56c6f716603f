"""Per-client request limiting for the scrape endpoint."""

import logging
import time
from typing import Callable, Dict, Tuple

from fastapi import HTTPException, Request, status

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Fixed-window request counter keyed by client address.

    Each client may make ``max_requests`` calls per ``window_seconds``;
    the window starts at the client's first call.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._last_sweep = clock()

    @property
    def tracked_clients(self) -> int:
        return len(self._windows)

    def hit(self, client: str) -> bool:
        """Record one request; False once the client is over its limit."""
        now = self.clock()
        if now - self._last_sweep >= self.window_seconds:
            self._sweep(now)

        started, count = self._windows.get(client, (now, 0))
        if now - started >= self.window_seconds:
            started, count = now, 0

        count += 1
        self._windows[client] = (started, count)
        return count <= self.max_requests

    def _sweep(self, now: float) -> None:
        """Forget clients whose window has closed."""
        expired = [c for c, (started, _) in self._windows.items() if now - started >= self.window_seconds]
        for client in expired:
            del self._windows[client]
        self._last_sweep = now
        if expired:
            logger.debug("Dropped %d expired rate-limit windows", len(expired))


def enforce_rate_limit(request: Request) -> None:
    """Dependency that rejects clients over the configured limit."""
    limiter: RateLimiter = request.app.state.rate_limiter
    client = request.client.host if request.client else "unknown"

    if not limiter.hit(client):
        logger.warning("Rate limit exceeded for %s", client)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests from this IP, please try again later.",
        )
