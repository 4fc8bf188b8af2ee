"""
Sliding-window rate limiter.

Gates outbound requests to at most `limit` per trailing `window` seconds.
Callers are served in call order; there is no fairness queue because the
engine only ever has one request in flight.
"""

import asyncio
import time
from collections import deque
from typing import Awaitable, Callable

import structlog

from line_translator.config import Settings
from line_translator.monitoring.metrics import cooldown_waits_total

logger = structlog.get_logger(__name__)


class CooldownLimiter:
    """
    Simple rate limiter over a trailing time window.

    Attributes:
        limit: Requests allowed per window
        window: Window length in seconds
        description: Name used in logs and metrics
        base_delay: Extra seconds added to every wait
    """

    def __init__(
        self,
        limit: int,
        window: float,
        description: str = "",
        base_delay: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window <= 0:
            raise ValueError("window must be > 0")
        self.limit = limit
        self.window = window
        self.description = description
        self.base_delay = base_delay
        self._clock = clock
        self._sleep = sleep
        self._requests: deque[float] = deque()

    @classmethod
    def for_completions(cls, settings: Settings, **kwargs) -> "CooldownLimiter":
        return cls(
            settings.OPENAI_API_RPM,
            settings.COOLDOWN_WINDOW_SECONDS,
            "ChatCompletion",
            base_delay=settings.COOLDOWN_BASE_DELAY_SECONDS,
            **kwargs,
        )

    @classmethod
    def for_moderation(cls, settings: Settings, **kwargs) -> "CooldownLimiter":
        return cls(
            settings.moderator_rpm,
            settings.COOLDOWN_WINDOW_SECONDS,
            "Moderator",
            base_delay=settings.COOLDOWN_BASE_DELAY_SECONDS,
            **kwargs,
        )

    @property
    def rate(self) -> int:
        """Requests recorded in the current window."""
        self._purge(self._clock())
        return len(self._requests)

    def _purge(self, now: float) -> None:
        while self._requests and now - self._requests[0] >= self.window:
            self._requests.popleft()

    def cooldown(self) -> float:
        """
        Seconds to wait before the next request may go out (0 if none).

        Records the request when no wait is needed.
        """
        now = self._clock()
        self._purge(now)

        if len(self._requests) < self.limit:
            self._requests.append(now)
            return 0.0

        return max(0.0, self._requests[0] + self.window - now)

    async def acquire(self) -> bool:
        """
        Wait for a free slot in the window and record the request.

        Returns:
            True if the call had to wait, False if it went through immediately
        """
        # Purged entries are all younger than the window, so a zero delay
        # always means the request was recorded.
        delay = self.cooldown()
        if delay == 0.0:
            return False

        while True:
            logger.info(
                "Cooldown",
                limiter=self.description,
                delay_ms=int(delay * 1000),
                rate=len(self._requests),
                limit=self.limit,
            )
            cooldown_waits_total.labels(limiter=self.description or "default").inc()
            await self._sleep(delay + self.base_delay)

            now = self._clock()
            self._purge(now)
            if len(self._requests) < self.limit:
                self._requests.append(now)
                return True
            delay = max(0.0, self._requests[0] + self.window - now)
