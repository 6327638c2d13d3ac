"""Bounded exponential backoff for backend calls."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from event_vault.domain.errors import BackendUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry transient failures with a per-attempt timeout.

    Only `BackendUnavailable` and timeouts are retried. Any other error
    propagates on the first attempt.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    timeout: float = 30.0
    sleep: Callable[[float], Awaitable[None]] = field(
        default=asyncio.sleep, compare=False, repr=False
    )

    async def run(
        self, operation: Callable[[], Awaitable[T]], *, backend: str, action: str
    ) -> T:
        """Run `operation` until it succeeds or the attempt budget is spent."""
        last_error: Exception | None = None
        attempts = max(self.max_attempts, 1)
        for attempt in range(attempts):
            try:
                return await asyncio.wait_for(operation(), timeout=self.timeout)
            except TimeoutError:
                last_error = BackendUnavailable(
                    f"{backend} {action} timed out after {self.timeout:.0f}s"
                )
            except BackendUnavailable as exc:
                last_error = exc
            if attempt < attempts - 1:
                delay = min(self.base_delay * (2**attempt), self.max_delay)
                logger.warning(
                    "Backend call failed, retrying",
                    extra={
                        "backend": backend,
                        "action": action,
                        "attempt": attempt + 1,
                        "delay": delay,
                        "error": str(last_error),
                    },
                )
                await self.sleep(delay)
        logger.error(
            "Backend call failed after retries",
            extra={"backend": backend, "action": action, "attempts": attempts},
        )
        raise BackendUnavailable(
            f"{backend} {action} failed after {attempts} attempts: {last_error}"
        ) from last_error
