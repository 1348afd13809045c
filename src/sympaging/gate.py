"""
Request gate for ILSWS calls.

Every outbound request goes through a single RequestGate, which caps the
number of requests in flight, retries failed attempts with exponential backoff
and counts every attempt. One gate lives for the whole run, so the limit
holds across branches.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import RequestGateConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestGate:
    """
    Bounded-concurrency, retrying wrapper around outbound calls.

    Example:
        gate = RequestGate(max_concurrent_requests=2)
        response = await gate.call(lambda: client.get(url), description="get bib")
    """

    def __init__(
        self,
        max_concurrent_requests: int = 2,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
    ):
        """
        Initialize the gate.

        Args:
            max_concurrent_requests: Most attempts allowed in flight at once
            max_attempts: Total tries per call, including the first
            base_delay: Backoff multiplier in seconds (0 disables waiting)
            max_delay: Upper bound for a single backoff wait in seconds
        """
        if max_concurrent_requests < 1:
            raise ValueError("max_concurrent_requests must be >= 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        self.max_concurrent_requests = max_concurrent_requests
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay

        self._semaphore = asyncio.Semaphore(max_concurrent_requests)
        self.requests = 0  # Attempts started, retries included
        self.in_flight = 0
        self.peak_in_flight = 0

    @classmethod
    def from_config(cls, config: RequestGateConfig) -> "RequestGate":
        return cls(
            max_concurrent_requests=config.max_concurrent_requests,
            max_attempts=config.max_attempts,
            base_delay=config.base_delay_seconds,
            max_delay=config.max_delay_seconds,
        )

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "request",
    ) -> T:
        """
        Run an operation through the gate.

        The operation is a zero-argument callable returning a fresh awaitable
        for each attempt. Any exception triggers a retry until max_attempts is
        reached; the last exception is then re-raised unchanged.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay),
            retry=retry_if_exception_type(Exception),
            before_sleep=self._before_sleep(description),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._attempt(operation)

        raise AssertionError("unreachable: tenacity re-raises the last error")

    async def _attempt(self, operation: Callable[[], Awaitable[T]]) -> T:
        # The slot is held only while the attempt runs, not during backoff
        async with self._semaphore:
            self.requests += 1
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            try:
                return await operation()
            finally:
                self.in_flight -= 1

    def _before_sleep(self, description: str) -> Callable[[RetryCallState], None]:
        def log_retry(state: RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome else None
            logger.warning(
                f"{description} failed on attempt {state.attempt_number}/"
                f"{self.max_attempts}, retrying: {error!r}"
            )

        return log_retry
