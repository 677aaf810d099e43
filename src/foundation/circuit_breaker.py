"""Circuit breaker layer for the resilient outbound HTTP client chain.

The circuit breaker stops calling an upstream for a cool-down window after it
answered with a server-side (or otherwise unexpected) error. While the circuit
is open, calls fail immediately with `BrokenCircuitError` and never reach the
network.

## Circuit States

- **CLOSED**: Normal operation, requests pass through.
- **OPEN**: The upstream recently failed. Calls raise `BrokenCircuitError`
  until `min_break_duration` has elapsed.

## Transitions

- CLOSED -> OPEN: the inner client returned a status that is neither 2xx nor
  a client error. The failing response is still returned to the caller.
- OPEN -> CLOSED: evaluated lazily on the next call once
  `min_break_duration` has elapsed since the circuit opened; that call
  proceeds to the inner client.

A `Retry-After` header stretches the *logged* break duration only. The
cool-down that is enforced is always `min_break_duration`.

## Usage

```python
breaker = CircuitBreakerHttpClient(inner=BaseHttpClient("BuildStats.info", "1.0.0"), min_break_duration=30)
response = await breaker.send_async(request_factory)  # may raise BrokenCircuitError
```

One instance must be created per upstream and reused for the life of the
process; the circuit state belongs to that instance.
"""

import asyncio
import logging
import time
from collections.abc import Callable

import attrs
import httpx

from foundation.exceptions import BrokenCircuitError
from foundation.http import (
    RequestFactory,
    ResilientHttpClient,
    get_request_url,
    get_retry_after,
    is_client_error,
    is_success_status,
)

logger = logging.getLogger("foundation.circuit_breaker")

HTTP_CLIENT_NAME = "circuitBreakerClient"


@attrs.define(slots=True)
class CircuitState:
    """Open/closed state of one circuit.

    Attributes:
        is_open: Whether calls are currently short-circuited.
        opened_at: Clock reading taken when the circuit last opened.
    """

    is_open: bool = False
    opened_at: float = 0.0


@attrs.define(slots=True)
class CircuitBreakerHttpClient:
    """Client layer that opens a circuit after an upstream failure.

    Attributes:
        inner: The wrapped client.
        min_break_duration: Cool-down in seconds before an open circuit lets
            calls through again.
        clock: Monotonic clock returning seconds. Defaults to
            `time.monotonic`.

    Note:
        The state is shared by every concurrent call made through this
        instance. Reads and writes happen under an `asyncio.Lock` that is
        never held across the network call.
    """

    inner: ResilientHttpClient
    min_break_duration: float = attrs.field(default=30.0)
    clock: Callable[[], float] = attrs.field(default=time.monotonic)
    _state: CircuitState = attrs.field(init=False, factory=CircuitState)
    _lock: asyncio.Lock = attrs.field(init=False, factory=asyncio.Lock)

    @min_break_duration.validator
    def _check_min_break_duration(self, attribute: attrs.Attribute, value: float) -> None:
        if value < 0:
            msg = f"{attribute.name} must not be negative, got {value}"
            raise ValueError(msg)

    @property
    def is_open(self) -> bool:
        """Whether the circuit is currently open."""
        return self._state.is_open

    def get_break_duration(self, response: httpx.Response) -> float:
        """Break duration reported for a failing response.

        Args:
            response: The failing upstream response.

        Returns:
            `max(min_break_duration, Retry-After)` in seconds, or
            `min_break_duration` when the header is absent.
        """
        retry_after = get_retry_after(response)
        if retry_after is None:
            return self.min_break_duration
        return max(self.min_break_duration, retry_after)

    async def _ensure_closed(self) -> None:
        async with self._lock:
            if not self._state.is_open:
                return
            if self.clock() - self._state.opened_at > self.min_break_duration:
                self._state.is_open = False
                logger.info("Circuit closed, resuming calls", extra={"http_client": HTTP_CLIENT_NAME})
                return
        raise BrokenCircuitError

    async def _open(self, response: httpx.Response) -> None:
        break_duration = self.get_break_duration(response)
        async with self._lock:
            self._state.opened_at = self.clock()
            self._state.is_open = True
        logger.warning(
            "Request to '%s' has failed (HTTP status code: %i). Breaking circuit for: %.1f sec.",
            get_request_url(response),
            response.status_code,
            break_duration,
            extra={
                "http_client": HTTP_CLIENT_NAME,
                "url": get_request_url(response),
                "status_code": response.status_code,
                "break_duration_seconds": break_duration,
            },
        )

    async def send_async(self, request_factory: RequestFactory) -> httpx.Response:
        """Send through the inner client unless the circuit is open.

        Args:
            request_factory: Zero-argument callable returning a fresh request.

        Returns:
            The inner client's response, unchanged.

        Raises:
            BrokenCircuitError: If the circuit is open and the cool-down has
                not elapsed. The inner client is not called.
        """
        await self._ensure_closed()

        response = await self.inner.send_async(request_factory)
        if not (is_success_status(response.status_code) or is_client_error(response.status_code)):
            await self._open(response)
        return response
