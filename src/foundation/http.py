"""Shared HTTP vocabulary and the base client of the resilient pipeline.

This module defines what every layer of the outbound client chain agrees on:

- `RequestFactory`: a zero-argument callable producing a fresh `httpx.Request`.
  Requests are single-use, so the chain calls the factory once per attempt.
- `ResilientHttpClient`: the protocol every layer implements
  (`send_async(request_factory) -> httpx.Response`).
- Status code classification shared by the circuit breaker, retry and
  fallback layers.
- `BaseHttpClient`: the leaf of the chain that performs the network call.

## Client Chain

```
FallbackHttpClient          -> str, never raises
  RetryHttpClient           -> retries 408/502/503/504 with backoff
    CircuitBreakerHttpClient -> fails fast after an upstream failure
      BaseHttpClient        -> one transport per call, identification headers
```

## Usage

```python
import httpx
from foundation.http import BaseHttpClient

client = BaseHttpClient(service_name="BuildStats.info", app_version="1.0.0")
response = await client.send_async(lambda: httpx.Request("GET", "https://example.org/api"))
```
"""

from collections.abc import Callable
from typing import Protocol, runtime_checkable

import attrs
import httpx

# Default transport configuration
DEFAULT_REQUEST_TIMEOUT = 30.0
JSON_MEDIA_TYPE = "application/json"

RequestFactory = Callable[[], httpx.Request]
TransportFactory = Callable[[], httpx.AsyncClient]

# Statuses that indicate a problem with the request itself. Retrying them or
# breaking the circuit for them cannot help.
CLIENT_ERROR_STATUS_CODES: frozenset[int] = frozenset(
    {
        400, 401, 402, 403, 404, 405, 406, 407, 409, 410,
        411, 412, 413, 414, 415, 416, 417, 418, 421, 422,
        423, 424, 426, 428, 431, 444, 451, 499,
    }
)  # fmt: skip

# Statuses worth retrying: the upstream is expected to recover shortly.
TRANSIENT_STATUS_CODES: frozenset[int] = frozenset(
    {
        408,  # Request Timeout
        502,  # Bad Gateway
        503,  # Service Unavailable
        504,  # Gateway Timeout
    }
)


def is_success_status(status_code: int) -> bool:
    """Check if a status code is a 2xx success."""
    return 200 <= status_code <= 299


def is_client_error(status_code: int) -> bool:
    """Check if a status code belongs to the fixed client error set.

    Args:
        status_code: HTTP status code.

    Returns:
        True for statuses in `CLIENT_ERROR_STATUS_CODES`. Note that 408 is
        not a client error here: it is treated as a transient upstream
        failure.
    """
    return status_code in CLIENT_ERROR_STATUS_CODES


def is_worth_retrying(status_code: int) -> bool:
    """Check if a status code is one of the transient failure statuses."""
    return status_code in TRANSIENT_STATUS_CODES


def get_retry_after(response: httpx.Response) -> float | None:
    """Extract the `Retry-After` delta from a response.

    Only the delta-seconds form is honoured. An HTTP-date value or a
    malformed header is ignored.

    Args:
        response: Upstream response.

    Returns:
        Number of seconds the upstream asked us to wait, or None.
    """
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        seconds = int(value.strip())
    except ValueError:
        return None
    return float(seconds) if seconds >= 0 else None


def get_request_url(response: httpx.Response) -> str:
    """Return the URL of the request that produced a response, for logging."""
    try:
        return str(response.request.url)
    except RuntimeError:
        # Response was built without an attached request
        return ""


def create_async_client(timeout: float = DEFAULT_REQUEST_TIMEOUT) -> httpx.AsyncClient:
    """Create a fresh async transport for a single outbound call.

    Args:
        timeout: Transport timeout in seconds (connect, read, write, pool).

    Returns:
        A new, unopened `httpx.AsyncClient`. The caller owns it and must
        close it (use it as an async context manager).
    """
    return httpx.AsyncClient(timeout=timeout, follow_redirects=True)


@runtime_checkable
class ResilientHttpClient(Protocol):
    """Protocol implemented by every layer of the outbound client chain.

    Each layer holds exactly one inner `ResilientHttpClient` and adds one
    resilience concern around it.
    """

    async def send_async(self, request_factory: RequestFactory) -> httpx.Response:
        """Send the request produced by `request_factory`.

        Args:
            request_factory: Zero-argument callable returning a fresh request.

        Returns:
            The upstream response.
        """
        ...


@attrs.define(frozen=True, slots=True)
class BaseHttpClient:
    """Leaf client that performs the actual network request.

    A new transport is taken from `client_factory` for every call and closed
    when the call completes. The client never retries and never interprets
    status codes; transport failures (timeouts, refused connections, ...)
    propagate to the caller unchanged.

    Attributes:
        service_name: Service name for the `User-Agent` header.
        app_version: Service version for the `User-Agent` header.
        client_factory: Callable returning a new `httpx.AsyncClient`.
            Defaults to `create_async_client`.
    """

    service_name: str
    app_version: str
    client_factory: TransportFactory = attrs.field(default=create_async_client)

    @property
    def user_agent(self) -> str:
        return f"{self.service_name}/{self.app_version}"

    async def send_async(self, request_factory: RequestFactory) -> httpx.Response:
        """Build the request once and send it on a fresh transport.

        Args:
            request_factory: Zero-argument callable returning a fresh request.

        Returns:
            The upstream response with its body already read.

        Raises:
            httpx.HTTPError: Any transport level failure.
        """
        request = request_factory()
        request.headers["User-Agent"] = self.user_agent
        accept = request.headers.get("Accept")
        if accept is None:
            request.headers["Accept"] = JSON_MEDIA_TYPE
        elif JSON_MEDIA_TYPE not in accept:
            request.headers["Accept"] = f"{accept}, {JSON_MEDIA_TYPE}"

        async with self.client_factory() as client:
            return await client.send(request)
