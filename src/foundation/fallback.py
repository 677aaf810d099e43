"""Fallback layer: the outermost, never-failing client.

Badge rendering must not fail because an upstream is down. The fallback layer
turns every failure mode of the chain below it into an empty string, which
the rendering side reads as "no data":

| Outcome from the inner chain        | Result        | Logged            |
|-------------------------------------|---------------|-------------------|
| 200 OK                              | response text | no                |
| client error status (404, 401, ...) | `""`          | warning           |
| any other non-200 status            | `""`          | no                |
| `BrokenCircuitError`                | `""`          | no (already done) |
| timeout                             | `""`          | no                |
| any other exception                 | `""`          | error + traceback |
"""

import asyncio
import logging

import attrs
import httpx

from foundation.exceptions import BrokenCircuitError
from foundation.http import RequestFactory, ResilientHttpClient, get_request_url, is_client_error

logger = logging.getLogger("foundation.fallback")

HTTP_CLIENT_NAME = "fallbackClient"


@attrs.define(frozen=True, slots=True)
class FallbackHttpClient:
    """Client layer that always returns a string and never raises.

    Attributes:
        inner: The wrapped client chain.
        timeout: Optional bound in seconds for the whole call, retries and
            backoff included. A call that exceeds it is cancelled and yields
            an empty string.
    """

    inner: ResilientHttpClient
    timeout: float | None = attrs.field(default=None)

    async def _send(self, request_factory: RequestFactory) -> httpx.Response:
        if self.timeout is None:
            return await self.inner.send_async(request_factory)
        return await asyncio.wait_for(self.inner.send_async(request_factory), timeout=self.timeout)

    async def send_async(self, request_factory: RequestFactory) -> str:
        """Send through the chain and return the body of a 200 response.

        Args:
            request_factory: Zero-argument callable returning a fresh request.

        Returns:
            The response text for a 200 response, otherwise an empty string.
        """
        try:
            response = await self._send(request_factory)
        except BrokenCircuitError:
            return ""
        except (httpx.TimeoutException, asyncio.TimeoutError):
            return ""
        except Exception:
            logger.exception(
                "Exception thrown when trying to send HTTP request.",
                extra={"http_client": HTTP_CLIENT_NAME},
            )
            return ""

        if response.status_code == httpx.codes.OK:
            return response.text

        if is_client_error(response.status_code):
            logger.warning(
                "Request to '%s' has failed due to a HTTP client error: %i.",
                get_request_url(response),
                response.status_code,
                extra={
                    "http_client": HTTP_CLIENT_NAME,
                    "url": get_request_url(response),
                    "status_code": response.status_code,
                },
            )
        return ""
