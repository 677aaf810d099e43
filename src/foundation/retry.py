"""Retry layer with exponential backoff using tenacity.

The retry layer re-sends requests that failed with a transient status
(408, 502, 503, 504). Every attempt calls the request factory again, so each
attempt sends a fresh request.

## Backoff

The wait before a retry is `2 ** retries_left` seconds, where `retries_left`
is the budget remaining before that retry is spent. With `max_retries=3` the
waits are 8s, 4s and 2s: the longest pause follows the first failure and the
pauses shrink as the budget is consumed. Worst case the layer sleeps
`sum(2 ** i for i in range(1, max_retries + 1))` seconds per call.

Responses with any other failing status are returned unchanged, as is the
last transient response once the budget is exhausted. Exceptions raised by
the inner client are not retried.

## Usage

```python
retry = RetryHttpClient(inner=breaker, max_retries=3)
response = await retry.send_async(request_factory)
```
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import attrs
import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_result, stop_after_attempt

from foundation.http import RequestFactory, ResilientHttpClient, get_request_url, is_worth_retrying

logger = logging.getLogger("foundation.retry")

HTTP_CLIENT_NAME = "retryClient"

DEFAULT_MAX_RETRIES = 3


def get_wait_duration(retries_left: int) -> float:
    """Backoff in seconds before a retry, given the budget still available."""
    return float(2**retries_left)


def _is_transient_response(response: httpx.Response) -> bool:
    return is_worth_retrying(response.status_code)


def _return_last_response(retry_state: RetryCallState) -> Any:
    # Budget exhausted: hand the last failing response back to the caller
    return retry_state.outcome.result()  # type: ignore[union-attr]


@attrs.define(frozen=True, slots=True)
class RetryHttpClient:
    """Client layer that retries transient upstream failures.

    Attributes:
        inner: The wrapped client.
        max_retries: Number of retries after the first attempt. Default: 3.
        sleep: Awaitable sleep used for backoff. Defaults to `asyncio.sleep`.
    """

    inner: ResilientHttpClient
    max_retries: int = attrs.field(default=DEFAULT_MAX_RETRIES, validator=attrs.validators.ge(0))
    sleep: Callable[[float], Awaitable[None]] = attrs.field(default=asyncio.sleep)

    def _wait(self, retry_state: RetryCallState) -> float:
        # attempt_number counts the attempts made so far, the first one included
        retries_left = self.max_retries - retry_state.attempt_number + 1
        return get_wait_duration(retries_left)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        if retry_state.outcome is None or retry_state.outcome.failed:
            return

        response: httpx.Response = retry_state.outcome.result()
        retries_left = self.max_retries - retry_state.attempt_number + 1
        wait_time = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            "Request to '%s' has failed. The HTTP response status code was: %i. "
            "Max retries left: %i. Next wait duration: %.1f sec.",
            get_request_url(response),
            response.status_code,
            retries_left,
            wait_time,
            extra={
                "http_client": HTTP_CLIENT_NAME,
                "url": get_request_url(response),
                "status_code": response.status_code,
                "retries_left": retries_left,
                "wait_seconds": wait_time,
            },
        )

    async def send_async(self, request_factory: RequestFactory) -> httpx.Response:
        """Send through the inner client, retrying transient failures.

        Args:
            request_factory: Zero-argument callable returning a fresh request.
                Called again for every attempt.

        Returns:
            The first non-transient response, or the last transient response
            when the retry budget is exhausted.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self._wait,
            retry=retry_if_result(_is_transient_response),
            before_sleep=self._log_retry,
            retry_error_callback=_return_last_response,
            sleep=self.sleep,
        )
        return await retrying(self.inner.send_async, request_factory)
