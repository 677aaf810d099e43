"""Shared fixtures for the resilient HTTP client tests.

This module provides scripted inner clients, a controllable clock and a
recording sleep so that circuit cool-downs and retry backoff can be tested
without waiting on wall-clock time.
"""

# pylint: disable=redefined-outer-name
# Pytest fixtures intentionally redefine fixture names - this is expected behavior

from collections.abc import Callable, Iterable

import httpx
import pytest

FEED_URL = "https://feed.example.org/api/v3/query?q=packageid:Lanem"

# =============================================================================
# Test Doubles
# =============================================================================


def build_response(
    status_code: int = 200,
    text: str = "",
    url: str = FEED_URL,
    headers: dict[str, str] | None = None,
) -> httpx.Response:
    """Build an httpx.Response attached to a GET request for `url`."""
    return httpx.Response(status_code, text=text, headers=headers, request=httpx.Request("GET", url))


class ScriptedHttpClient:
    """Inner client double that plays back a script of outcomes.

    Each call consumes the next outcome: an `httpx.Response` is returned, an
    exception is raised. The last outcome repeats once the script runs out.
    """

    def __init__(self, outcomes: Iterable[httpx.Response | BaseException]) -> None:
        self.outcomes = list(outcomes)
        self.requests: list[httpx.Request] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def send_async(self, request_factory: Callable[[], httpx.Request]) -> httpx.Response:
        self.requests.append(request_factory())
        outcome = self.outcomes[min(self.calls, len(self.outcomes)) - 1]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeClock:
    """Monotonic clock double advanced explicitly by tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep double that records waits and optionally moves a clock."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.waits: list[float] = []
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def make_response() -> Callable[..., httpx.Response]:
    """Factory fixture building responses attached to a request."""
    return build_response


@pytest.fixture
def scripted_client() -> Callable[..., ScriptedHttpClient]:
    """Factory fixture building a ScriptedHttpClient from outcomes."""

    def _make(*outcomes: httpx.Response | BaseException) -> ScriptedHttpClient:
        return ScriptedHttpClient(outcomes)

    return _make


@pytest.fixture
def request_factory() -> Callable[[], httpx.Request]:
    """Request factory producing a fresh GET request on every call."""
    return lambda: httpx.Request("GET", FEED_URL)


@pytest.fixture
def fake_clock() -> FakeClock:
    """Controllable clock starting at t=1000s."""
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    """Sleep double that only records the requested waits."""
    return RecordingSleep()


@pytest.fixture
def clocked_sleep(fake_clock: FakeClock) -> RecordingSleep:
    """Sleep double that records waits and advances `fake_clock` by each one."""
    return RecordingSleep(clock=fake_clock)
