"""Unit tests for foundation.circuit_breaker module.

This file tests the CircuitBreakerHttpClient layer which stops calling a
failing upstream for a cool-down window.

# Test Coverage

The tests cover:
  - Pass-through: success and client error responses never open the circuit
  - Opening: server-side failures open the circuit, the failing response is
    returned and a warning is logged
  - Short-circuit: calls within the cool-down raise BrokenCircuitError with
    zero inner calls
  - Recovery: the first call after the cool-down reaches the inner client
  - Break Duration: Retry-After only affects the logged duration
  - Exceptions: inner exceptions propagate and never open the circuit
  - Concurrency: concurrent failures leave a consistent open state

# Test Structure

Tests use pytest class-based organization. Time is controlled with a fake
clock so cool-downs are tested without sleeping.

# Running Tests

Run with: pytest tests/unit/foundation/test_circuit_breaker.py
"""

import asyncio
import logging

import httpx
import pytest

from foundation.circuit_breaker import CircuitBreakerHttpClient, CircuitState
from foundation.exceptions import BrokenCircuitError

MIN_BREAK = 30.0


class TestCircuitState:
    """Test suite for CircuitState record."""

    def test_defaults_to_closed(self) -> None:
        """Test that a new circuit starts closed."""
        state = CircuitState()
        assert state.is_open is False
        assert state.opened_at == 0.0


class TestCircuitBreakerPassThrough:
    """Test suite for responses that must not open the circuit."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [200, 201, 204])
    async def test_success_passes_through(
        self, status_code, make_response, scripted_client, request_factory, fake_clock
    ) -> None:
        """Test that success responses are returned unchanged.

        **What it tests:**
          - The inner response object is returned as-is
          - The circuit stays closed
        """
        response = make_response(status_code, text="ok")
        inner = scripted_client(response)
        breaker = CircuitBreakerHttpClient(inner=inner, min_break_duration=MIN_BREAK, clock=fake_clock)

        result = await breaker.send_async(request_factory)

        assert result is response
        assert not breaker.is_open

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [400, 401, 403, 404, 409, 422, 451, 499])
    async def test_client_errors_do_not_open_circuit(
        self, status_code, make_response, scripted_client, request_factory, fake_clock
    ) -> None:
        """Test that client errors never open the circuit.

        **Why this test is important:**
          - A bad request says nothing about upstream health
          - Opening on 404s would hide every badge of a healthy feed

        **What it tests:**
          - The client error response is returned
          - The circuit stays closed and the next call reaches the inner client
        """
        inner = scripted_client(make_response(status_code))
        breaker = CircuitBreakerHttpClient(inner=inner, min_break_duration=MIN_BREAK, clock=fake_clock)

        first = await breaker.send_async(request_factory)
        second = await breaker.send_async(request_factory)

        assert first.status_code == status_code
        assert second.status_code == status_code
        assert not breaker.is_open
        assert inner.calls == 2


class TestCircuitBreakerOpening:
    """Test suite for the closed -> open transition."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [500, 502, 503, 504, 408, 429, 302])
    async def test_failure_opens_circuit_and_returns_response(
        self, status_code, make_response, scripted_client, request_factory, fake_clock
    ) -> None:
        """Test that a server-side or unexpected status opens the circuit.

        **Why this test is important:**
          - Persistent upstream failures must stop hitting the network
          - The failing response must still reach outer layers (retry needs it)

        **What it tests:**
          - The failing response is returned, not swallowed
          - The circuit is open afterwards
        """
        response = make_response(status_code)
        breaker = CircuitBreakerHttpClient(
            inner=scripted_client(response), min_break_duration=MIN_BREAK, clock=fake_clock
        )

        result = await breaker.send_async(request_factory)

        assert result is response
        assert breaker.is_open

    @pytest.mark.asyncio
    async def test_opening_logs_warning(
        self, make_response, scripted_client, request_factory, fake_clock, caplog
    ) -> None:
        """Test that opening the circuit logs URL, status and break duration.

        **What it tests:**
          - Exactly one WARNING record is emitted
          - Structured fields carry url, status_code and break duration
        """
        response = make_response(503, url="https://www.myget.org/F/akkadotnet/api/v3/query")
        breaker = CircuitBreakerHttpClient(
            inner=scripted_client(response), min_break_duration=MIN_BREAK, clock=fake_clock
        )

        with caplog.at_level(logging.WARNING, logger="foundation.circuit_breaker"):
            await breaker.send_async(request_factory)

        records = [r for r in caplog.records if r.name == "foundation.circuit_breaker"]
        assert len(records) == 1
        assert records[0].levelno == logging.WARNING
        assert records[0].url == "https://www.myget.org/F/akkadotnet/api/v3/query"
        assert records[0].status_code == 503
        assert records[0].break_duration_seconds == MIN_BREAK
        assert records[0].http_client == "circuitBreakerClient"
        assert "Breaking circuit for: 30.0 sec." in records[0].getMessage()

    @pytest.mark.asyncio
    async def test_inner_exception_does_not_open_circuit(
        self, make_response, scripted_client, request_factory, fake_clock
    ) -> None:
        """Test that inner exceptions propagate unchanged and keep the circuit closed."""
        inner = scripted_client(httpx.ConnectError("Connection refused"), make_response(200))
        breaker = CircuitBreakerHttpClient(inner=inner, min_break_duration=MIN_BREAK, clock=fake_clock)

        with pytest.raises(httpx.ConnectError):
            await breaker.send_async(request_factory)

        assert not breaker.is_open
        assert (await breaker.send_async(request_factory)).status_code == 200


class TestCircuitBreakerOpenState:
    """Test suite for behaviour while the circuit is open."""

    @pytest.mark.asyncio
    async def test_call_within_cool_down_fails_fast(
        self, make_response, scripted_client, request_factory, fake_clock
    ) -> None:
        """Test that calls within the cool-down never reach the network.

        **Why this test is important:**
          - Short-circuiting is the whole point of the breaker
          - A network call here would defeat the cool-down

        **What it tests:**
          - BrokenCircuitError is raised
          - The inner client is not called again
        """
        inner = scripted_client(make_response(500))
        breaker = CircuitBreakerHttpClient(inner=inner, min_break_duration=MIN_BREAK, clock=fake_clock)
        await breaker.send_async(request_factory)

        fake_clock.advance(1)
        with pytest.raises(BrokenCircuitError):
            await breaker.send_async(request_factory)

        assert inner.calls == 1
        assert breaker.is_open

    @pytest.mark.asyncio
    async def test_cool_down_boundary_is_exclusive(
        self, make_response, scripted_client, request_factory, fake_clock
    ) -> None:
        """Test that exactly `min_break_duration` elapsed still fails fast."""
        inner = scripted_client(make_response(500))
        breaker = CircuitBreakerHttpClient(inner=inner, min_break_duration=MIN_BREAK, clock=fake_clock)
        await breaker.send_async(request_factory)

        fake_clock.advance(MIN_BREAK)
        with pytest.raises(BrokenCircuitError):
            await breaker.send_async(request_factory)

        assert inner.calls == 1

    @pytest.mark.asyncio
    async def test_call_after_cool_down_reaches_inner_client(
        self, make_response, scripted_client, request_factory, fake_clock
    ) -> None:
        """Test that the circuit closes lazily once the cool-down elapsed.

        **What it tests:**
          - The first call after the cool-down reaches the inner client
          - A success leaves the circuit closed
        """
        inner = scripted_client(make_response(500), make_response(200, text="ok"))
        breaker = CircuitBreakerHttpClient(inner=inner, min_break_duration=MIN_BREAK, clock=fake_clock)
        await breaker.send_async(request_factory)

        fake_clock.advance(MIN_BREAK + 1)
        response = await breaker.send_async(request_factory)

        assert response.status_code == 200
        assert inner.calls == 2
        assert not breaker.is_open

    @pytest.mark.asyncio
    async def test_failure_after_cool_down_reopens_circuit(
        self, make_response, scripted_client, request_factory, fake_clock
    ) -> None:
        """Test that a new failure after recovery starts a new cool-down."""
        inner = scripted_client(make_response(500))
        breaker = CircuitBreakerHttpClient(inner=inner, min_break_duration=MIN_BREAK, clock=fake_clock)
        await breaker.send_async(request_factory)

        fake_clock.advance(MIN_BREAK + 1)
        await breaker.send_async(request_factory)
        fake_clock.advance(MIN_BREAK)

        with pytest.raises(BrokenCircuitError):
            await breaker.send_async(request_factory)
        assert inner.calls == 2


class TestBreakDuration:
    """Test suite for the reported break duration."""

    def test_defaults_to_min_break_duration(self, make_response, scripted_client) -> None:
        """Test that a missing Retry-After yields the minimum duration."""
        breaker = CircuitBreakerHttpClient(inner=scripted_client(), min_break_duration=MIN_BREAK)
        assert breaker.get_break_duration(make_response(503)) == MIN_BREAK

    def test_longer_retry_after_wins(self, make_response, scripted_client) -> None:
        """Test that a longer Retry-After extends the reported duration."""
        breaker = CircuitBreakerHttpClient(inner=scripted_client(), min_break_duration=MIN_BREAK)
        response = make_response(503, headers={"Retry-After": "120"})
        assert breaker.get_break_duration(response) == 120.0

    def test_shorter_retry_after_is_ignored(self, make_response, scripted_client) -> None:
        """Test that a shorter Retry-After never lowers the duration."""
        breaker = CircuitBreakerHttpClient(inner=scripted_client(), min_break_duration=MIN_BREAK)
        response = make_response(503, headers={"Retry-After": "5"})
        assert breaker.get_break_duration(response) == MIN_BREAK

    @pytest.mark.asyncio
    async def test_retry_after_does_not_extend_enforced_cool_down(
        self, make_response, scripted_client, request_factory, fake_clock, caplog
    ) -> None:
        """Test that only `min_break_duration` gates recovery.

        **Why this test is important:**
          - The logged break duration honours Retry-After
          - The enforced cool-down does not; recovery timing must not change
            silently when an upstream sends the header

        **What it tests:**
          - 120s is logged for "Retry-After: 120"
          - A call 31s later already reaches the inner client
        """
        inner = scripted_client(
            make_response(503, headers={"Retry-After": "120"}),
            make_response(200),
        )
        breaker = CircuitBreakerHttpClient(inner=inner, min_break_duration=MIN_BREAK, clock=fake_clock)

        with caplog.at_level(logging.WARNING, logger="foundation.circuit_breaker"):
            await breaker.send_async(request_factory)
        fake_clock.advance(MIN_BREAK + 1)
        response = await breaker.send_async(request_factory)

        assert caplog.records[0].break_duration_seconds == 120.0
        assert response.status_code == 200
        assert inner.calls == 2


class TestCircuitBreakerConfiguration:
    """Test suite for constructor validation."""

    def test_negative_min_break_duration_rejected(self, scripted_client) -> None:
        """Test that a negative cool-down is rejected."""
        with pytest.raises(ValueError, match="min_break_duration"):
            CircuitBreakerHttpClient(inner=scripted_client(), min_break_duration=-1)


class TestCircuitBreakerConcurrency:
    """Test suite for concurrent calls sharing one circuit."""

    @pytest.mark.asyncio
    async def test_concurrent_failures_leave_circuit_open(
        self, make_response, request_factory, fake_clock
    ) -> None:
        """Test that racing failures never lose the open transition.

        **Why this test is important:**
          - Many badge requests hit the same upstream at once
          - A lost transition would keep hammering a failing upstream

        **What it tests:**
          - All in-flight calls receive their failing response
          - The circuit ends up open
          - The next call fails fast
        """

        class SlowFailingClient:
            def __init__(self) -> None:
                self.calls = 0

            async def send_async(self, factory) -> httpx.Response:
                self.calls += 1
                await asyncio.sleep(0)
                return make_response(500)

        inner = SlowFailingClient()
        breaker = CircuitBreakerHttpClient(inner=inner, min_break_duration=MIN_BREAK, clock=fake_clock)

        responses = await asyncio.gather(*(breaker.send_async(request_factory) for _ in range(5)))

        assert [r.status_code for r in responses] == [500] * 5
        assert breaker.is_open
        with pytest.raises(BrokenCircuitError):
            await breaker.send_async(request_factory)
        assert inner.calls == 5
