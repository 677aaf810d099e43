"""Outbound clients for package and CI build feeds.

This module provides factory functions for creating the resilient HTTP client
chain from centralized configuration, plus a per-upstream registry so that
every upstream keeps exactly one circuit for the life of the process.
"""

import threading
from functools import partial

from config import HttpClientConfig, get_settings
from foundation.circuit_breaker import CircuitBreakerHttpClient
from foundation.fallback import FallbackHttpClient
from foundation.http import BaseHttpClient, TransportFactory, create_async_client
from foundation.retry import RetryHttpClient

from .builds import Build, BuildStatus, get_travis_builds_async
from .packages import (
    Package,
    get_myget_package_from_enterprise_feed_async,
    get_myget_package_from_official_feed_async,
    get_nuget_package_async,
)

_registry: dict[str, FallbackHttpClient] = {}
_registry_lock = threading.Lock()


def create_resilient_http_client(
    config: HttpClientConfig | None = None,
    client_factory: TransportFactory | None = None,
) -> FallbackHttpClient:
    """Create the full Fallback -> Retry -> CircuitBreaker -> Base chain.

    Args:
        config: Optional HttpClientConfig. If None, uses settings from
            get_settings().
        client_factory: Optional transport factory. If None, a new
            `httpx.AsyncClient` with `config.request_timeout` is created per
            call.

    Returns:
        The outermost FallbackHttpClient of a new chain. Each call returns a
        chain with its own circuit state.

    Example:
        ```python
        from clients import create_resilient_http_client

        client = create_resilient_http_client()
        body = await client.send_async(lambda: httpx.Request("GET", url))
        ```
    """
    if config is None:
        config = get_settings().http

    if client_factory is None:
        client_factory = partial(create_async_client, timeout=config.request_timeout)

    base = BaseHttpClient(
        service_name=config.service_name,
        app_version=config.app_version,
        client_factory=client_factory,
    )
    breaker = CircuitBreakerHttpClient(inner=base, min_break_duration=config.min_break_duration)
    retry = RetryHttpClient(inner=breaker, max_retries=config.max_retries)
    return FallbackHttpClient(inner=retry, timeout=config.call_timeout)


def get_http_client(upstream: str) -> FallbackHttpClient:
    """Return the process-wide client chain for an upstream.

    Args:
        upstream: Name of the upstream (e.g., "nuget", "myget").

    Returns:
        The same FallbackHttpClient instance for every call with the same
        upstream name.
    """
    with _registry_lock:
        client = _registry.get(upstream)
        if client is None:
            client = create_resilient_http_client()
            _registry[upstream] = client
        return client


def reset_http_clients() -> None:
    """Drop all registered client chains (and their circuit state)."""
    with _registry_lock:
        _registry.clear()


__all__ = [
    "Build",
    "BuildStatus",
    "Package",
    "create_resilient_http_client",
    "get_http_client",
    "get_myget_package_from_enterprise_feed_async",
    "get_myget_package_from_official_feed_async",
    "get_nuget_package_async",
    "get_travis_builds_async",
    "reset_http_clients",
]
