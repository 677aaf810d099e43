"""Package lookups against NuGet and MyGet feeds.

Every lookup builds a GET request against a NuGet v3 search endpoint, sends it
through the never-failing client chain and parses the first matching entry.
An empty body (upstream down, circuit open, package missing, ...) yields
`None`, which badge rendering shows as "unknown".

## Usage

```python
from clients import get_http_client, get_nuget_package_async

package = await get_nuget_package_async(get_http_client("nuget"), "Newtonsoft.Json", False, None)
if package is not None:
    print(package.version, package.downloads)
```
"""

import json
import logging
from collections.abc import Awaitable
from typing import Any, Protocol

import attrs
import httpx

from config import FeedConfig, get_settings
from foundation.http import RequestFactory

logger = logging.getLogger(__name__)


class TextHttpClient(Protocol):
    """Anything exposing the uniform `send_async(factory) -> str` contract."""

    def send_async(self, request_factory: RequestFactory) -> Awaitable[str]: ...


@attrs.define(frozen=True, slots=True)
class Package:
    """Package metadata shown on a badge.

    Attributes:
        name: Canonical package id as published on the feed.
        version: Latest version matching the pre-release filter.
        downloads: Total download count.
    """

    name: str
    version: str
    downloads: int


def build_query_request_factory(
    url: str,
    package_name: str,
    include_pre_release: bool,
    auth_token: str | None,
) -> RequestFactory:
    """Create a request factory for a NuGet v3 search query.

    Args:
        url: Search endpoint URL.
        package_name: Package id to look up.
        include_pre_release: Whether pre-release versions are considered.
        auth_token: Optional bearer token for private feeds.

    Returns:
        A factory producing a fresh GET request on every call.
    """
    params = {
        "q": f"packageid:{package_name}",
        "prerelease": "true" if include_pre_release else "false",
        "semVerLevel": "2.0.0",
    }
    headers = {"Authorization": f"Bearer {auth_token}"} if auth_token else {}

    def request_factory() -> httpx.Request:
        return httpx.Request("GET", url, params=params, headers=headers)

    return request_factory


def parse_package(body: str, package_name: str) -> Package | None:
    """Parse the first entry of a search response matching `package_name`.

    Args:
        body: Raw response text. May be empty.
        package_name: Package id that was searched for (case-insensitive).

    Returns:
        The parsed Package, or None when the body is empty, malformed or has
        no matching entry.
    """
    if not body:
        return None

    try:
        payload: dict[str, Any] = json.loads(body)
    except json.JSONDecodeError as e:
        logger.warning("Package feed returned invalid JSON", extra={"package": package_name, "error": str(e)})
        return None

    entries = payload.get("data") if isinstance(payload, dict) else None
    if not entries or not isinstance(entries, list):
        return None

    for entry in entries:
        if not isinstance(entry, dict):
            continue
        name = str(entry.get("id", ""))
        if name.lower() != package_name.lower():
            continue
        try:
            return Package(
                name=name,
                version=str(entry.get("version", "")),
                downloads=int(entry.get("totalDownloads", 0)),
            )
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning("Package feed entry is malformed", extra={"package": package_name, "error": str(e)})
            return None
    return None


async def _get_package_async(
    client: TextHttpClient,
    url: str,
    package_name: str,
    include_pre_release: bool,
    auth_token: str | None,
) -> Package | None:
    request_factory = build_query_request_factory(url, package_name, include_pre_release, auth_token)
    body = await client.send_async(request_factory)
    return parse_package(body, package_name)


async def get_nuget_package_async(
    client: TextHttpClient,
    package_name: str,
    include_pre_release: bool,
    auth_token: str | None,
    feeds: FeedConfig | None = None,
) -> Package | None:
    """Look up a package on nuget.org.

    Args:
        client: Never-failing text client (usually the chain from
            `clients.get_http_client`).
        package_name: Package id, any casing.
        include_pre_release: Whether pre-release versions are considered.
        auth_token: Optional bearer token.
        feeds: Optional FeedConfig. If None, uses get_settings().feeds.

    Returns:
        The package, or None if it was not found or the feed is unavailable.
    """
    feeds = feeds or get_settings().feeds
    return await _get_package_async(client, feeds.nuget_url, package_name, include_pre_release, auth_token)


async def get_myget_package_from_official_feed_async(
    client: TextHttpClient,
    feed_and_package: tuple[str, str],
    include_pre_release: bool,
    auth_token: str | None,
    feeds: FeedConfig | None = None,
) -> Package | None:
    """Look up a package on a public myget.org feed.

    Args:
        client: Never-failing text client.
        feed_and_package: `(feed, package_name)`.
        include_pre_release: Whether pre-release versions are considered.
        auth_token: Optional bearer token.
        feeds: Optional FeedConfig. If None, uses get_settings().feeds.

    Returns:
        The package, or None if it was not found or the feed is unavailable.
    """
    feeds = feeds or get_settings().feeds
    feed, package_name = feed_and_package
    url = feeds.myget_official_url.format(feed=feed)
    return await _get_package_async(client, url, package_name, include_pre_release, auth_token)


async def get_myget_package_from_enterprise_feed_async(
    client: TextHttpClient,
    subdomain_feed_and_package: tuple[str, str, str],
    include_pre_release: bool,
    auth_token: str | None,
    feeds: FeedConfig | None = None,
) -> Package | None:
    """Look up a package on a MyGet enterprise feed (`{subdomain}.myget.org`).

    Args:
        client: Never-failing text client.
        subdomain_feed_and_package: `(subdomain, feed, package_name)`.
        include_pre_release: Whether pre-release versions are considered.
        auth_token: Optional bearer token.
        feeds: Optional FeedConfig. If None, uses get_settings().feeds.

    Returns:
        The package, or None if it was not found or the feed is unavailable.
    """
    feeds = feeds or get_settings().feeds
    subdomain, feed, package_name = subdomain_feed_and_package
    url = feeds.myget_enterprise_url.format(subdomain=subdomain, feed=feed)
    return await _get_package_async(client, url, package_name, include_pre_release, auth_token)
