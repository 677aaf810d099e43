"""Build history lookups against Travis CI.

The lookup asks the Travis CI v3 API for the most recent builds of a
repository and parses them into `Build` records for the build history chart.
It goes through the same never-failing client chain as the package lookups,
so an unavailable CI feed yields an empty history instead of an error.

## Usage

```python
from clients import get_http_client, get_travis_builds_async

builds = await get_travis_builds_async(get_http_client("travis"), "dustinmoris", "Lanem", 25)
for build in builds:
    print(build.build_number, build.status, build.duration)
```
"""

import json
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any
from urllib.parse import quote

import attrs
import httpx

from config import FeedConfig, get_settings
from foundation.http import RequestFactory

from .packages import TextHttpClient

logger = logging.getLogger(__name__)

TRAVIS_API_VERSION = "3"


class BuildStatus(str, Enum):
    """Outcome of a CI build as shown on the chart."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PENDING = "pending"
    UNKNOWN = "unknown"


_TRAVIS_STATES = {
    "passed": BuildStatus.SUCCEEDED,
    "failed": BuildStatus.FAILED,
    "errored": BuildStatus.FAILED,
    "canceled": BuildStatus.CANCELLED,
    "created": BuildStatus.PENDING,
    "received": BuildStatus.PENDING,
    "queued": BuildStatus.PENDING,
    "started": BuildStatus.PENDING,
}


@attrs.define(frozen=True, slots=True)
class Build:
    """One CI build.

    Attributes:
        build_id: Id assigned by the CI service.
        build_number: Sequential build number within the repository.
        status: Normalized build outcome.
        branch: Branch the build ran for.
        from_pull_request: Whether the build was triggered by a pull request.
        started_at: Start time, or None if the build has not started.
        finished_at: Finish time, or None if the build has not finished.
        duration: Reported run time, or None if unknown.
    """

    build_id: int
    build_number: int
    status: BuildStatus
    branch: str
    from_pull_request: bool
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration: timedelta | None = None


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(str(value))


def _parse_duration(
    entry: dict[str, Any], started_at: datetime | None, finished_at: datetime | None
) -> timedelta | None:
    seconds = entry.get("duration")
    if seconds is not None:
        return timedelta(seconds=int(seconds))
    if started_at is not None and finished_at is not None:
        return finished_at - started_at
    return None


def _parse_build(entry: dict[str, Any]) -> Build:
    started_at = _parse_timestamp(entry.get("started_at"))
    finished_at = _parse_timestamp(entry.get("finished_at"))
    branch = entry.get("branch")
    return Build(
        build_id=int(entry["id"]),
        build_number=int(entry["number"]),
        status=_TRAVIS_STATES.get(str(entry.get("state", "")), BuildStatus.UNKNOWN),
        branch=str(branch.get("name", "")) if isinstance(branch, dict) else "",
        from_pull_request=entry.get("event_type") == "pull_request",
        started_at=started_at,
        finished_at=finished_at,
        duration=_parse_duration(entry, started_at, finished_at),
    )


def build_travis_request_factory(
    url: str,
    build_count: int,
    branch: str | None,
    include_pull_requests: bool,
    auth_token: str | None,
) -> RequestFactory:
    """Create a request factory for a Travis CI build history query.

    Args:
        url: Builds endpoint of the repository.
        build_count: Maximum number of builds to fetch.
        branch: Only fetch builds of this branch. None for all branches.
        include_pull_requests: Whether pull request builds are included.
        auth_token: Optional Travis CI API token.

    Returns:
        A factory producing a fresh GET request on every call.
    """
    params: dict[str, str | int] = {"limit": build_count, "sort_by": "number:desc"}
    if branch:
        params["branch.name"] = branch
    if not include_pull_requests:
        params["event_type"] = "push"

    headers = {"Travis-API-Version": TRAVIS_API_VERSION}
    if auth_token:
        headers["Authorization"] = f"token {auth_token}"

    def request_factory() -> httpx.Request:
        return httpx.Request("GET", url, params=params, headers=headers)

    return request_factory


def parse_builds(body: str) -> list[Build]:
    """Parse a Travis CI builds response.

    Entries that cannot be parsed are skipped with a warning, so one odd
    build does not hide the rest of the history.

    Args:
        body: Raw response text. May be empty.

    Returns:
        Builds in the order returned by the API. Empty when the body is
        empty or malformed.
    """
    if not body:
        return []

    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        logger.warning("CI feed returned invalid JSON", extra={"error": str(e)})
        return []

    entries = payload.get("builds") if isinstance(payload, dict) else None
    if not isinstance(entries, list):
        return []

    builds: list[Build] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        try:
            builds.append(_parse_build(entry))
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            logger.warning("Skipping malformed CI build entry", extra={"build_id": entry.get("id"), "error": str(e)})
    return builds


async def get_travis_builds_async(
    client: TextHttpClient,
    account: str,
    project: str,
    build_count: int,
    branch: str | None = None,
    include_pull_requests: bool = False,
    auth_token: str | None = None,
    feeds: FeedConfig | None = None,
) -> list[Build]:
    """Fetch the most recent Travis CI builds of a repository.

    Args:
        client: Never-failing text client (usually the chain from
            `clients.get_http_client`).
        account: Repository owner.
        project: Repository name.
        build_count: Maximum number of builds to fetch.
        branch: Only fetch builds of this branch. None for all branches.
        include_pull_requests: Whether pull request builds are included.
        auth_token: Optional Travis CI API token.
        feeds: Optional FeedConfig. If None, uses get_settings().feeds.

    Returns:
        The builds, newest first. Empty if the feed is unavailable.
    """
    feeds = feeds or get_settings().feeds
    url = feeds.travis_url.format(slug=quote(f"{account}/{project}", safe=""))
    request_factory = build_travis_request_factory(url, build_count, branch, include_pull_requests, auth_token)
    body = await client.send_async(request_factory)
    return parse_builds(body)
