"""Configuration management for the badge data service.

This module provides the configuration system for the outbound HTTP pipeline
using Pydantic models. All settings are loaded from environment variables
with sensible defaults.

## Configuration Sources

Configuration is read from environment variables at process startup. The
`get_settings()` function uses `@lru_cache` to ensure settings are
loaded once per process (containers have static env vars, so this is
safe and efficient).

## Environment Variables

The following environment variables are supported (all optional with
defaults):

**Outbound HTTP Client**
- `BUILDSTATS_SERVICE_NAME`: Service name sent in the `User-Agent` header
  (default: `BuildStats.info`)
- `BUILDSTATS_APP_VERSION`: Version sent in the `User-Agent` header
  (default: `1.0.0`)
- `HTTP_REQUEST_TIMEOUT`: Per-request transport timeout in seconds
  (default: `30`)
- `HTTP_CALL_TIMEOUT`: Upper bound in seconds for one whole resilient call,
  retries included (default: unset, no bound)
- `HTTP_MAX_RETRIES`: Retry budget for transient failures (default: `3`)
- `HTTP_MIN_BREAK_DURATION`: Minimum circuit cool-down in seconds
  (default: `30`)

**Package Feeds**
- `NUGET_QUERY_URL`: NuGet search endpoint
  (default: `https://azuresearch-usnc.nuget.org/query`)
- `MYGET_QUERY_URL`: MyGet official feed search template, formatted with
  `feed` (default: `https://www.myget.org/F/{feed}/api/v3/query`)
- `MYGET_ENTERPRISE_QUERY_URL`: MyGet enterprise feed search template,
  formatted with `subdomain` and `feed`
  (default: `https://{subdomain}.myget.org/F/{feed}/api/v3/query`)

**CI Feeds**
- `TRAVIS_BUILDS_URL`: Travis CI build history template, formatted with the
  URL-encoded `slug` (default: `https://api.travis-ci.com/repo/{slug}/builds`)
"""

import os
from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import SettingsConfigDict

DEFAULT_NUGET_QUERY_URL = "https://azuresearch-usnc.nuget.org/query"
DEFAULT_MYGET_QUERY_URL = "https://www.myget.org/F/{feed}/api/v3/query"
DEFAULT_MYGET_ENTERPRISE_QUERY_URL = "https://{subdomain}.myget.org/F/{feed}/api/v3/query"
DEFAULT_TRAVIS_BUILDS_URL = "https://api.travis-ci.com/repo/{slug}/builds"


def _optional_float(name: str) -> float | None:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return float(value)


class HttpClientConfig(BaseModel):
    """Configuration for the resilient outbound HTTP client chain.

    Attributes:
        service_name: Service name used in the `User-Agent` header.
        app_version: Service version used in the `User-Agent` header.
        request_timeout: Transport timeout for a single request in seconds.
            Default: 30.
        call_timeout: Optional bound in seconds for a complete resilient call
            (all retries and backoff included). Default: None (unbounded).
        max_retries: Number of retries for transient upstream failures.
            Default: 3.
        min_break_duration: Minimum time in seconds a circuit stays open after
            an upstream failure. Default: 30.
    """

    service_name: str = "BuildStats.info"
    app_version: str = "1.0.0"

    # Timeout settings
    request_timeout: float = Field(default=30.0, gt=0)
    call_timeout: float | None = Field(default=None, gt=0)

    # Resilience settings
    max_retries: int = Field(default=3, ge=0)
    min_break_duration: float = Field(default=30.0, ge=0)

    model_config = SettingsConfigDict(frozen=True)

    @property
    def user_agent(self) -> str:
        """Value of the `User-Agent` header sent with every request."""
        return f"{self.service_name}/{self.app_version}"

    @classmethod
    def from_env(cls) -> "HttpClientConfig":
        """Create HttpClientConfig from environment variables.

        Returns:
            Configured HttpClientConfig instance.

        Raises:
            pydantic.ValidationError: If a value is out of range.
            ValueError: If a numeric variable cannot be parsed.
        """
        return cls(
            service_name=os.getenv("BUILDSTATS_SERVICE_NAME", "BuildStats.info"),
            app_version=os.getenv("BUILDSTATS_APP_VERSION", "1.0.0"),
            request_timeout=float(os.getenv("HTTP_REQUEST_TIMEOUT", "30")),
            call_timeout=_optional_float("HTTP_CALL_TIMEOUT"),
            max_retries=int(os.getenv("HTTP_MAX_RETRIES", "3")),
            min_break_duration=float(os.getenv("HTTP_MIN_BREAK_DURATION", "30")),
        )


class FeedConfig(BaseModel):
    """Endpoints of the package and CI feeds queried for badge data.

    Attributes:
        nuget_url: NuGet search query endpoint.
        myget_official_url: MyGet official feed query template. Formatted
            with `feed`.
        myget_enterprise_url: MyGet enterprise feed query template. Formatted
            with `subdomain` and `feed`.
        travis_url: Travis CI build history template. Formatted with the
            URL-encoded `owner/repo` as `slug`.
    """

    nuget_url: str = DEFAULT_NUGET_QUERY_URL
    myget_official_url: str = DEFAULT_MYGET_QUERY_URL
    myget_enterprise_url: str = DEFAULT_MYGET_ENTERPRISE_QUERY_URL
    travis_url: str = DEFAULT_TRAVIS_BUILDS_URL

    model_config = SettingsConfigDict(frozen=True)

    @classmethod
    def from_env(cls) -> "FeedConfig":
        """Create FeedConfig from environment variables."""
        return cls(
            nuget_url=os.getenv("NUGET_QUERY_URL", DEFAULT_NUGET_QUERY_URL),
            myget_official_url=os.getenv("MYGET_QUERY_URL", DEFAULT_MYGET_QUERY_URL),
            myget_enterprise_url=os.getenv("MYGET_ENTERPRISE_QUERY_URL", DEFAULT_MYGET_ENTERPRISE_QUERY_URL),
            travis_url=os.getenv("TRAVIS_BUILDS_URL", DEFAULT_TRAVIS_BUILDS_URL),
        )


class Settings(BaseModel):
    """Immutable runtime configuration for the badge data service.

    All fields are loaded from environment variables via `get_settings()`.
    The class is frozen to prevent accidental mutation after initialization.

    Attributes:
        http: Outbound HTTP client configuration (identification headers,
            timeouts, retry budget and circuit cool-down).
        feeds: Package feed endpoint configuration.
        log_level: Root log level. Default: "INFO".
    """

    http: HttpClientConfig
    feeds: FeedConfig
    log_level: str = "INFO"

    model_config = SettingsConfigDict(frozen=True)

    @classmethod
    def from_env(cls) -> "Settings":
        """Create Settings from environment variables.

        Returns:
            Configured Settings instance.
        """
        return cls(
            http=HttpClientConfig.from_env(),
            feeds=FeedConfig.from_env(),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> "Settings":
    """Load and return application settings (cached per process).

    This function reads all environment variables and constructs a
    `Settings` instance. The result is cached using `@lru_cache` to
    avoid re-reading env vars on every call.

    Returns:
        A frozen `Settings` instance with all configuration values.

    Note:
        Settings are loaded once per process. Tests that change the
        environment must call `get_settings.cache_clear()`.
    """
    return Settings.from_env()
