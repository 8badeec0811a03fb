"""Environment-sourced configuration for token federation."""

import os
from dataclasses import dataclass

import structlog
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from .errors import ConfigurationError

logger = structlog.get_logger()

DEFAULT_HTTP_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True)
class FederationSettings:
    """Startup configuration, immutable once loaded."""

    verify_url: str
    ca_bundle_path: str | None = None
    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS
    database_url: str | None = None


def get_verify_url() -> str:
    """Get the verification service base URL.

    Raises:
        ConfigurationError: If FEDERATION_VERIFY_URL is unset or blank
    """
    url = os.getenv("FEDERATION_VERIFY_URL", "").strip()
    if not url:
        raise ConfigurationError("FEDERATION_VERIFY_URL is not set")
    return url


def get_ca_bundle_path() -> str | None:
    """Get the optional trusted-CA bundle path."""
    return os.getenv("FEDERATION_CA_BUNDLE_PATH", "").strip() or None


def get_http_timeout() -> float:
    """Get the HTTP client timeout in seconds."""
    raw = os.getenv("FEDERATION_HTTP_TIMEOUT_SECONDS")
    if raw is None or not raw.strip():
        return DEFAULT_HTTP_TIMEOUT_SECONDS

    try:
        timeout = float(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"FEDERATION_HTTP_TIMEOUT_SECONDS is not a number: {raw!r}"
        ) from e

    if timeout <= 0:
        raise ConfigurationError("FEDERATION_HTTP_TIMEOUT_SECONDS must be positive")
    return timeout


def get_database_url() -> str | None:
    """Get the optional SQLAlchemy database URL.

    Raises:
        ConfigurationError: If FEDERATION_DATABASE_URL is not a SQLAlchemy URL
    """
    url = os.getenv("FEDERATION_DATABASE_URL", "").strip()
    if not url:
        return None

    try:
        make_url(url)
    except ArgumentError as e:
        raise ConfigurationError(
            "FEDERATION_DATABASE_URL is not a valid database URL"
        ) from e
    return url


def load_settings() -> FederationSettings:
    """Load and validate settings from the environment."""
    settings = FederationSettings(
        verify_url=get_verify_url(),
        ca_bundle_path=get_ca_bundle_path(),
        http_timeout_seconds=get_http_timeout(),
        database_url=get_database_url(),
    )
    logger.debug(
        "Federation settings loaded",
        ca_bundle_configured=settings.ca_bundle_path is not None,
        http_timeout_seconds=settings.http_timeout_seconds,
        database_configured=settings.database_url is not None,
    )
    return settings
