"""HTTP client construction for the verification service."""

import ssl
from pathlib import Path

import httpx
import structlog

from .config import DEFAULT_HTTP_TIMEOUT_SECONDS
from .errors import ConfigurationError

logger = structlog.get_logger()


def resolve_verification_url(base_url: str) -> str:
    """Validate the verification service base URL and normalize it.

    Raises:
        ConfigurationError: If the URL is not an absolute http(s) URL
    """
    try:
        url = httpx.URL(base_url.strip())
    except (httpx.InvalidURL, TypeError) as e:
        raise ConfigurationError(f"invalid verification URL: {base_url!r}") from e

    if url.scheme not in ("http", "https") or not url.host:
        raise ConfigurationError(
            f"verification URL must be an absolute http(s) URL: {base_url!r}"
        )

    return str(url).rstrip("/")


def _build_ssl_context(ca_bundle_path: str | None) -> ssl.SSLContext:
    """Platform trust store, extended with the CA bundle when one is present."""
    context = ssl.create_default_context()

    if not ca_bundle_path:
        logger.debug("Using system CA certificate store for TLS verification")
        return context

    bundle = Path(ca_bundle_path)
    if not bundle.is_file() or bundle.stat().st_size == 0:
        logger.warning(
            "CA bundle missing or empty, using system CA store only",
            path=ca_bundle_path,
        )
        return context

    try:
        context.load_verify_locations(cafile=str(bundle))
    except (ssl.SSLError, OSError) as e:
        raise ConfigurationError(f"cannot load CA bundle {ca_bundle_path}: {e}") from e

    logger.debug("Appended CA bundle to system trust store", path=ca_bundle_path)
    return context


def build_http_client(
    base_url: str,
    ca_bundle_path: str | None = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
) -> tuple[httpx.AsyncClient, str]:
    """Build the shared client used to reach the verification service.

    Args:
        base_url: Verification service base URL
        ca_bundle_path: Optional trusted-CA bundle, only used for https
        timeout: Client timeout in seconds

    Returns:
        The configured client and the resolved verification URL

    Raises:
        ConfigurationError: If the URL or CA bundle is invalid
    """
    verify_url = resolve_verification_url(base_url)

    if httpx.URL(verify_url).scheme == "https":
        client = httpx.AsyncClient(
            timeout=timeout, verify=_build_ssl_context(ca_bundle_path)
        )
    else:
        client = httpx.AsyncClient(timeout=timeout)

    logger.info("Token federation verification service", url=verify_url)
    return client, verify_url
