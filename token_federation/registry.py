"""Named authenticator registration for the host login flow."""

import structlog

from .models import Authenticator

logger = structlog.get_logger()

AUTHENTICATOR_NAME = "token_federation_auth"

_registry: dict[str, Authenticator] = {}


def register(name: str, authenticator: Authenticator) -> None:
    """Register an authenticator once per process.

    A second registration under the same name is ignored.
    """
    if name in _registry:
        logger.info("Authenticator already registered", name=name)
        return
    _registry[name] = authenticator
    logger.info("Authenticator registered", name=name)


def get_authenticator(name: str) -> Authenticator | None:
    """Get a registered authenticator by name."""
    return _registry.get(name)


def clear_registry() -> None:
    """Remove all registrations. Useful for testing."""
    _registry.clear()
