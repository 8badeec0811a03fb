"""Token federation: resolve bearer tokens to canonical local users."""

from .errors import (
    ConfigurationError,
    DuplicateKeyError,
    FederationError,
    ProtocolError,
    StorageError,
    TransportError,
    Unauthenticated,
    UpstreamUnavailable,
)
from .models import (
    Authenticator,
    Credential,
    ExternalIdentity,
    LocalUser,
    UserStore,
    VerificationRequest,
    VerificationResult,
)
from .resolver import IdentityResolver

__all__ = [
    "Authenticator",
    "ConfigurationError",
    "Credential",
    "DuplicateKeyError",
    "ExternalIdentity",
    "FederationError",
    "IdentityResolver",
    "LocalUser",
    "ProtocolError",
    "StorageError",
    "TransportError",
    "Unauthenticated",
    "UpstreamUnavailable",
    "UserStore",
    "VerificationRequest",
    "VerificationResult",
]
