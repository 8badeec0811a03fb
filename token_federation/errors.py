"""Error taxonomy for token federation."""


class FederationError(Exception):
    """Base exception for all token federation failures."""


class ConfigurationError(FederationError):
    """Invalid startup configuration. The process cannot serve logins."""


class TransportError(FederationError):
    """The verification service could not be reached (network or TLS)."""


class UpstreamUnavailable(FederationError):
    """The verification service answered with a server-side error."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"verification service returned HTTP {status_code}")


class ProtocolError(FederationError):
    """The verification response does not match the wire schema."""


class Unauthenticated(FederationError):
    """The verification service rejected the credential."""

    def __init__(self, message: str | None = None):
        self.message = message
        super().__init__(message or "authentication failed")


class StorageError(FederationError):
    """A local user store operation failed."""


class DuplicateKeyError(StorageError):
    """A uniqueness constraint (federation key or email) was violated."""

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f"duplicate {field}: {value}")
