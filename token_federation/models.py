"""Federation models, wire types and collaborator protocols."""

from dataclasses import dataclass, field
from typing import Any, Protocol

from .errors import ProtocolError

TOKEN_REVIEW_API_VERSION = "authentication.k8s.io/v1"
TOKEN_REVIEW_KIND = "TokenReview"

# Marks records owned by the federation adapter
MANAGED_COMMENT = "managed by token federation, do not edit"


@dataclass(frozen=True)
class Credential:
    """Login input from the host.

    The principal is untrusted and only used to correlate log lines. The
    token is the sole authentication factor.
    """

    principal: str
    token: str = field(repr=False)


@dataclass(frozen=True)
class VerificationRequest:
    """Request body sent to the verification service."""

    token: str = field(repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiVersion": TOKEN_REVIEW_API_VERSION,
            "kind": TOKEN_REVIEW_KIND,
            "spec": {"token": self.token},
        }


@dataclass(frozen=True)
class ExternalIdentity:
    """Identity asserted by the verification service."""

    uid: str
    username: str
    groups: list[str] = field(default_factory=list)
    extra: dict[str, list[str]] = field(default_factory=dict)


@dataclass(frozen=True)
class VerificationResult:
    """Parsed verification service response."""

    authenticated: bool
    api_version: str = ""
    kind: str = ""
    error: str | None = None
    user: ExternalIdentity | None = None

    @classmethod
    def from_dict(cls, payload: Any) -> "VerificationResult":
        """Parse a decoded JSON body.

        Raises:
            ProtocolError: If the payload does not match the wire schema
        """
        if not isinstance(payload, dict):
            raise ProtocolError("response body is not a JSON object")

        status = payload.get("status")
        if not isinstance(status, dict):
            raise ProtocolError("response has no status object")

        authenticated = status.get("authenticated", False)
        if not isinstance(authenticated, bool):
            raise ProtocolError("status.authenticated is not a boolean")

        error = status.get("error")
        if error is not None and not isinstance(error, str):
            raise ProtocolError("status.error is not a string")

        user = None
        if authenticated:
            user = _parse_identity(status.get("user"))

        return cls(
            authenticated=authenticated,
            api_version=_optional_str(payload, "apiVersion"),
            kind=_optional_str(payload, "kind"),
            error=error or None,
            user=user,
        )


def _optional_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ProtocolError(f"{key} is not a string")
    return value


def _parse_identity(raw: Any) -> ExternalIdentity:
    if not isinstance(raw, dict):
        raise ProtocolError("authenticated response has no user object")

    uid = raw.get("uid")
    if not isinstance(uid, str) or not uid:
        raise ProtocolError("authenticated user has no uid")

    username = raw.get("username", "")
    if not isinstance(username, str):
        raise ProtocolError("user.username is not a string")

    groups = raw.get("groups") or []
    if not isinstance(groups, list) or not all(isinstance(g, str) for g in groups):
        raise ProtocolError("user.groups is not a list of strings")

    extra = raw.get("extra") or {}
    if not isinstance(extra, dict) or not all(
        isinstance(k, str)
        and isinstance(v, list)
        and all(isinstance(item, str) for item in v)
        for k, v in extra.items()
    ):
        raise ProtocolError("user.extra is not a mapping of string lists")

    return ExternalIdentity(uid=uid, username=username, groups=groups, extra=extra)


@dataclass
class LocalUser:
    """Reconciled local user record."""

    federation_key: str
    username: str
    email: str = ""
    password: str = field(default="", repr=False)
    comment: str = MANAGED_COMMENT
    user_id: int | None = None


class UserStore(Protocol):
    """Local user storage consumed by the resolver.

    Implementations enforce uniqueness on both the federation key and email.
    """

    async def find_by_key(self, key: str) -> LocalUser | None:
        """Return the user with this federation key, or None."""
        ...

    async def create(self, user: LocalUser) -> int:
        """Persist a new user and return its assigned id."""
        ...

    async def update(self, user: LocalUser) -> None:
        """Persist username and email changes of an existing user."""
        ...


class Authenticator(Protocol):
    """Capability handed to the host's login flow."""

    async def authenticate(self, credential: Credential) -> LocalUser:
        """Resolve a credential to exactly one local user."""
        ...
