"""Identity resolution against the token verification service.

A successful verification maps the external identity onto exactly one local
user, keyed by the upstream UID. The display name is synced on every login;
the UID never changes once a record exists.
"""

import dataclasses
import json
import secrets
from typing import Any

import httpx
import structlog

from .config import FederationSettings
from .errors import (
    FederationError,
    ProtocolError,
    StorageError,
    TransportError,
    Unauthenticated,
    UpstreamUnavailable,
)
from .models import (
    MANAGED_COMMENT,
    Credential,
    ExternalIdentity,
    LocalUser,
    UserStore,
    VerificationRequest,
    VerificationResult,
)
from .transport import build_http_client

logger = structlog.get_logger()

AUTHENTICATE_PATH = "/authenticate/token"

# Local stores require a unique email; upstream identities have none
PLACEHOLDER_EMAIL_DOMAIN = "placeholder.local"


def random_string(nbytes: int = 16) -> str:
    """Collision-resistant opaque string."""
    return secrets.token_urlsafe(nbytes)


def is_placeholder_email(email: str) -> bool:
    return email.endswith(f"@{PLACEHOLDER_EMAIL_DOMAIN}")


def email_address(user: LocalUser) -> str:
    """Email for a local user: existing, derived from username, or random."""
    if user.email:
        return user.email
    if user.username:
        return f"{user.username}@{PLACEHOLDER_EMAIL_DOMAIN}"
    return f"{random_string(8)}@{PLACEHOLDER_EMAIL_DOMAIN}"


class IdentityResolver:
    """Authenticator backed by the token verification service."""

    def __init__(self, client: httpx.AsyncClient, verify_url: str, store: UserStore):
        """Initialize the resolver.

        Args:
            client: Shared HTTP client for the verification service
            verify_url: Resolved verification service base URL
            store: Local user store
        """
        self.client = client
        self.verify_url = verify_url.rstrip("/")
        self.store = store

    @classmethod
    def from_settings(
        cls, settings: FederationSettings, store: UserStore
    ) -> "IdentityResolver":
        """Build a resolver and its HTTP client from startup settings."""
        client, verify_url = build_http_client(
            settings.verify_url,
            ca_bundle_path=settings.ca_bundle_path,
            timeout=settings.http_timeout_seconds,
        )
        return cls(client, verify_url, store)

    @property
    def authenticate_url(self) -> str:
        return f"{self.verify_url}{AUTHENTICATE_PATH}"

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "IdentityResolver":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def authenticate(self, credential: Credential) -> LocalUser:
        """Resolve a credential to its canonical local user.

        Raises:
            TransportError: The verification service could not be reached
            UpstreamUnavailable: The verification service returned 5xx
            ProtocolError: The response body is malformed
            Unauthenticated: The credential was rejected
            StorageError: A local store operation failed
        """
        log = logger.bind(principal=credential.principal)
        log.debug("Authenticating federated user")

        identity = await self.verify(credential)
        return await self.reconcile(identity, principal=credential.principal)

    async def verify(self, credential: Credential) -> ExternalIdentity:
        """Run the verification exchange and return the asserted identity."""
        log = logger.bind(principal=credential.principal)
        request = VerificationRequest(token=credential.token)

        try:
            async with self.client.stream(
                "POST", self.authenticate_url, json=request.to_dict()
            ) as response:
                body = await response.aread()
                status_code = response.status_code
        except httpx.RequestError as e:
            log.error(
                "Verification service unreachable",
                url=self.authenticate_url,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TransportError(
                f"cannot reach verification service: {type(e).__name__}"
            ) from e

        text = body.decode("utf-8", errors="replace")

        if status_code >= 500:
            log.error(
                "Verification service error",
                status=status_code,
                response=text[:200],
            )
            raise UpstreamUnavailable(status_code, text)

        if status_code != 200:
            message = _rejection_message(body)
            log.warning(
                "Authentication rejected", status=status_code, reason=message
            )
            raise Unauthenticated(message)

        try:
            result = VerificationResult.from_dict(json.loads(body))
        except (ValueError, RecursionError) as e:
            log.error("Verification response is not valid JSON", error=str(e))
            raise ProtocolError("verification response is not valid JSON") from e
        except ProtocolError as e:
            log.error("Verification response rejected", error=str(e))
            raise

        if not result.authenticated or result.user is None:
            log.warning(
                "Authentication rejected", status=status_code, reason=result.error
            )
            raise Unauthenticated(result.error)

        log.debug(
            "Token verified",
            uid=result.user.uid,
            username=result.user.username,
            groups_count=len(result.user.groups),
        )
        return result.user

    async def reconcile(
        self, identity: ExternalIdentity, principal: str = ""
    ) -> LocalUser:
        """Find, update or create the local user for a verified identity."""
        log = logger.bind(principal=principal, uid=identity.uid)

        try:
            existing = await self.store.find_by_key(identity.uid)

            if existing is None:
                user = LocalUser(
                    federation_key=identity.uid,
                    username=identity.username,
                    password=random_string(),
                    comment=MANAGED_COMMENT,
                )
                user.email = email_address(user)
                user.user_id = await self.store.create(user)
                log.info(
                    "Federated user created",
                    user_id=user.user_id,
                    username=user.username,
                )
                return user

            if existing.username == identity.username:
                log.info("Federated user resolved", user_id=existing.user_id)
                return existing

            user = dataclasses.replace(existing, username=identity.username)
            if is_placeholder_email(user.email):
                user.email = ""
            user.email = email_address(user)
            await self.store.update(user)
            log.info(
                "Federated user renamed",
                user_id=user.user_id,
                previous_username=existing.username,
                username=user.username,
            )
            return user

        except StorageError as e:
            log.error(
                "User store operation failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise
        except FederationError:
            raise
        except Exception as e:
            log.error(
                "User store operation failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StorageError(str(e)) from e


def _rejection_message(body: bytes) -> str | None:
    """Upstream error message from a non-200 body, when it carries one."""
    try:
        payload = json.loads(body)
    except (ValueError, RecursionError):
        return None
    if not isinstance(payload, dict):
        return None
    status = payload.get("status")
    if not isinstance(status, dict):
        return None
    error = status.get("error")
    return error if isinstance(error, str) and error else None
