"""Shared fixtures for token federation tests."""

from typing import Any

import httpx
import pytest
import pytest_asyncio

from token_federation.models import LocalUser
from token_federation.resolver import IdentityResolver
from token_federation.store.memory import InMemoryUserStore

VERIFY_URL = "http://verify.example.com"


class FakeVerificationService:
    """Scripted verification service behind an httpx MockTransport."""

    def __init__(self) -> None:
        self.status_code = 200
        self.payload: Any = {"status": {"authenticated": False}}
        self.content: bytes | None = None
        self.error: Exception | None = None
        self.requests: list[httpx.Request] = []

    def authenticate(self, uid: str, username: str, **user: Any) -> None:
        self.status_code = 200
        self.content = None
        self.payload = {
            "apiVersion": "authentication.k8s.io/v1",
            "kind": "TokenReview",
            "status": {
                "authenticated": True,
                "user": {"uid": uid, "username": username, **user},
            },
        }

    def reject(self, error: str | None = None, status_code: int = 200) -> None:
        self.status_code = status_code
        self.content = None
        status: dict[str, Any] = {"authenticated": False}
        if error is not None:
            status["error"] = error
        self.payload = {"status": status}

    def respond_raw(self, status_code: int, content: bytes) -> None:
        self.status_code = status_code
        self.content = content

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.content is not None:
            return httpx.Response(self.status_code, content=self.content)
        return httpx.Response(self.status_code, json=self.payload)


class RecordingUserStore(InMemoryUserStore):
    """In-memory store that counts mutations."""

    def __init__(self) -> None:
        super().__init__()
        self.create_calls = 0
        self.update_calls = 0

    async def create(self, user: LocalUser) -> int:
        self.create_calls += 1
        return await super().create(user)

    async def update(self, user: LocalUser) -> None:
        self.update_calls += 1
        await super().update(user)


@pytest.fixture
def service() -> FakeVerificationService:
    return FakeVerificationService()


@pytest.fixture
def store() -> RecordingUserStore:
    return RecordingUserStore()


@pytest_asyncio.fixture
async def resolver(service: FakeVerificationService, store: RecordingUserStore):
    client = httpx.AsyncClient(transport=httpx.MockTransport(service.handler))
    async with IdentityResolver(client, VERIFY_URL, store) as resolver:
        yield resolver
