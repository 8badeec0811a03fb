"""In-process user store."""

import asyncio
import dataclasses
import itertools

import structlog

from ..errors import DuplicateKeyError, StorageError
from ..models import LocalUser

logger = structlog.get_logger()


class InMemoryUserStore:
    """Dict-backed store with unique federation keys and emails.

    Records are copied in and out so callers never share mutable state with
    the store.
    """

    def __init__(self) -> None:
        self._users: dict[int, LocalUser] = {}
        self._by_key: dict[str, int] = {}
        self._by_email: dict[str, int] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def find_by_key(self, key: str) -> LocalUser | None:
        user_id = self._by_key.get(key)
        if user_id is None:
            return None
        return dataclasses.replace(self._users[user_id])

    async def create(self, user: LocalUser) -> int:
        async with self._lock:
            if user.federation_key in self._by_key:
                raise DuplicateKeyError("federation_key", user.federation_key)
            if user.email in self._by_email:
                raise DuplicateKeyError("email", user.email)

            user_id = next(self._ids)
            self._users[user_id] = dataclasses.replace(user, user_id=user_id)
            self._by_key[user.federation_key] = user_id
            self._by_email[user.email] = user_id

        logger.debug("User stored", user_id=user_id)
        return user_id

    async def update(self, user: LocalUser) -> None:
        async with self._lock:
            stored = self._users.get(user.user_id) if user.user_id else None
            if stored is None:
                raise StorageError(f"user {user.user_id} does not exist")
            if stored.federation_key != user.federation_key:
                raise StorageError("federation key is immutable")

            owner = self._by_email.get(user.email)
            if owner is not None and owner != user.user_id:
                raise DuplicateKeyError("email", user.email)

            del self._by_email[stored.email]
            self._by_email[user.email] = stored.user_id
            self._users[stored.user_id] = dataclasses.replace(
                stored, username=user.username, email=user.email
            )

        logger.debug("User updated", user_id=user.user_id)

    def __len__(self) -> int:
        return len(self._users)
