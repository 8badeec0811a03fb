"""SQLAlchemy-backed user store."""

import structlog
from sqlalchemy import (
    TIMESTAMP,
    Column,
    Integer,
    String,
    UniqueConstraint,
    func,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from ..errors import ConfigurationError, DuplicateKeyError, StorageError
from ..models import LocalUser

logger = structlog.get_logger()


class Base(DeclarativeBase):
    """Base for federation ORM models."""

    pass


class FederatedUserRow(Base):
    """Local user record owned by token federation.

    Rules:
      - federation_key is the upstream UID and never changes.
      - federation_key and email are each globally unique.
    """

    __tablename__ = "federated_users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    federation_key = Column(String(255), nullable=False)
    username = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    password = Column(String(255), nullable=False)
    comment = Column(String(255), nullable=False)

    created_at = Column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at = Column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("federation_key", name="uq_federated_users_federation_key"),
        UniqueConstraint("email", name="uq_federated_users_email"),
    )

    def to_user(self) -> LocalUser:
        return LocalUser(
            user_id=self.id,
            federation_key=self.federation_key,
            username=self.username,
            email=self.email,
            password=self.password,
            comment=self.comment,
        )


# Postgres and MySQL name the constraint, sqlite names the column.
EMAIL_CONSTRAINT_MARKERS = ("uq_federated_users_email", "federated_users.email")


def _duplicate_key_error(e: IntegrityError, user: LocalUser) -> DuplicateKeyError:
    """Map a driver uniqueness violation onto the violated field.

    Only the first line of the driver message is inspected; Postgres appends
    a DETAIL line that echoes the conflicting value.
    """
    lines = str(e.orig).splitlines()
    message = lines[0] if lines else ""
    if any(marker in message for marker in EMAIL_CONSTRAINT_MARKERS):
        return DuplicateKeyError("email", user.email)
    return DuplicateKeyError("federation_key", user.federation_key)


class SQLUserStore:
    """User store on any SQLAlchemy async engine."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.sessionmaker = async_sessionmaker(
            engine, expire_on_commit=False, class_=AsyncSession
        )

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "SQLUserStore":
        """Build a store on a new async engine.

        Raises:
            ConfigurationError: If the URL names no usable async driver
        """
        try:
            engine = create_async_engine(database_url, echo=echo)
        except (SQLAlchemyError, ImportError) as e:
            raise ConfigurationError(f"cannot open database: {e}") from e
        return cls(engine)

    async def create_schema(self) -> None:
        """Create the federated_users table if it does not exist."""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise StorageError(f"schema creation failed: {e}") from e

    async def close(self) -> None:
        await self.engine.dispose()

    async def find_by_key(self, key: str) -> LocalUser | None:
        stmt = select(FederatedUserRow).where(FederatedUserRow.federation_key == key)
        try:
            async with self.sessionmaker() as session:
                result = await session.execute(stmt)
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(f"lookup failed: {e}") from e

        return row.to_user() if row is not None else None

    async def create(self, user: LocalUser) -> int:
        row = FederatedUserRow(
            federation_key=user.federation_key,
            username=user.username,
            email=user.email,
            password=user.password,
            comment=user.comment,
        )
        try:
            async with self.sessionmaker() as session:
                session.add(row)
                await session.commit()
        except IntegrityError as e:
            raise _duplicate_key_error(e, user) from e
        except SQLAlchemyError as e:
            raise StorageError(f"create failed: {e}") from e

        logger.debug("User stored", user_id=row.id)
        return row.id

    async def update(self, user: LocalUser) -> None:
        stmt = (
            update(FederatedUserRow)
            .where(
                FederatedUserRow.id == user.user_id,
                FederatedUserRow.federation_key == user.federation_key,
            )
            .values(username=user.username, email=user.email, updated_at=func.now())
        )
        try:
            async with self.sessionmaker() as session:
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    raise StorageError(f"user {user.user_id} does not exist")
                await session.commit()
        except IntegrityError as e:
            raise _duplicate_key_error(e, user) from e
        except SQLAlchemyError as e:
            raise StorageError(f"update failed: {e}") from e

        logger.debug("User updated", user_id=user.user_id)
