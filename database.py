import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, List, Mapping

import structlog
from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.sql import select

from errors import (
    DuplicateUserError,
    InvalidCredentialsError,
    InvalidInputError,
    StoreUnavailableError,
    TransactionNotFoundError,
)
from security import PasswordHasher

logger = structlog.get_logger(__name__)

Base = declarative_base()

TRANSACTION_TYPES = ("income", "expense")
PATCHABLE_FIELDS = ("amount", "category", "type")
_MAX_ID = 2**63 - 1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ----------------------------------------------------------------------------
# DB Models
# ----------------------------------------------------------------------------
class UserModel(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)


class TransactionModel(Base):
    __tablename__ = "transactions"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    category = Column(String(64), nullable=False)
    type = Column(String(10), nullable=False)  # income | expense
    date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


# ----------------------------------------------------------------------------
# Engine & sessions
# ----------------------------------------------------------------------------
class Database:
    """Owns the engine (and its connection pool) for the life of the process."""

    def __init__(self, url: str):
        self.url = url
        self.engine = create_async_engine(url, echo=False, future=True)
        self._sessions = sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    def session(self) -> AsyncSession:
        return self._sessions()

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


@asynccontextmanager
async def _store_errors(session: AsyncSession):
    try:
        yield
    except SQLAlchemyError as exc:
        await session.rollback()
        raise StoreUnavailableError(str(exc)) from exc


# ----------------------------------------------------------------------------
# Credential store
# ----------------------------------------------------------------------------
class CredentialStore:
    def __init__(self, session: AsyncSession, hasher: PasswordHasher):
        self._session = session
        self._hasher = hasher

    async def register(self, email: str, password: str) -> int:
        """Create a user and return its id.

        Raises DuplicateUserError when the email is taken, including when a
        concurrent registration wins the race and the unique index fires.
        """
        async with _store_errors(self._session):
            result = await self._session.execute(select(UserModel).where(UserModel.email == email))
            if result.scalar_one_or_none() is not None:
                raise DuplicateUserError(email)

            password_hash = await asyncio.to_thread(self._hasher.hash, password)
            user = UserModel(email=email, password_hash=password_hash)
            self._session.add(user)
            try:
                await self._session.commit()
            except IntegrityError as exc:
                await self._session.rollback()
                raise DuplicateUserError(email) from exc

        logger.info("user_registered", user_id=user.id)
        return user.id

    async def verify(self, email: str, password: str) -> int:
        async with _store_errors(self._session):
            result = await self._session.execute(select(UserModel).where(UserModel.email == email))
            user = result.scalar_one_or_none()

        if user is None:
            raise InvalidCredentialsError(email)
        matches = await asyncio.to_thread(self._hasher.verify, password, user.password_hash)
        if not matches:
            raise InvalidCredentialsError(email)
        return user.id


# ----------------------------------------------------------------------------
# Transaction store
# ----------------------------------------------------------------------------
def _parse_id(transaction_id: Any) -> int:
    text = str(transaction_id).strip()
    if not (text.isascii() and text.isdigit()) or int(text) > _MAX_ID:
        raise TransactionNotFoundError(text)
    return int(text)


def _check_type(value: Any) -> None:
    if value not in TRANSACTION_TYPES:
        raise InvalidInputError(f"type must be one of {TRANSACTION_TYPES}, got {value!r}")


class TransactionStore:
    """Every lookup is scoped to the calling user's id."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, user_id: int, amount: float, category: str, type: str) -> TransactionModel:
        _check_type(type)
        tx = TransactionModel(user_id=user_id, amount=amount, category=category, type=type, date=_utcnow())
        async with _store_errors(self._session):
            self._session.add(tx)
            await self._session.commit()
            await self._session.refresh(tx)
        return tx

    async def list_by_user(self, user_id: int) -> List[TransactionModel]:
        query = select(TransactionModel).where(TransactionModel.user_id == user_id).order_by(TransactionModel.id)
        async with _store_errors(self._session):
            result = await self._session.execute(query)
            return list(result.scalars().all())

    async def _get_owned(self, transaction_id: Any, user_id: int) -> TransactionModel:
        # Unknown id and foreign owner are deliberately indistinguishable
        pk = _parse_id(transaction_id)
        query = select(TransactionModel).where(TransactionModel.id == pk, TransactionModel.user_id == user_id)
        async with _store_errors(self._session):
            result = await self._session.execute(query)
            tx = result.scalar_one_or_none()
        if tx is None:
            raise TransactionNotFoundError(str(pk))
        return tx

    async def update(self, transaction_id: Any, user_id: int, patch: Mapping[str, Any]) -> TransactionModel:
        """Apply ``patch`` to an owned transaction.

        Falsy values (0, "", None) count as "not provided", so an amount can
        never be set to 0 through an update.
        """
        tx = await self._get_owned(transaction_id, user_id)
        changes = {field: patch[field] for field in PATCHABLE_FIELDS if patch.get(field)}
        if "type" in changes:
            _check_type(changes["type"])
        for field, value in changes.items():
            setattr(tx, field, value)

        async with _store_errors(self._session):
            await self._session.commit()
            await self._session.refresh(tx)
        return tx

    async def delete(self, transaction_id: Any, user_id: int) -> None:
        tx = await self._get_owned(transaction_id, user_id)
        async with _store_errors(self._session):
            await self._session.delete(tx)
            await self._session.commit()
