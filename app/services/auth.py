"""Account registration, sign-in and opaque session lookup."""

from __future__ import annotations

import asyncio
import logging
import secrets
from datetime import timedelta

import bcrypt
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings
from ..db_models import SessionRecord, User
from ..errors import Conflict, NotFound, Unauthenticated, ValidationError
from ..models import Credentials, RegisterRequest
from ..utils import clean_optional_text, utcnow

logger = logging.getLogger(__name__)

MAX_PASSWORD_BYTES = 72
INVALID_CREDENTIALS = "Invalid email or password"


class AuthService:
    """Issues and resolves session tokens for registered users."""

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._settings = settings
        self._session_factory = session_factory

    async def register(self, request: RegisterRequest) -> tuple[User, str]:
        """Create an account and open a session for it."""

        email, password = self._require_credentials(request)
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(
                f"Password must be at most {MAX_PASSWORD_BYTES} bytes long"
            )
        password_hash = await asyncio.to_thread(self._hash_password, password)
        name = clean_optional_text(request.name)

        async with self._session_factory() as session:
            existing = await session.execute(select(User.id).where(User.email == email))
            if existing.scalar_one_or_none() is not None:
                raise Conflict("An account with this email already exists")

            user = User(email=email, name=name, password_hash=password_hash)
            session.add(user)
            try:
                await session.flush()
            except IntegrityError as exc:
                await session.rollback()
                raise Conflict("An account with this email already exists") from exc
            token = self._open_session(session, user.id)
            await session.commit()

        logger.info("Registered user %s", user.id)
        return user, token

    async def login(self, credentials: Credentials) -> tuple[User, str]:
        """Verify credentials and open a new session."""

        email, password = self._require_credentials(credentials)
        async with self._session_factory() as session:
            result = await session.execute(select(User).where(User.email == email))
            user = result.scalar_one_or_none()
            if user is None or not user.password_hash:
                raise Unauthenticated(INVALID_CREDENTIALS)
            valid = await asyncio.to_thread(
                self._check_password, password, user.password_hash
            )
            if not valid:
                logger.warning("Rejected sign-in for user %s", user.id)
                raise Unauthenticated(INVALID_CREDENTIALS)
            token = self._open_session(session, user.id)
            await session.commit()
        return user, token

    async def logout(self, token: str | None) -> None:
        """Drop the session behind ``token``; unknown tokens are ignored."""

        if not token:
            return
        async with self._session_factory() as session:
            await session.execute(delete(SessionRecord).where(SessionRecord.token == token))
            await session.commit()

    async def resolve_user(self, token: str | None) -> User:
        """Return the user owning ``token`` or raise :class:`Unauthenticated`."""

        if not token:
            raise Unauthenticated()
        async with self._session_factory() as session:
            record = await session.get(SessionRecord, token)
            if record is None:
                raise Unauthenticated()
            if record.expires_at <= utcnow():
                await session.delete(record)
                await session.commit()
                raise Unauthenticated("Session expired")
            user = await session.get(User, record.user_id)
            if user is None:
                raise Unauthenticated()
            return user

    async def delete_user(self, user_id: str) -> None:
        """Delete an account together with its sessions and media rows."""

        async with self._session_factory() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFound("User not found")
            await session.delete(user)
            await session.commit()
        logger.info("Deleted user %s", user_id)

    def _open_session(self, session: AsyncSession, user_id: str) -> str:
        token = secrets.token_urlsafe(32)
        session.add(
            SessionRecord(
                token=token,
                user_id=user_id,
                expires_at=utcnow()
                + timedelta(seconds=self._settings.session_max_age_seconds),
            )
        )
        return token

    @staticmethod
    def _require_credentials(credentials: Credentials) -> tuple[str, str]:
        email = (credentials.email or "").strip().lower()
        password = credentials.password or ""
        if not email or not password:
            raise ValidationError("Email and password are required")
        if "@" not in email:
            raise ValidationError("Email address is invalid")
        return email, password

    def _hash_password(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self._settings.bcrypt_rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("ascii")

    @staticmethod
    def _check_password(password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(
                password.encode("utf-8"), password_hash.encode("ascii")
            )
        except ValueError:
            return False
