"""Access/refresh token issuing and refresh-token rotation."""

from __future__ import annotations

import hashlib
import logging
import secrets
from collections.abc import Callable
from datetime import timedelta
from typing import TYPE_CHECKING

from fastapi_users import exceptions
from fastapi_users.authentication import JWTStrategy
from sqlalchemy import delete, select

from quill.errors import ForbiddenError, InvalidTokenError, TokenExpiredError
from quill.models.user import RefreshToken, User
from quill.schemas.auth import TokenPair
from quill.schemas.post import ensure_aware
from quill.utils.clock import Clock, utc_now

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from quill.auth import UserManager

logger = logging.getLogger(__name__)


def hash_token(raw: str) -> str:
    """Return the SHA-256 hex digest stored in place of a refresh token."""
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class TokenService:
    """Issues JWT access tokens paired with opaque single-use refresh tokens."""

    def __init__(
        self,
        strategy_factory: Callable[[], JWTStrategy],
        *,
        access_lifetime_seconds: int,
        refresh_lifetime_seconds: int,
        clock: Clock = utc_now,
    ) -> None:
        self.strategy_factory = strategy_factory
        self.access_lifetime_seconds = access_lifetime_seconds
        self.refresh_lifetime_seconds = refresh_lifetime_seconds
        self._clock = clock

    async def issue(self, session: AsyncSession, user: User) -> TokenPair:
        """Create a token pair for ``user`` and commit the refresh token."""
        access_token = await self.strategy_factory().write_token(user)
        raw = secrets.token_urlsafe(48)
        session.add(
            RefreshToken(
                user_id=user.id,
                token_hash=hash_token(raw),
                expires_at=self._clock()
                + timedelta(seconds=self.refresh_lifetime_seconds),
            )
        )
        await session.commit()
        return TokenPair(
            access_token=access_token,
            refresh_token=raw,
            expires_in=self.access_lifetime_seconds,
        )

    async def rotate(
        self, session: AsyncSession, raw: str, user_manager: UserManager
    ) -> tuple[User, TokenPair]:
        """Trade a refresh token for a new pair.

        The presented token is consumed whatever the outcome, so it can never
        be used twice.

        Raises:
            InvalidTokenError: Unknown or already used token, or deleted user
            TokenExpiredError: The token is past its expiry
            ForbiddenError: The user has been deactivated
        """
        digest = hash_token(raw)
        result = await session.execute(
            select(RefreshToken).where(RefreshToken.token_hash == digest)
        )
        token = result.scalar_one_or_none()
        if token is None:
            raise InvalidTokenError()

        user_id = token.user_id
        expires_at = ensure_aware(token.expires_at)
        deleted = await session.execute(
            delete(RefreshToken).where(RefreshToken.id == token.id)
        )
        if deleted.rowcount == 0:
            # Lost a race with a concurrent refresh of the same token.
            await session.rollback()
            raise InvalidTokenError()

        if expires_at <= self._clock():
            await session.commit()
            raise TokenExpiredError()

        try:
            user = await user_manager.get(user_id)
        except exceptions.UserNotExists as exc:
            await session.commit()
            raise InvalidTokenError() from exc
        if not user.is_active:
            await session.commit()
            raise ForbiddenError("Account is disabled")

        pair = await self.issue(session, user)
        logger.info("Rotated refresh token", extra={"user_id": str(user.id)})
        return user, pair

    async def purge_expired(self, session: AsyncSession) -> int:
        """Delete every expired refresh token; returns the number removed."""
        result = await session.execute(
            delete(RefreshToken).where(RefreshToken.expires_at <= self._clock())
        )
        await session.commit()
        return result.rowcount
