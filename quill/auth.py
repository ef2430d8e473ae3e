import uuid
from collections.abc import AsyncGenerator

from fastapi import Depends, Request
from fastapi_users import FastAPIUsers, UUIDIDMixin, exceptions, schemas
from fastapi_users.authentication import (
    AuthenticationBackend,
    BearerTransport,
    JWTStrategy,
)
from fastapi_users.manager import BaseUserManager
from fastapi_users_db_sqlalchemy import SQLAlchemyUserDatabase
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quill.config import settings
from quill.database_async import get_async_session
from quill.errors import EmailTakenError, UsernameTakenError
from quill.models.user import User

MIN_PASSWORD_LENGTH = 8


class UserManager(UUIDIDMixin, BaseUserManager[User, uuid.UUID]):
    reset_password_token_secret = settings.secret_key
    verification_token_secret = settings.secret_key

    def __init__(self, user_db: SQLAlchemyUserDatabase[User, uuid.UUID]):
        super().__init__(user_db)

    async def _ensure_username_free(
        self, username: str, exclude: uuid.UUID | None = None
    ) -> None:
        query = select(User.id).where(User.username == username)
        if exclude is not None:
            query = query.where(User.id != exclude)
        result = await self.user_db.session.execute(query)
        if result.first() is not None:
            raise UsernameTakenError()

    async def create(
        self,
        user_create: schemas.UC,
        safe: bool = False,
        request: Request | None = None,
    ) -> User:
        await self._ensure_username_free(user_create.username)
        try:
            return await super().create(user_create, safe, request)
        except exceptions.UserAlreadyExists as exc:
            raise EmailTakenError() from exc

    async def update(
        self,
        user_update: schemas.UU,
        user: User,
        safe: bool = False,
        request: Request | None = None,
    ) -> User:
        username = getattr(user_update, "username", None)
        if username is not None and username != user.username:
            await self._ensure_username_free(username, exclude=user.id)
        try:
            return await super().update(user_update, user, safe, request)
        except exceptions.UserAlreadyExists as exc:
            raise EmailTakenError() from exc

    async def validate_password(self, password: str, user) -> None:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise exceptions.InvalidPasswordException(
                reason=f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )


async def get_user_db(
    session: AsyncSession = Depends(get_async_session),
) -> AsyncGenerator[SQLAlchemyUserDatabase[User, uuid.UUID]]:
    yield SQLAlchemyUserDatabase(session, User)


async def get_user_manager(
    user_db: SQLAlchemyUserDatabase[User, uuid.UUID] = Depends(get_user_db),
) -> AsyncGenerator[UserManager]:
    yield UserManager(user_db)


def get_jwt_strategy() -> JWTStrategy:
    return JWTStrategy(
        secret=settings.secret_key,
        lifetime_seconds=settings.jwt_lifetime_seconds,
        token_audience=["fastapi-users:auth"],
    )


bearer_transport = BearerTransport(tokenUrl="api/v1/auth/login")

auth_backend = AuthenticationBackend(
    name="jwt",
    transport=bearer_transport,
    get_strategy=get_jwt_strategy,
)

fastapi_users = FastAPIUsers[User, uuid.UUID](
    get_user_manager,
    [auth_backend],
)

current_active_user = fastapi_users.current_user(active=True)
