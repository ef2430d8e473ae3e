import uuid

from fastapi_users import schemas
from pydantic import Field

USERNAME_PATTERN = r"^[A-Za-z0-9]+$"


class UserRead(schemas.BaseUser[uuid.UUID]):
    username: str
    role: str = "user"


class UserCreate(schemas.BaseUserCreate):
    username: str = Field(..., min_length=3, max_length=30, pattern=USERNAME_PATTERN)


class UserUpdate(schemas.BaseUserUpdate):
    username: str | None = Field(
        default=None, min_length=3, max_length=30, pattern=USERNAME_PATTERN
    )
