"""Domain error taxonomy.

Every error the API reports deliberately is a ``QuillError`` subclass carrying
an HTTP status, a stable machine-readable code and a human message. The
exception handlers in ``quill.main`` render them into the response envelope.
"""

from __future__ import annotations


class QuillError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code: int = 500
    code: str = "INTERNAL_SERVER_ERROR"
    message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.message
        super().__init__(self.message)


# 404
class NotFoundError(QuillError):
    status_code = 404
    code = "NOT_FOUND"
    message = "Resource not found"


class PostNotFoundError(NotFoundError):
    code = "POST_NOT_FOUND"
    message = "Post not found"


class UserNotFoundError(NotFoundError):
    code = "USER_NOT_FOUND"
    message = "User not found"


# 403
class ForbiddenError(QuillError):
    status_code = 403
    code = "FORBIDDEN"
    message = "You don't have permission to perform this action"


# 409
class ConflictError(QuillError):
    status_code = 409
    code = "CONFLICT"
    message = "Conflict"


class SlugTakenError(ConflictError):
    code = "SLUG_TAKEN"
    message = "A post with this slug already exists"


class EmailTakenError(ConflictError):
    code = "EMAIL_TAKEN"
    message = "Email already taken"


class UsernameTakenError(ConflictError):
    code = "USERNAME_TAKEN"
    message = "Username already taken"


class PostAlreadyPublishedError(ConflictError):
    code = "POST_ALREADY_PUBLISHED"
    message = "Post is already published"


class InvalidStatusChangeError(ConflictError):
    code = "INVALID_STATUS_CHANGE"
    message = "Invalid status change"


# 400
class ValidationFailedError(QuillError):
    status_code = 400
    code = "VALIDATION_FAILED"
    message = "Validation failed"


# 401
class UnauthorizedError(QuillError):
    status_code = 401
    code = "UNAUTHORIZED"
    message = "Unauthorized"


class InvalidCredentialsError(UnauthorizedError):
    code = "INVALID_CREDENTIALS"
    message = "Invalid credentials"


class InvalidTokenError(UnauthorizedError):
    message = "Invalid token"


class TokenExpiredError(UnauthorizedError):
    message = "Token expired"


# 500
class PublishUnavailableError(QuillError):
    """Raised when a publish intent could not be handed to the queue."""

    message = "Publishing is temporarily unavailable"
