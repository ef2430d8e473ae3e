"""Uniform JSON envelope shared by every API endpoint."""

from __future__ import annotations

from typing import Generic, TypeVar

from asgi_correlation_id.context import correlation_id
from pydantic import BaseModel

T = TypeVar("T")


class APIErrorBody(BaseModel):
    code: str
    message: str


class APIResponse(BaseModel, Generic[T]):
    """Response envelope.

    ``success`` tells clients which of ``data`` or ``error`` to read;
    ``request_id`` echoes the ``X-Request-ID`` correlation header.
    """

    success: bool
    request_id: str | None = None
    data: T | None = None
    error: APIErrorBody | None = None


def ok(data: T) -> APIResponse[T]:
    """Wrap a payload in a success envelope."""
    return APIResponse(success=True, request_id=correlation_id.get(), data=data)


def failure(code: str, message: str) -> APIResponse[None]:
    """Build an error envelope."""
    return APIResponse(
        success=False,
        request_id=correlation_id.get(),
        error=APIErrorBody(code=code, message=message),
    )
