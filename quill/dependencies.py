"""FastAPI dependencies exposing the components built in the lifespan."""

from __future__ import annotations

from fastapi import Request

from quill.services.post_service import PostService
from quill.services.queue import DeferredQueue
from quill.services.token_service import TokenService


def get_post_service(request: Request) -> PostService:
    return request.app.state.post_service


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_publish_queue(request: Request) -> DeferredQueue:
    return request.app.state.publish_queue
