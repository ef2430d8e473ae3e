"""Post CRUD endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from quill.auth import current_active_user
from quill.database import get_db
from quill.dependencies import get_post_service
from quill.models.user import User
from quill.schemas.post import (
    MessageOut,
    PostCreate,
    PostListQuery,
    PostOut,
    PostPage,
    PostStatus,
    PostUpdate,
)
from quill.schemas.response import APIResponse, ok
from quill.security import limiter
from quill.services.post_service import PostService

router = APIRouter(prefix="/posts", tags=["posts"])


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=APIResponse[PostOut],
)
@limiter.limit("30/minute")
def create_post(
    request: Request,
    payload: PostCreate,
    db: Session = Depends(get_db),
    user: User = Depends(current_active_user),
    service: PostService = Depends(get_post_service),
):
    post = service.create(db, user, payload)
    return ok(PostOut.model_validate(post))


@router.get("", response_model=APIResponse[PostPage])
def list_posts(
    status_filter: PostStatus | None = Query(None, alias="status"),
    author_id: UUID | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    service: PostService = Depends(get_post_service),
):
    query = PostListQuery(
        status=status_filter, author_id=author_id, page=page, limit=limit
    )
    return ok(service.list(db, query))


@router.get("/{id_or_slug}", response_model=APIResponse[PostOut])
def get_post(
    id_or_slug: str,
    db: Session = Depends(get_db),
    service: PostService = Depends(get_post_service),
):
    return ok(PostOut.model_validate(service.get(db, id_or_slug)))


@router.put("/{post_id}", response_model=APIResponse[PostOut])
@limiter.limit("30/minute")
async def update_post(
    request: Request,
    post_id: UUID,
    payload: PostUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(current_active_user),
    service: PostService = Depends(get_post_service),
):
    post = await service.request_update(db, user, post_id, payload)
    return ok(PostOut.model_validate(post))


@router.delete("/{post_id}", response_model=APIResponse[MessageOut])
@limiter.limit("30/minute")
def delete_post(
    request: Request,
    post_id: UUID,
    db: Session = Depends(get_db),
    user: User = Depends(current_active_user),
    service: PostService = Depends(get_post_service),
):
    service.delete(db, user, post_id)
    return ok(MessageOut(message="Post deleted successfully"))
