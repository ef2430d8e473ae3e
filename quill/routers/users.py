"""Profile of the authenticated user."""

from fastapi import APIRouter, Depends, Request

from quill.auth import UserManager, current_active_user, get_user_manager
from quill.models.user import User
from quill.schemas.response import APIResponse, ok
from quill.schemas.user import UserRead, UserUpdate

router = APIRouter(prefix="/me", tags=["users"])


@router.get("", response_model=APIResponse[UserRead])
async def read_me(user: User = Depends(current_active_user)):
    return ok(UserRead.model_validate(user))


@router.put("", response_model=APIResponse[UserRead])
async def update_me(
    request: Request,
    payload: UserUpdate,
    user: User = Depends(current_active_user),
    user_manager: UserManager = Depends(get_user_manager),
):
    updated = await user_manager.update(payload, user, safe=True, request=request)
    return ok(UserRead.model_validate(updated))
