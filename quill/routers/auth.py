"""Registration, login and token refresh."""

from fastapi import APIRouter, Depends, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from quill.auth import UserManager, get_user_manager
from quill.database_async import get_async_session
from quill.dependencies import get_token_service
from quill.errors import ForbiddenError, InvalidCredentialsError
from quill.schemas.auth import AuthResponse, LoginRequest, RefreshRequest
from quill.schemas.response import APIResponse, ok
from quill.schemas.user import UserCreate, UserRead
from quill.security import limiter
from quill.services.token_service import TokenService

router = APIRouter(prefix="/auth", tags=["auth"])


def _auth_response(user, pair) -> AuthResponse:
    return AuthResponse(user=UserRead.model_validate(user), **pair.model_dump())


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    response_model=APIResponse[AuthResponse],
)
@limiter.limit("10/minute")
async def register(
    request: Request,
    payload: UserCreate,
    session: AsyncSession = Depends(get_async_session),
    user_manager: UserManager = Depends(get_user_manager),
    tokens: TokenService = Depends(get_token_service),
):
    user = await user_manager.create(payload, safe=True, request=request)
    pair = await tokens.issue(session, user)
    return ok(_auth_response(user, pair))


@router.post("/login", response_model=APIResponse[AuthResponse])
@limiter.limit("10/minute")
async def login(
    request: Request,
    payload: LoginRequest,
    session: AsyncSession = Depends(get_async_session),
    user_manager: UserManager = Depends(get_user_manager),
    tokens: TokenService = Depends(get_token_service),
):
    credentials = OAuth2PasswordRequestForm(
        username=payload.email, password=payload.password
    )
    user = await user_manager.authenticate(credentials)
    if user is None:
        raise InvalidCredentialsError()
    if not user.is_active:
        raise ForbiddenError("Account is disabled")
    pair = await tokens.issue(session, user)
    return ok(_auth_response(user, pair))


@router.post("/refresh", response_model=APIResponse[AuthResponse])
@limiter.limit("30/minute")
async def refresh(
    request: Request,
    payload: RefreshRequest,
    session: AsyncSession = Depends(get_async_session),
    user_manager: UserManager = Depends(get_user_manager),
    tokens: TokenService = Depends(get_token_service),
):
    user, pair = await tokens.rotate(session, payload.refresh_token, user_manager)
    return ok(_auth_response(user, pair))
