"""Auth API router: register, credentials login, password change.

All endpoints return ApiResponse. request_id is read from request.state
(injected by RequestLogMiddleware). No session or token is issued here;
that belongs to the identity layer in front of this service.
"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.dc_common.database import get_db_session
from src.dc_common.response import ApiResponse, success_response
from src.dc_credentials.service import CredentialService, get_credential_service
from src.dc_gateway.user.db_models import UserModel
from src.dc_gateway.user.schemas import (
    ChangePasswordRequest,
    LoginRequest,
    RegisterRequest,
    RegisterResponse,
    UserInfo,
)
from src.dc_gateway.user.service import UserService

router = APIRouter(prefix="/auth", tags=["auth"])


def get_user_service(
    credentials: CredentialService = Depends(get_credential_service),
) -> UserService:
    return UserService(credentials)


def _get_request_id(request: Request) -> str:
    """Read request_id injected by RequestLogMiddleware, fallback if absent."""
    return getattr(request.state, "request_id", "req_unknown")


def _user_info(user: UserModel) -> UserInfo:
    return UserInfo(
        user_id=str(user.id),
        email=user.email,
        name=user.name,
        image=user.image,
        role=user.role or "user",
    )


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse,
    summary="User registration",
)
async def register(
    request: Request,
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db_session),
    service: UserService = Depends(get_user_service),
) -> ApiResponse:
    async with db.begin():
        user = await service.register(body.full_name, body.email, body.password, db)

    data = RegisterResponse(
        user_id=str(user.id),
        email=user.email,
        name=user.name,
        created_at=user.created_at.isoformat(),
    )
    resp = success_response(data.model_dump(), message="User registered successfully")
    resp.request_id = _get_request_id(request)
    return resp


@router.post(
    "/login",
    status_code=status.HTTP_200_OK,
    response_model=ApiResponse,
    summary="Credentials login",
)
async def login(
    request: Request,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
    service: UserService = Depends(get_user_service),
) -> ApiResponse:
    user = await service.authenticate(body.email, body.password, db)

    resp = success_response(_user_info(user).model_dump(), message="Login successful")
    resp.request_id = _get_request_id(request)
    return resp


@router.post(
    "/password",
    status_code=status.HTTP_200_OK,
    response_model=ApiResponse,
    summary="Change password",
)
async def change_password(
    request: Request,
    body: ChangePasswordRequest,
    db: AsyncSession = Depends(get_db_session),
    service: UserService = Depends(get_user_service),
) -> ApiResponse:
    async with db.begin():
        user = await service.change_password(
            body.email, body.current_password, body.new_password, db
        )

    resp = success_response(_user_info(user).model_dump(), message="Password updated")
    resp.request_id = _get_request_id(request)
    return resp
