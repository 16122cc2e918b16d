"""Authentication routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    get_broker,
    get_current_user,
    get_profile_photo_storage,
    raise_for_result,
    security,
)
from app.domain.services.auth_service import AuthService
from app.domain.services.profile_service import ProfileService
from app.infrastructure.profile_photo_storage import ProfilePhotoStorage
from app.infrastructure.realtime import RealtimeBroker
from app.persistence.database import get_db
from app.persistence.models.user import ROLE_CUSTOMER, User
from app.settings import settings

router = APIRouter()


class SignUpRequest(BaseModel):
    """Sign-up request."""

    email: EmailStr
    password: str
    role: str = ROLE_CUSTOMER
    display_name: str | None = None
    phone: str | None = None


class LoginRequest(BaseModel):
    """Login request."""

    email: str
    password: str


class UserInfoResponse(BaseModel):
    """Current user info response."""

    id: int
    email: str
    role: str
    display_name: str | None = None
    phone: str | None = None
    photo_url: str | None = None

    class Config:
        from_attributes = True


class LoginResponse(BaseModel):
    """Login response."""

    access_token: str
    token_type: str = "bearer"
    user: UserInfoResponse


class ProfileUpdateRequest(BaseModel):
    """Profile update request; omitted fields are left unchanged."""

    display_name: str | None = None
    phone: str | None = None


class PasswordUpdateRequest(BaseModel):
    """Password change request for the signed-in user."""

    current_password: str
    new_password: str


class PasswordResetRequest(BaseModel):
    """Password reset request."""

    email: str


class PasswordResetResponse(BaseModel):
    """Password reset acknowledgement.

    ``reset_token`` is only returned outside production, where no mailer
    delivers it.
    """

    accepted: bool = True
    reset_token: str | None = None


class PasswordResetConfirm(BaseModel):
    """New password set with a reset token."""

    token: str
    new_password: str


@router.post("/signup", response_model=UserInfoResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(
    signup_data: SignUpRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UserInfoResponse:
    """Create a customer or advisor account."""
    result = await AuthService(db).sign_up(
        email=signup_data.email,
        password=signup_data.password,
        role=signup_data.role,
        display_name=signup_data.display_name,
        phone=signup_data.phone,
    )
    if not result.success:
        raise_for_result(result)
    return UserInfoResponse.model_validate(result.value)


@router.post("/login", response_model=LoginResponse)
async def login(
    login_data: LoginRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    broker: Annotated[RealtimeBroker, Depends(get_broker)],
) -> LoginResponse:
    """Exchange credentials for a bearer token.

    Args:
        login_data: Login credentials
        db: Database session
        broker: Realtime broker for auth state events

    Returns:
        JWT access token and the signed-in user
    """
    result = await AuthService(db, broker).sign_in(login_data.email, login_data.password)
    if not result.success:
        raise_for_result(result)
    session = result.value
    return LoginResponse(
        access_token=session.access_token,
        token_type=session.token_type,
        user=UserInfoResponse.model_validate(session.user),
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
    broker: Annotated[RealtimeBroker, Depends(get_broker)],
) -> None:
    """Revoke the presented token."""
    result = await AuthService(db, broker).sign_out(credentials.credentials)
    if not result.success:
        raise_for_result(result)


@router.get("/me", response_model=UserInfoResponse)
async def get_current_user_info(
    current_user: Annotated[User, Depends(get_current_user)],
) -> UserInfoResponse:
    """Get current authenticated user information."""
    return UserInfoResponse.model_validate(current_user)


@router.patch("/me", response_model=UserInfoResponse)
async def update_profile(
    profile_data: ProfileUpdateRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> UserInfoResponse:
    """Update the current user's display name and phone."""
    result = await ProfileService(db).update_profile(
        current_user, display_name=profile_data.display_name, phone=profile_data.phone
    )
    if not result.success:
        raise_for_result(result)
    return UserInfoResponse.model_validate(result.value)


@router.post("/me/photo", response_model=UserInfoResponse)
async def upload_profile_photo(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    storage: Annotated[ProfilePhotoStorage, Depends(get_profile_photo_storage)],
    file: UploadFile = File(...),
) -> UserInfoResponse:
    """Upload or replace the current user's profile photo."""
    data = await file.read()
    result = await ProfileService(db, photo_storage=storage).upload_profile_photo(
        current_user, data, file.content_type, file.filename
    )
    if not result.success:
        raise_for_result(result)
    return UserInfoResponse.model_validate(result.value)


@router.delete("/me/photo", response_model=UserInfoResponse)
async def remove_profile_photo(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    storage: Annotated[ProfilePhotoStorage, Depends(get_profile_photo_storage)],
) -> UserInfoResponse:
    """Remove the current user's profile photo."""
    result = await ProfileService(db, photo_storage=storage).remove_profile_photo(current_user)
    if not result.success:
        raise_for_result(result)
    return UserInfoResponse.model_validate(result.value)


@router.post("/password", status_code=status.HTTP_204_NO_CONTENT)
async def update_password(
    password_data: PasswordUpdateRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    """Change the current user's password."""
    result = await AuthService(db).update_password(
        current_user, password_data.current_password, password_data.new_password
    )
    if not result.success:
        raise_for_result(result)


@router.post(
    "/password-reset",
    response_model=PasswordResetResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def request_password_reset(
    reset_data: PasswordResetRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PasswordResetResponse:
    """Start a password reset.

    The answer is the same whether or not the email is registered.
    """
    result = await AuthService(db).request_password_reset(reset_data.email)
    if not result.success:
        raise_for_result(result)
    if settings.environment == "production":
        return PasswordResetResponse()
    return PasswordResetResponse(reset_token=result.value)


@router.post("/password-reset/confirm", status_code=status.HTTP_204_NO_CONTENT)
async def confirm_password_reset(
    confirm_data: PasswordResetConfirm,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    """Set a new password with a reset token."""
    result = await AuthService(db).reset_password(confirm_data.token, confirm_data.new_password)
    if not result.success:
        raise_for_result(result)
