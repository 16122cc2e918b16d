"""FastAPI dependencies for auth, realtime wiring and result mapping."""

from typing import Annotated, NoReturn

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.request_context import set_user_context
from app.core.results import ErrorKind, ServiceResult
from app.domain.services.auth_service import AuthService
from app.domain.services.chat_channel_manager import ChatChannelManager
from app.infrastructure.plan_image_storage import PlanImageStorage
from app.infrastructure.profile_photo_storage import ProfilePhotoStorage
from app.infrastructure.realtime import RealtimeBroker
from app.persistence.database import get_db
from app.persistence.models.user import User

security = HTTPBearer()

ERROR_STATUS = {
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INVALID_STATE: status.HTTP_409_CONFLICT,
    ErrorKind.UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def raise_for_result(result: ServiceResult) -> NoReturn:
    """Raise the HTTP error matching a failed service result."""
    code = ERROR_STATUS.get(result.error_kind, status.HTTP_400_BAD_REQUEST)
    raise HTTPException(status_code=code, detail=result.error)


def get_broker(request: Request) -> RealtimeBroker:
    return request.app.state.broker


def get_channel_manager(request: Request) -> ChatChannelManager:
    return request.app.state.channel_manager


def get_plan_image_storage(request: Request) -> PlanImageStorage:
    return request.app.state.plan_image_storage


def get_profile_photo_storage(request: Request) -> ProfilePhotoStorage:
    return request.app.state.profile_photo_storage


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get current authenticated user from JWT token.

    Args:
        credentials: HTTP bearer credentials
        db: Database session

    Returns:
        Current user

    Raises:
        HTTPException: If the token is invalid, revoked or its user is gone
    """
    user = await AuthService(db).get_current_user(credentials.credentials)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    set_user_context(user.id)
    return user


async def require_advisor(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Require the advisor role."""
    if not current_user.is_advisor:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Advisor access required",
        )
    return current_user


async def require_customer(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Require the customer role."""
    if not current_user.is_customer:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Customer access required",
        )
    return current_user
