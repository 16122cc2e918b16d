"""Authentication service: sign-up, sign-in, sign-out, passwords and session lookup."""

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

from redis.exceptions import RedisError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import create_access_token, decode_access_token
from app.core.password import hash_password, verify_password
from app.core.results import ErrorKind, ServiceResult
from app.infrastructure.realtime import RealtimeBroker, Subscription, auth_state_channel
from app.infrastructure.redis import RedisClient, redis_client
from app.persistence.models.user import USER_ROLES, User
from app.persistence.repositories.user_repository import UserRepository
from app.settings import settings

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
PASSWORD_RESET_PURPOSE = "password_reset"

_INVALID_CREDENTIALS = "Invalid email or password"
_INVALID_RESET_TOKEN = "This reset link is invalid or has expired"


@dataclass
class AuthSession:
    """Issued access token and the signed-in user."""
    access_token: str
    user: User
    token_type: str = "bearer"


def _revoked_key(jti: str) -> str:
    return f"revoked-token:{jti}"


def _password_fingerprint(hashed_password: str) -> str:
    # Changes whenever the password does, so a reset token works once
    return hashlib.sha256(hashed_password.encode()).hexdigest()[:16]


# Revoked token ids (jti -> expiry timestamp) used while Redis is disabled
_local_revocations: dict[str, float] = {}


class AuthService:
    """Service for account creation and token-based sessions.

    Credentials are verified against bcrypt hashes only.
    """

    def __init__(
        self,
        session: AsyncSession,
        broker: RealtimeBroker | None = None,
        redis: RedisClient | None = None,
    ) -> None:
        """Initialize auth service.

        Args:
            session: Database session
            broker: Realtime broker for auth state events (optional)
            redis: Redis client holding revoked token ids
        """
        self.session = session
        self.broker = broker
        self.redis = redis or redis_client
        self.user_repo = UserRepository(session)

    async def sign_up(
        self,
        email: str,
        password: str,
        role: str,
        display_name: str | None = None,
        phone: str | None = None,
    ) -> ServiceResult[User]:
        """Register a customer or advisor account."""
        email = (email or "").strip().lower()
        if not email or "@" not in email:
            return ServiceResult.fail(ErrorKind.VALIDATION, "A valid email is required")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            return ServiceResult.fail(
                ErrorKind.VALIDATION,
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            )
        if role not in USER_ROLES:
            return ServiceResult.fail(ErrorKind.VALIDATION, f"Role must be one of: {', '.join(USER_ROLES)}")

        try:
            if await self.user_repo.get_by_email(email):
                return ServiceResult.fail(ErrorKind.VALIDATION, "An account with this email already exists")
            user = await self.user_repo.create(
                email=email,
                hashed_password=hash_password(password),
                role=role,
                display_name=(display_name or "").strip() or None,
                phone=(phone or "").strip() or None,
            )
        except IntegrityError:
            await self.session.rollback()
            return ServiceResult.fail(ErrorKind.VALIDATION, "An account with this email already exists")
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Sign-up failed for {email}: {e}")
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, "Could not create the account, please retry")

        logger.info(f"User registered: user_id={user.id}, role={role}")
        return ServiceResult.ok(user)

    async def sign_in(self, email: str, password: str) -> ServiceResult[AuthSession]:
        """Verify credentials and issue an access token."""
        try:
            user = await self.user_repo.get_by_email(email or "")
        except SQLAlchemyError as e:
            logger.error(f"Sign-in lookup failed: {e}")
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, "Sign-in is unavailable, please retry")

        if user is None or not verify_password(password or "", user.hashed_password):
            return ServiceResult.fail(ErrorKind.FORBIDDEN, _INVALID_CREDENTIALS)
        if not user.is_active:
            return ServiceResult.fail(ErrorKind.FORBIDDEN, "This account is disabled")

        token = create_access_token(data={"sub": str(user.id), "role": user.role})
        await self._publish_state(user.id, SIGNED_IN)
        return ServiceResult.ok(AuthSession(access_token=token, user=user))

    async def sign_out(self, token: str) -> ServiceResult[None]:
        """Revoke a token until it would have expired."""
        payload = decode_access_token(token)
        if payload is None:
            return ServiceResult.ok()

        jti = payload.get("jti")
        exp = payload.get("exp")
        if jti and exp:
            ttl = int(exp - datetime.now(timezone.utc).timestamp())
            if ttl > 0 and not self.redis.is_available:
                _local_revocations[jti] = float(exp)
            elif ttl > 0:
                try:
                    await self.redis.set(_revoked_key(jti), "1", ttl=ttl)
                except RedisError as e:
                    logger.warning(f"Could not record token revocation: {e}")
                    return ServiceResult.fail(ErrorKind.UNAVAILABLE, "Sign-out could not be completed, please retry")

        user_id = payload.get("sub")
        if user_id and str(user_id).isdigit():
            await self._publish_state(int(user_id), SIGNED_OUT)
        return ServiceResult.ok()

    async def update_password(
        self, user: User, current_password: str, new_password: str
    ) -> ServiceResult[None]:
        """Change the password of a signed-in user after re-checking the current one."""
        if not verify_password(current_password or "", user.hashed_password):
            return ServiceResult.fail(ErrorKind.FORBIDDEN, "Current password is incorrect")
        return await self._set_password(user.id, new_password)

    async def request_password_reset(self, email: str) -> ServiceResult[str | None]:
        """Issue a single-use password reset token for an account.

        Delivering the token (usually by email) is up to the caller. Unknown or
        disabled accounts succeed with no token so the response does not reveal
        which emails are registered.
        """
        try:
            user = await self.user_repo.get_by_email(email or "")
        except SQLAlchemyError as e:
            logger.error(f"Password reset lookup failed: {e}")
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, "Password reset is unavailable, please retry")

        if user is None or not user.is_active:
            logger.info("Password reset requested for an unknown or disabled account")
            return ServiceResult.ok(None)

        token = create_access_token(
            data={
                "sub": str(user.id),
                "purpose": PASSWORD_RESET_PURPOSE,
                "pwd": _password_fingerprint(user.hashed_password),
            },
            expires_delta=timedelta(minutes=settings.password_reset_expire_minutes),
        )
        logger.info(f"Password reset token issued: user_id={user.id}")
        return ServiceResult.ok(token)

    async def reset_password(self, token: str, new_password: str) -> ServiceResult[None]:
        """Set a new password using a token from ``request_password_reset``."""
        payload = decode_access_token(token or "")
        if payload is None or payload.get("purpose") != PASSWORD_RESET_PURPOSE:
            return ServiceResult.fail(ErrorKind.FORBIDDEN, _INVALID_RESET_TOKEN)

        try:
            user_id = int(payload.get("sub"))
            user = await self.user_repo.get_by_id(user_id)
        except (TypeError, ValueError):
            return ServiceResult.fail(ErrorKind.FORBIDDEN, _INVALID_RESET_TOKEN)
        except SQLAlchemyError as e:
            logger.error(f"Password reset lookup failed: {e}")
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, "Password reset is unavailable, please retry")

        if (
            user is None
            or not user.is_active
            or payload.get("pwd") != _password_fingerprint(user.hashed_password)
        ):
            return ServiceResult.fail(ErrorKind.FORBIDDEN, _INVALID_RESET_TOKEN)
        return await self._set_password(user.id, new_password)

    async def get_current_user(self, token: str) -> User | None:
        """Resolve an access token to an active user, or None."""
        payload = decode_access_token(token)
        if payload is None:
            return None

        if payload.get("purpose"):
            return None

        jti = payload.get("jti")
        if jti and self._locally_revoked(jti):
            return None
        if jti and self.redis.is_available:
            try:
                if await self.redis.exists(_revoked_key(jti)):
                    return None
            except RedisError as e:
                logger.warning(f"Token revocation check failed: {e}")

        try:
            user_id = int(payload.get("sub"))
        except (TypeError, ValueError):
            return None

        try:
            user = await self.user_repo.get_by_id(user_id)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to load user {user_id}: {e}")
            return None
        if user is None or not user.is_active:
            return None
        return user

    async def on_auth_state_changed(
        self,
        user_id: int,
        callback: Callable[[str, dict[str, Any]], Awaitable[None] | None],
    ) -> Subscription:
        """Subscribe to SIGNED_IN / SIGNED_OUT events of one user.

        Raises:
            RuntimeError: If the service was built without a broker
        """
        if self.broker is None:
            raise RuntimeError("Auth state events need a realtime broker")
        return await self.broker.subscribe(auth_state_channel(user_id), callback)

    @staticmethod
    def _locally_revoked(jti: str) -> bool:
        now = datetime.now(timezone.utc).timestamp()
        for key, expires in list(_local_revocations.items()):
            if expires <= now:
                del _local_revocations[key]
        return jti in _local_revocations

    async def _publish_state(self, user_id: int, state: str) -> None:
        if self.broker is None:
            return
        try:
            await self.broker.publish(auth_state_channel(user_id), state, {"user_id": user_id})
        except RedisError as e:
            logger.warning(f"Failed to publish auth state for user {user_id}: {e}")

    async def _set_password(self, user_id: int, new_password: str) -> ServiceResult[None]:
        if len(new_password or "") < MIN_PASSWORD_LENGTH:
            return ServiceResult.fail(
                ErrorKind.VALIDATION,
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            )
        try:
            await self.user_repo.update(user_id, hashed_password=hash_password(new_password))
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to update password of user {user_id}: {e}")
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, "Could not update the password, please retry")
        logger.info(f"Password updated: user_id={user_id}")
        return ServiceResult.ok()
