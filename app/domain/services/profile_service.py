"""Profile service: display name, phone and profile photo of the signed-in user."""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.results import ErrorKind, ServiceResult
from app.infrastructure.plan_image_storage import PlanImageStorageError
from app.infrastructure.profile_photo_storage import ProfilePhotoStorage
from app.persistence.models.user import User
from app.persistence.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

MAX_DISPLAY_NAME_LENGTH = 255
MAX_PHONE_LENGTH = 50

_SAVE_FAILED = "Could not save the profile, please retry"


class ProfileService:
    """Service for editing a user's own profile."""

    def __init__(self, session: AsyncSession, photo_storage: ProfilePhotoStorage | None = None) -> None:
        self.session = session
        self.user_repo = UserRepository(session)
        self._photo_storage = photo_storage

    @property
    def photo_storage(self) -> ProfilePhotoStorage:
        if self._photo_storage is None:
            self._photo_storage = ProfilePhotoStorage()
        return self._photo_storage

    async def update_profile(
        self,
        user: User,
        display_name: str | None = None,
        phone: str | None = None,
    ) -> ServiceResult[User]:
        """Update display name and phone.

        ``None`` leaves a field unchanged; a blank string clears it.
        """
        changes: dict[str, str | None] = {}
        if display_name is not None:
            display_name = display_name.strip()
            if len(display_name) > MAX_DISPLAY_NAME_LENGTH:
                return ServiceResult.fail(
                    ErrorKind.VALIDATION,
                    f"Display name must be at most {MAX_DISPLAY_NAME_LENGTH} characters",
                )
            changes["display_name"] = display_name or None
        if phone is not None:
            phone = phone.strip()
            if len(phone) > MAX_PHONE_LENGTH:
                return ServiceResult.fail(
                    ErrorKind.VALIDATION, f"Phone must be at most {MAX_PHONE_LENGTH} characters"
                )
            changes["phone"] = phone or None

        if not changes:
            return ServiceResult.ok(user)
        return await self._save(user.id, **changes)

    async def upload_profile_photo(
        self,
        user: User,
        data: bytes,
        content_type: str | None,
        filename: str | None = None,
    ) -> ServiceResult[User]:
        """Store a profile photo and attach its public URL to the user.

        A photo stored under a different path (another extension) is removed
        once the new one is attached.
        """
        is_valid, error, _ = self.photo_storage.validate_file(content_type, len(data), filename)
        if not is_valid:
            return ServiceResult.fail(ErrorKind.VALIDATION, error)

        previous_path = user.photo_path
        try:
            stored = await self.photo_storage.upload(user.id, data, content_type, filename)
        except PlanImageStorageError as e:
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, str(e))

        result = await self._save(user.id, photo_url=stored["public_url"], photo_path=stored["path"])
        if result.success and previous_path and previous_path != stored["path"]:
            try:
                await self.photo_storage.remove([previous_path])
            except PlanImageStorageError as e:
                logger.warning(f"Could not remove replaced profile photo {previous_path}: {e}")
        return result

    async def remove_profile_photo(self, user: User) -> ServiceResult[User]:
        """Delete the stored photo and clear the user's photo fields."""
        if not user.photo_path:
            return ServiceResult.ok(user)

        try:
            await self.photo_storage.remove([user.photo_path])
        except PlanImageStorageError as e:
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, str(e))
        return await self._save(user.id, photo_url=None, photo_path=None)

    async def _save(self, user_id: int, **changes) -> ServiceResult[User]:
        try:
            user = await self.user_repo.update(user_id, **changes)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to update profile of user {user_id}: {e}")
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, _SAVE_FAILED)
        if user is None:
            return ServiceResult.fail(ErrorKind.NOT_FOUND, f"User {user_id} not found")
        logger.info(f"Profile updated: user_id={user_id}, fields={sorted(changes)}")
        return ServiceResult.ok(user)
