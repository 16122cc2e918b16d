"""Profile photo storage using Google Cloud Storage."""

from app.infrastructure.plan_image_storage import PlanImageStorage
from app.settings import settings


class ProfilePhotoStorage(PlanImageStorage):
    """Stores one profile photo per user in the avatar bucket.

    The blob path only depends on the user and the extension, so a new upload
    of the same type overwrites the previous photo in place.
    """

    bucket_setting = "GCS_PROFILE_PHOTOS_BUCKET"
    cache_control = "no-cache"

    def default_bucket_name(self) -> str | None:
        return settings.gcs_profile_photos_bucket

    def build_path(self, owner_id: int, extension: str) -> str:
        """Blob path for a profile photo: profiles/{user_id}-profile.{ext}"""
        return f"profiles/{owner_id}-profile.{extension}"
