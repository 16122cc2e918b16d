"""Plan promotional image storage using Google Cloud Storage."""

import asyncio
import logging
import time

from google.cloud import storage
from google.cloud.exceptions import GoogleCloudError, NotFound

from app.settings import settings

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
}
ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg", "webp"}


class PlanImageStorageError(Exception):
    """Raised when a plan image cannot be validated, stored or removed."""
    pass


class PlanImageStorage:
    """Stores plan images in a public GCS bucket."""

    bucket_setting = "GCS_PLAN_IMAGES_BUCKET"
    cache_control = "public, max-age=31536000"

    def __init__(self, bucket_name: str | None = None, client: storage.Client | None = None):
        """Initialize the storage service.

        Args:
            bucket_name: Bucket override (defaults to GCS_PLAN_IMAGES_BUCKET)
            client: Pre-built GCS client (created lazily otherwise)
        """
        self._bucket_name = bucket_name or self.default_bucket_name()
        self._client = client
        self._bucket: storage.Bucket | None = None

    @property
    def client(self) -> storage.Client:
        """Lazy-load the GCS client."""
        if self._client is None:
            self._client = storage.Client(project=settings.gcp_project_id)
        return self._client

    @property
    def bucket(self) -> storage.Bucket:
        """Get the configured bucket."""
        if self._bucket is None:
            if not self._bucket_name:
                raise PlanImageStorageError(f"{self.bucket_setting} is not configured")
            self._bucket = self.client.bucket(self._bucket_name)
        return self._bucket

    def default_bucket_name(self) -> str | None:
        return settings.gcs_plan_images_bucket

    def build_path(self, owner_id: int, extension: str) -> str:
        """Blob path for a plan image: plans/{owner_id}-{millis}.{ext}"""
        return f"plans/{owner_id}-{int(time.time() * 1000)}.{extension}"

    def get_public_url(self, path: str) -> str:
        return f"https://storage.googleapis.com/{self._bucket_name}/{path}"

    def validate_file(
        self,
        content_type: str | None,
        file_size: int,
        filename: str | None = None,
    ) -> tuple[bool, str | None, str | None]:
        """Validate file type and size.

        Returns:
            Tuple of (is_valid, error_message, extension)
        """
        if file_size == 0:
            return False, "File is empty", None

        if file_size > settings.plan_image_max_bytes:
            return (
                False,
                f"File size {file_size} bytes exceeds maximum of {settings.plan_image_max_bytes} bytes",
                None,
            )

        extension = None
        if content_type and content_type in ALLOWED_CONTENT_TYPES:
            extension = ALLOWED_CONTENT_TYPES[content_type]
        elif filename:
            ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else None
            if ext in ALLOWED_EXTENSIONS:
                extension = "jpg" if ext == "jpeg" else ext

        if not extension:
            allowed = ", ".join(ALLOWED_CONTENT_TYPES.keys())
            return False, f"Invalid file type. Allowed types: {allowed}", None

        return True, None, extension

    async def upload(
        self,
        owner_id: int,
        data: bytes,
        content_type: str | None,
        filename: str | None = None,
    ) -> dict:
        """Upload an image for a plan (or other owner).

        Returns:
            Dict with path and public_url

        Raises:
            PlanImageStorageError: If validation or upload fails
        """
        is_valid, error, extension = self.validate_file(content_type, len(data), filename)
        if not is_valid:
            raise PlanImageStorageError(error)

        path = self.build_path(owner_id, extension)
        upload_type = content_type if content_type in ALLOWED_CONTENT_TYPES else f"image/{extension}"

        def _upload() -> None:
            blob = self.bucket.blob(path)
            blob.cache_control = self.cache_control
            blob.upload_from_string(data, content_type=upload_type)

        try:
            await asyncio.to_thread(_upload)
        except GoogleCloudError as e:
            logger.error(f"GCS upload failed for {owner_id}: {e}")
            raise PlanImageStorageError(f"Failed to upload image: {e}") from e

        logger.info(f"Uploaded image: owner_id={owner_id}, path={path}, size={len(data)}")
        return {"path": path, "public_url": self.get_public_url(path)}

    async def remove(self, paths: list[str]) -> None:
        """Remove stored images; missing blobs are ignored.

        Raises:
            PlanImageStorageError: If deletion fails
        """
        def _remove() -> None:
            for path in paths:
                try:
                    self.bucket.blob(path).delete()
                except NotFound:
                    logger.info(f"Image already absent: {path}")

        try:
            await asyncio.to_thread(_remove)
        except GoogleCloudError as e:
            logger.error(f"GCS delete failed: {e}")
            raise PlanImageStorageError(f"Failed to delete image: {e}") from e
