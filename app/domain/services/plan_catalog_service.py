"""Plan catalog service: browsing for customers, management for advisors."""

import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.results import ErrorKind, ServiceResult
from app.domain.models.plan_fields import PlanFields, PlanUpdateFields
from app.infrastructure.plan_image_storage import PlanImageStorage, PlanImageStorageError
from app.persistence.models.plan import PLAN_SEGMENTS, Plan
from app.persistence.models.user import User
from app.persistence.repositories.plan_repository import PlanRepository

logger = logging.getLogger(__name__)


def format_validation_error(error: ValidationError) -> str:
    """Render a pydantic validation error as one human-readable sentence."""
    parts = []
    for item in error.errors():
        field = ".".join(str(loc) for loc in item.get("loc", ())) or "input"
        message = item.get("msg", "is invalid")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        parts.append(f"{field}: {message}")
    return "; ".join(parts)


class PlanCatalogService:
    """Service for the plan catalog.

    Read operations fail open to an empty result; write operations return a
    ServiceResult carrying the persisted plan or a readable error.
    """

    def __init__(self, session: AsyncSession, image_storage: PlanImageStorage | None = None) -> None:
        """Initialize plan catalog service.

        Args:
            session: Database session
            image_storage: Blob storage for plan images (created lazily if omitted)
        """
        self.session = session
        self.plan_repo = PlanRepository(session)
        self._image_storage = image_storage

    @property
    def image_storage(self) -> PlanImageStorage:
        if self._image_storage is None:
            self._image_storage = PlanImageStorage()
        return self._image_storage

    async def list_active_plans(self) -> list[Plan]:
        """List active plans, cheapest first."""
        try:
            return await self.plan_repo.list_active()
        except SQLAlchemyError as e:
            logger.warning(f"Failed to list active plans: {e}")
            return []

    async def search_plans(self, query: str) -> list[Plan]:
        """Case-insensitive name search among active plans, cheapest first."""
        query = (query or "").strip()
        try:
            return await self.plan_repo.list_active(name_query=query or None)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to search plans for {query!r}: {e}")
            return []

    async def filter_by_segment(self, segment: str) -> list[Plan]:
        """Active plans of one segment, cheapest first."""
        if segment not in PLAN_SEGMENTS:
            return []
        try:
            return await self.plan_repo.list_active(segment=segment)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to filter plans by segment {segment}: {e}")
            return []

    async def get_plan(self, plan_id: int) -> Plan | None:
        try:
            return await self.plan_repo.get_by_id(plan_id)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to load plan {plan_id}: {e}")
            return None

    async def list_advisor_plans(self, advisor_id: int) -> list[Plan]:
        """All plans owned by an advisor, including deactivated ones."""
        try:
            return await self.plan_repo.list_by_advisor(advisor_id)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to list plans for advisor {advisor_id}: {e}")
            return []

    async def create_plan(self, advisor: User, fields: dict[str, Any]) -> ServiceResult[Plan]:
        """Create a plan owned by the given advisor.

        Args:
            advisor: Advisor creating the plan
            fields: Raw plan fields

        Returns:
            ServiceResult with the persisted plan
        """
        if not advisor.is_advisor:
            return ServiceResult.fail(ErrorKind.FORBIDDEN, "Only advisors can manage plans")
        try:
            validated = PlanFields.model_validate(fields)
        except ValidationError as e:
            return ServiceResult.fail(ErrorKind.VALIDATION, format_validation_error(e))

        try:
            plan = await self.plan_repo.create(advisor_id=advisor.id, **validated.model_dump())
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to create plan for advisor {advisor.id}: {e}")
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, "Could not save the plan, please retry")

        logger.info(f"Plan created: plan_id={plan.id}, advisor_id={advisor.id}")
        return ServiceResult.ok(plan)

    async def update_plan(self, plan_id: int, fields: dict[str, Any]) -> ServiceResult[Plan]:
        """Apply a partial update to a plan (last write wins)."""
        try:
            validated = PlanUpdateFields.model_validate(fields)
        except ValidationError as e:
            return ServiceResult.fail(ErrorKind.VALIDATION, format_validation_error(e))

        changes = validated.model_dump(exclude_unset=True)
        # Explicit nulls only make sense for the optional 5G tier
        changes = {
            key: value for key, value in changes.items()
            if value is not None or key == "speed_5g"
        }
        try:
            plan = await self.plan_repo.update(plan_id, **changes)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to update plan {plan_id}: {e}")
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, "Could not save the plan, please retry")

        if plan is None:
            return ServiceResult.fail(ErrorKind.NOT_FOUND, f"Plan {plan_id} not found")
        return ServiceResult.ok(plan)

    async def deactivate_plan(self, plan_id: int) -> ServiceResult[Plan]:
        """Soft-delete a plan. Deactivating an inactive plan succeeds."""
        try:
            plan = await self.plan_repo.update(plan_id, is_active=False)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to deactivate plan {plan_id}: {e}")
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, "Could not deactivate the plan, please retry")

        if plan is None:
            return ServiceResult.fail(ErrorKind.NOT_FOUND, f"Plan {plan_id} not found")
        logger.info(f"Plan deactivated: plan_id={plan_id}")
        return ServiceResult.ok(plan)

    async def upload_plan_image(
        self,
        plan_id: int,
        data: bytes,
        content_type: str | None,
        filename: str | None = None,
    ) -> ServiceResult[Plan]:
        """Store a promotional image and attach it to the plan.

        A previously stored image is removed after the new one is attached.
        """
        plan = await self.get_plan(plan_id)
        if plan is None:
            return ServiceResult.fail(ErrorKind.NOT_FOUND, f"Plan {plan_id} not found")

        is_valid, error, _ = self.image_storage.validate_file(content_type, len(data), filename)
        if not is_valid:
            return ServiceResult.fail(ErrorKind.VALIDATION, error)

        previous_path = plan.image_path
        try:
            stored = await self.image_storage.upload(plan_id, data, content_type, filename)
        except PlanImageStorageError as e:
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, str(e))

        try:
            plan = await self.plan_repo.update(
                plan_id, image_url=stored["public_url"], image_path=stored["path"]
            )
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to attach image to plan {plan_id}: {e}")
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, "Could not save the plan, please retry")

        if previous_path and previous_path != stored["path"]:
            try:
                await self.image_storage.remove([previous_path])
            except PlanImageStorageError as e:
                logger.warning(f"Could not remove replaced image {previous_path}: {e}")
        return ServiceResult.ok(plan)

    async def remove_plan_image(self, plan_id: int) -> ServiceResult[Plan]:
        """Delete the plan's stored image and clear its image fields."""
        plan = await self.get_plan(plan_id)
        if plan is None:
            return ServiceResult.fail(ErrorKind.NOT_FOUND, f"Plan {plan_id} not found")
        if not plan.image_path:
            return ServiceResult.ok(plan)

        try:
            await self.image_storage.remove([plan.image_path])
        except PlanImageStorageError as e:
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, str(e))

        try:
            plan = await self.plan_repo.update(plan_id, image_url=None, image_path=None)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to clear image of plan {plan_id}: {e}")
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, "Could not save the plan, please retry")
        return ServiceResult.ok(plan)
