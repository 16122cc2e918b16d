"""Plan catalog routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_plan_image_storage, raise_for_result, require_advisor
from app.api.schemas.plan import PlanResponse
from app.domain.models.plan_fields import PlanFields, PlanUpdateFields
from app.domain.services.plan_catalog_service import PlanCatalogService
from app.infrastructure.plan_image_storage import PlanImageStorage
from app.persistence.database import get_db
from app.persistence.models.user import User

router = APIRouter()


def _plan_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    storage: Annotated[PlanImageStorage, Depends(get_plan_image_storage)],
) -> PlanCatalogService:
    return PlanCatalogService(db, image_storage=storage)


async def _owned_plan(service: PlanCatalogService, plan_id: int, advisor: User):
    plan = await service.get_plan(plan_id)
    if plan is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Plan {plan_id} not found")
    if plan.advisor_id != advisor.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not the owner of this plan")
    return plan


@router.get("", response_model=list[PlanResponse])
async def list_plans(
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[PlanCatalogService, Depends(_plan_service)],
    q: Annotated[str | None, Query(description="Case-insensitive name search")] = None,
    segment: Annotated[str | None, Query(description="basic, mid or premium")] = None,
) -> list[PlanResponse]:
    """List active plans, cheapest first."""
    if segment:
        plans = await service.filter_by_segment(segment)
    elif q:
        plans = await service.search_plans(q)
    else:
        plans = await service.list_active_plans()
    return [PlanResponse.model_validate(plan) for plan in plans]


@router.get("/mine", response_model=list[PlanResponse])
async def list_my_plans(
    advisor: Annotated[User, Depends(require_advisor)],
    service: Annotated[PlanCatalogService, Depends(_plan_service)],
) -> list[PlanResponse]:
    """List every plan owned by the advisor, including inactive ones."""
    plans = await service.list_advisor_plans(advisor.id)
    return [PlanResponse.model_validate(plan) for plan in plans]


@router.get("/{plan_id}", response_model=PlanResponse)
async def get_plan(
    plan_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[PlanCatalogService, Depends(_plan_service)],
) -> PlanResponse:
    plan = await service.get_plan(plan_id)
    if plan is None or (not plan.is_active and plan.advisor_id != current_user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Plan {plan_id} not found")
    return PlanResponse.model_validate(plan)


@router.post("", response_model=PlanResponse, status_code=status.HTTP_201_CREATED)
async def create_plan(
    fields: PlanFields,
    advisor: Annotated[User, Depends(require_advisor)],
    service: Annotated[PlanCatalogService, Depends(_plan_service)],
) -> PlanResponse:
    """Create a plan owned by the calling advisor."""
    result = await service.create_plan(advisor, fields.model_dump())
    if not result.success:
        raise_for_result(result)
    return PlanResponse.model_validate(result.value)


@router.patch("/{plan_id}", response_model=PlanResponse)
async def update_plan(
    plan_id: int,
    fields: PlanUpdateFields,
    advisor: Annotated[User, Depends(require_advisor)],
    service: Annotated[PlanCatalogService, Depends(_plan_service)],
) -> PlanResponse:
    """Partially update a plan."""
    await _owned_plan(service, plan_id, advisor)
    result = await service.update_plan(plan_id, fields.model_dump(exclude_unset=True))
    if not result.success:
        raise_for_result(result)
    return PlanResponse.model_validate(result.value)


@router.delete("/{plan_id}", response_model=PlanResponse)
async def deactivate_plan(
    plan_id: int,
    advisor: Annotated[User, Depends(require_advisor)],
    service: Annotated[PlanCatalogService, Depends(_plan_service)],
) -> PlanResponse:
    """Deactivate a plan; existing contracts keep referencing it."""
    await _owned_plan(service, plan_id, advisor)
    result = await service.deactivate_plan(plan_id)
    if not result.success:
        raise_for_result(result)
    return PlanResponse.model_validate(result.value)


@router.post("/{plan_id}/image", response_model=PlanResponse)
async def upload_plan_image(
    plan_id: int,
    advisor: Annotated[User, Depends(require_advisor)],
    service: Annotated[PlanCatalogService, Depends(_plan_service)],
    file: UploadFile = File(...),
) -> PlanResponse:
    """Upload or replace a plan's promotional image."""
    await _owned_plan(service, plan_id, advisor)
    data = await file.read()
    result = await service.upload_plan_image(plan_id, data, file.content_type, file.filename)
    if not result.success:
        raise_for_result(result)
    return PlanResponse.model_validate(result.value)


@router.delete("/{plan_id}/image", response_model=PlanResponse)
async def remove_plan_image(
    plan_id: int,
    advisor: Annotated[User, Depends(require_advisor)],
    service: Annotated[PlanCatalogService, Depends(_plan_service)],
) -> PlanResponse:
    await _owned_plan(service, plan_id, advisor)
    result = await service.remove_plan_image(plan_id)
    if not result.success:
        raise_for_result(result)
    return PlanResponse.model_validate(result.value)
