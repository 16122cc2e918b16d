"""Contract lifecycle routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    get_broker,
    get_current_user,
    raise_for_result,
    require_advisor,
    require_customer,
)
from app.api.schemas.contract import (
    AdvisorStatsResponse,
    ContractDecision,
    ContractRequest,
    ContractResponse,
)
from app.domain.services.contract_service import ContractService
from app.infrastructure.realtime import RealtimeBroker
from app.persistence.database import get_db
from app.persistence.models.user import User

router = APIRouter()


def _contract_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    broker: Annotated[RealtimeBroker, Depends(get_broker)],
) -> ContractService:
    return ContractService(db, broker)


@router.post("", response_model=ContractResponse, status_code=status.HTTP_201_CREATED)
async def request_contract(
    request_data: ContractRequest,
    customer: Annotated[User, Depends(require_customer)],
    service: Annotated[ContractService, Depends(_contract_service)],
) -> ContractResponse:
    """Request a plan; refused while another request or active plan exists."""
    result = await service.request_contract(customer, request_data.plan_id, request_data.customer_notes)
    if not result.success:
        raise_for_result(result)
    return ContractResponse.model_validate(result.value)


@router.get("", response_model=list[ContractResponse])
async def list_contracts(
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[ContractService, Depends(_contract_service)],
) -> list[ContractResponse]:
    """Customers get their own contracts; advisors get the ones they decided."""
    if current_user.is_advisor:
        contracts = await service.list_advisor_contracts(current_user.id)
    else:
        contracts = await service.list_customer_contracts(current_user.id)
    return [ContractResponse.model_validate(contract) for contract in contracts]


@router.get("/pending", response_model=list[ContractResponse])
async def list_pending_contracts(
    advisor: Annotated[User, Depends(require_advisor)],
    service: Annotated[ContractService, Depends(_contract_service)],
) -> list[ContractResponse]:
    """Advisor work queue, oldest first."""
    contracts = await service.list_pending_contracts()
    return [ContractResponse.model_validate(contract) for contract in contracts]


@router.get("/stats", response_model=AdvisorStatsResponse)
async def get_advisor_stats(
    advisor: Annotated[User, Depends(require_advisor)],
    service: Annotated[ContractService, Depends(_contract_service)],
) -> AdvisorStatsResponse:
    result = await service.get_advisor_stats(advisor.id)
    if not result.success:
        raise_for_result(result)
    return AdvisorStatsResponse(**result.value)


@router.get("/{contract_id}", response_model=ContractResponse)
async def get_contract(
    contract_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[ContractService, Depends(_contract_service)],
) -> ContractResponse:
    """Get a contract visible to the caller.

    Customers see their own contracts; advisors see every contract.
    """
    contract = await service.get_contract(contract_id)
    if contract is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Contract {contract_id} not found")
    if current_user.is_customer and contract.customer_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized to view this contract")
    return ContractResponse.model_validate(contract)


@router.post("/{contract_id}/approve", response_model=ContractResponse)
async def approve_contract(
    contract_id: int,
    decision: ContractDecision,
    advisor: Annotated[User, Depends(require_advisor)],
    service: Annotated[ContractService, Depends(_contract_service)],
) -> ContractResponse:
    result = await service.approve_contract(contract_id, advisor, decision.advisor_notes)
    if not result.success:
        raise_for_result(result)
    return ContractResponse.model_validate(result.value)


@router.post("/{contract_id}/reject", response_model=ContractResponse)
async def reject_contract(
    contract_id: int,
    decision: ContractDecision,
    advisor: Annotated[User, Depends(require_advisor)],
    service: Annotated[ContractService, Depends(_contract_service)],
) -> ContractResponse:
    """Reject a pending contract; ``advisor_notes`` carries the required reason."""
    result = await service.reject_contract(contract_id, advisor, decision.advisor_notes)
    if not result.success:
        raise_for_result(result)
    return ContractResponse.model_validate(result.value)


@router.post("/{contract_id}/cancel", response_model=ContractResponse)
async def cancel_contract(
    contract_id: int,
    customer: Annotated[User, Depends(require_customer)],
    service: Annotated[ContractService, Depends(_contract_service)],
) -> ContractResponse:
    result = await service.cancel_contract(contract_id, customer)
    if not result.success:
        raise_for_result(result)
    return ContractResponse.model_validate(result.value)
