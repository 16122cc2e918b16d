"""Contract schemas."""

from datetime import datetime

from pydantic import BaseModel

from app.api.schemas.plan import PlanSummary


class ContractRequest(BaseModel):
    """Contract request by a customer."""

    plan_id: int
    customer_notes: str | None = None


class ContractDecision(BaseModel):
    """Advisor decision on a pending contract."""

    advisor_notes: str | None = None


class UserSummary(BaseModel):
    """Participant fields embedded in a contract."""

    id: int
    email: str
    display_name: str | None = None
    phone: str | None = None

    class Config:
        from_attributes = True


class ContractResponse(BaseModel):
    """Contract response."""

    id: int
    customer_id: int
    plan_id: int
    advisor_id: int | None = None
    status: str
    requested_at: datetime
    decided_at: datetime | None = None
    expires_at: datetime | None = None
    duration_minutes: int | None = None
    customer_notes: str | None = None
    advisor_notes: str | None = None
    plan: PlanSummary | None = None
    customer: UserSummary | None = None
    advisor: UserSummary | None = None

    class Config:
        from_attributes = True


class AdvisorStatsResponse(BaseModel):
    """Advisor decision counts."""

    total: int
    approved: int
    rejected: int
    expired: int
    pending: int
