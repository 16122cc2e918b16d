"""API schemas package."""

from app.api.schemas.contract import (
    AdvisorStatsResponse,
    ContractDecision,
    ContractRequest,
    ContractResponse,
    UserSummary,
)
from app.api.schemas.message import MessageCreate, TypingRequest
from app.api.schemas.plan import PlanResponse, PlanSummary

__all__ = [
    "AdvisorStatsResponse",
    "ContractDecision",
    "ContractRequest",
    "ContractResponse",
    "MessageCreate",
    "PlanResponse",
    "PlanSummary",
    "TypingRequest",
    "UserSummary",
]
