"""Database models."""

from app.persistence.models.contract import Contract, ContractStatus
from app.persistence.models.message import Message
from app.persistence.models.plan import Plan
from app.persistence.models.user import User

__all__ = [
    "User",
    "Plan",
    "Contract",
    "ContractStatus",
    "Message",
]
