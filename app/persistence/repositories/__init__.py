"""Repository implementations."""

from app.persistence.repositories.base import BaseRepository
from app.persistence.repositories.contract_repository import ContractRepository
from app.persistence.repositories.message_repository import MessageRepository
from app.persistence.repositories.plan_repository import PlanRepository
from app.persistence.repositories.user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "UserRepository",
    "PlanRepository",
    "ContractRepository",
    "MessageRepository",
]
