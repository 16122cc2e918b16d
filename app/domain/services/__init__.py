"""Domain services."""

from app.domain.services.auth_service import AuthService
from app.domain.services.chat_channel_manager import ChatChannelManager
from app.domain.services.chat_service import ChatService
from app.domain.services.contract_service import ContractService
from app.domain.services.plan_catalog_service import PlanCatalogService
from app.domain.services.profile_service import ProfileService

__all__ = [
    "AuthService",
    "ChatChannelManager",
    "ChatService",
    "ContractService",
    "PlanCatalogService",
    "ProfileService",
]
