"""Chat service for contract-scoped messages."""

import logging

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.results import ErrorKind, ServiceResult
from app.domain.models.chat import ChatAuthor, ChatMessage
from app.domain.services.contract_service import ContractService
from app.infrastructure.realtime import RealtimeBroker, contract_messages_channel
from app.persistence.models.contract import ContractStatus
from app.persistence.models.message import Message
from app.persistence.models.user import User
from app.persistence.repositories.contract_repository import ContractRepository
from app.persistence.repositories.message_repository import MessageRepository
from app.settings import settings

logger = logging.getLogger(__name__)

MESSAGE_INSERT_EVENT = "INSERT"


class ChatService:
    """Service for reading, sending and deleting chat messages."""

    def __init__(self, session: AsyncSession, broker: RealtimeBroker | None = None) -> None:
        """Initialize chat service.

        Args:
            session: Database session
            broker: Realtime broker that receives message insert events
        """
        self.session = session
        self.broker = broker
        self.message_repo = MessageRepository(session)
        self.contract_repo = ContractRepository(session)

    async def fetch_history(
        self, contract_id: int, limit: int | None = None
    ) -> list[ChatMessage]:
        """Get the most recent messages of a contract, oldest first.

        Args:
            contract_id: Contract ID
            limit: Window size (defaults to CHAT_HISTORY_LIMIT)

        Returns:
            Up to ``limit`` newest messages in chronological order
        """
        if limit is None:
            limit = settings.chat_history_limit
        if limit <= 0:
            return []
        try:
            messages = await self.message_repo.list_recent(contract_id, limit)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to fetch history for contract {contract_id}: {e}")
            return []
        return [ChatMessage.from_orm_message(message) for message in messages]

    async def send_message(
        self, sender: User | None, content: str, contract_id: int
    ) -> ServiceResult[ChatMessage]:
        """Send a message on an approved contract.

        The content is stored as given; it is only checked for emptiness and
        length.
        """
        if sender is None:
            return ServiceResult.fail(ErrorKind.FORBIDDEN, "User not authenticated")
        if not content or not content.strip():
            return ServiceResult.fail(ErrorKind.VALIDATION, "Message content is required")
        if len(content) > settings.message_max_length:
            return ServiceResult.fail(
                ErrorKind.VALIDATION,
                f"Message exceeds {settings.message_max_length} characters",
            )

        try:
            contract = await self.contract_repo.get_with_relations(contract_id)
            if contract is None:
                return ServiceResult.fail(ErrorKind.NOT_FOUND, f"Contract {contract_id} not found")
            if not contract.is_participant(sender.id):
                return ServiceResult.fail(ErrorKind.FORBIDDEN, "Not a participant of this conversation")

            await ContractService(self.session, self.broker).expire_overdue(
                customer_id=contract.customer_id
            )
            contract = await self.contract_repo.get_with_relations(contract_id)
            if contract.status != ContractStatus.APPROVED.value:
                return ServiceResult.fail(
                    ErrorKind.INVALID_STATE,
                    f"Chat is closed: contract is {contract.status}",
                )

            message = await self.message_repo.create(
                content=content,
                author_id=sender.id,
                contract_id=contract_id,
            )
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to send message on contract {contract_id}: {e}")
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, "Message could not be sent, please retry")

        await self._publish_insert(message)
        try:
            enriched = await self.message_repo.get_with_author(message.id)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to reload message {message.id}: {e}")
            enriched = None
        if enriched is None:
            return ServiceResult.ok(ChatMessage(
                id=message.id,
                content=message.content,
                author_id=message.author_id,
                contract_id=message.contract_id,
                created_at=message.created_at,
                author=ChatAuthor(
                    id=sender.id,
                    email=sender.email,
                    display_name=sender.display_name,
                    role=sender.role,
                ),
            ))
        return ServiceResult.ok(ChatMessage.from_orm_message(enriched))

    async def delete_message(self, message_id: int, actor: User) -> ServiceResult[None]:
        """Hard-delete a message; only its author may delete it."""
        try:
            message = await self.message_repo.get_by_id(message_id)
            if message is None:
                return ServiceResult.fail(ErrorKind.NOT_FOUND, f"Message {message_id} not found")
            if message.author_id != actor.id:
                return ServiceResult.fail(ErrorKind.FORBIDDEN, "Only the author can delete a message")
            await self.message_repo.delete(message_id)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to delete message {message_id}: {e}")
            return ServiceResult.fail(ErrorKind.UNAVAILABLE, "Message could not be deleted, please retry")

        logger.info(f"Message deleted: message_id={message_id}, actor_id={actor.id}")
        return ServiceResult.ok()

    async def _publish_insert(self, message: Message) -> None:
        if self.broker is None:
            return
        payload = {
            "id": message.id,
            "content": message.content,
            "author_id": message.author_id,
            "contract_id": message.contract_id,
            "created_at": message.created_at.isoformat(),
        }
        try:
            await self.broker.publish(
                contract_messages_channel(message.contract_id), MESSAGE_INSERT_EVENT, payload
            )
        except RedisError as e:
            # The row is stored; peers will see it on their next history fetch
            logger.warning(f"Failed to publish message {message.id}: {e}")
