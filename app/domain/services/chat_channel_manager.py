"""Realtime chat channels: live message delivery and typing presence."""

import logging
from typing import Any, Awaitable, Callable

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.domain.models.chat import ChatMessage, MessageInsertEvent, TypingEvent
from app.domain.services.chat_service import MESSAGE_INSERT_EVENT
from app.infrastructure.realtime import (
    RealtimeBroker,
    Subscription,
    contract_messages_channel,
    contract_typing_channel,
)
from app.persistence.models.user import User
from app.persistence.repositories.message_repository import MessageRepository

logger = logging.getLogger(__name__)

TYPING_EVENT = "typing"

MessageCallback = Callable[[ChatMessage], Awaitable[None] | None]
TypingCallback = Callable[[TypingEvent], Awaitable[None] | None]


async def _call(callback, value) -> None:
    result = callback(value)
    if hasattr(result, "__await__"):
        await result


class ChatChannelManager:
    """Shared manager for contract-scoped chat subscriptions.

    Built once at startup; each subscription it hands out must be released
    with ``Subscription.unsubscribe()`` by its owner.
    """

    def __init__(
        self,
        broker: RealtimeBroker,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self.broker = broker
        self.session_factory = session_factory

    async def subscribe_to_contract(
        self, contract_id: int, on_message: MessageCallback
    ) -> Subscription:
        """Deliver each message inserted on a contract, with author joined.

        The raw insert event is only trusted for the row id; author fields
        come from a fresh read. If that read fails a placeholder author is
        used so delivery never stalls.
        """
        async def handle(event: str, payload: dict[str, Any]) -> None:
            try:
                insert = MessageInsertEvent.model_validate(payload)
            except ValidationError as e:
                logger.warning(f"Dropping malformed message event on contract {contract_id}: {e}")
                return
            if insert.contract_id is not None and insert.contract_id != contract_id:
                return
            await _call(on_message, await self._enrich(insert))

        return await self.broker.subscribe(
            contract_messages_channel(contract_id), handle, event=MESSAGE_INSERT_EVENT
        )

    async def notify_typing(self, sender: User | None, display_name: str, contract_id: int) -> None:
        """Broadcast that ``sender`` is composing a message. Best effort."""
        if sender is None:
            return
        event = TypingEvent(
            author_id=sender.id,
            author_name=display_name or sender.display_name or sender.email,
            contract_id=contract_id,
        )
        try:
            await self.broker.publish(
                contract_typing_channel(contract_id), TYPING_EVENT, event.model_dump()
            )
        except Exception as e:
            logger.debug(f"Typing broadcast failed for contract {contract_id}: {e}")

    async def subscribe_to_typing(
        self, on_event: TypingCallback, contract_id: int
    ) -> Subscription:
        """Deliver typing events for one contract."""
        async def handle(event: str, payload: dict[str, Any]) -> None:
            try:
                typing_event = TypingEvent.model_validate(payload)
            except ValidationError:
                logger.debug(f"Dropping malformed typing event on contract {contract_id}")
                return
            if typing_event.contract_id != contract_id:
                return
            await _call(on_event, typing_event)

        return await self.broker.subscribe(
            contract_typing_channel(contract_id), handle, event=TYPING_EVENT
        )

    async def _enrich(self, insert: MessageInsertEvent) -> ChatMessage:
        try:
            async with self.session_factory() as session:
                message = await MessageRepository(session).get_with_author(insert.id)
                if message is not None:
                    return ChatMessage.from_orm_message(message)
        except SQLAlchemyError as e:
            logger.warning(f"Failed to enrich message {insert.id}: {e}")
        return insert.to_fallback_message()
