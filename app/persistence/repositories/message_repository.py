"""Message repository."""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from app.persistence.models.message import Message
from app.persistence.repositories.base import BaseRepository


class MessageRepository(BaseRepository[Message]):
    """Repository for Message entities."""

    def __init__(self, session: AsyncSession):
        """Initialize message repository."""
        super().__init__(Message, session)

    async def get_with_author(self, message_id: int) -> Message | None:
        """Get a single message with its author joined."""
        stmt = (
            select(Message)
            .options(selectinload(Message.author))
            .where(Message.id == message_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_recent(self, contract_id: int, limit: int) -> list[Message]:
        """Get the most recent messages of a contract in chronological order.

        Queries newest-first bounded by ``limit`` and reverses, so the window
        always sits at the end of the conversation.
        """
        stmt = (
            select(Message)
            .options(selectinload(Message.author))
            .where(Message.contract_id == contract_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        messages = list(result.scalars().all())
        messages.reverse()
        return messages
