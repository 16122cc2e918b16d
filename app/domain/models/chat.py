"""Chat payloads exchanged over realtime channels."""

import time
from datetime import datetime

from pydantic import BaseModel, Field

from app.persistence.models.user import ROLE_CUSTOMER


class ChatAuthor(BaseModel):
    """Author display fields joined onto a message."""

    id: int
    email: str
    display_name: str | None = None
    role: str


class ChatMessage(BaseModel):
    """A message as delivered to chat participants."""

    id: int
    content: str
    author_id: int
    contract_id: int | None = None
    created_at: datetime
    author: ChatAuthor
    # True when author fields are placeholders because enrichment failed
    is_fallback: bool = False

    @classmethod
    def from_orm_message(cls, message) -> "ChatMessage":
        author = message.author
        return cls(
            id=message.id,
            content=message.content,
            author_id=message.author_id,
            contract_id=message.contract_id,
            created_at=message.created_at,
            author=ChatAuthor(
                id=author.id,
                email=author.email,
                display_name=author.display_name,
                role=author.role,
            ) if author is not None else placeholder_author(message.author_id),
            is_fallback=author is None,
        )


def placeholder_author(author_id: int) -> ChatAuthor:
    return ChatAuthor(id=author_id, email="Unknown", display_name="User", role=ROLE_CUSTOMER)


class MessageInsertEvent(BaseModel):
    """Raw row fields published when a message is inserted."""

    id: int
    content: str = ""
    author_id: int
    contract_id: int | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def to_fallback_message(self) -> ChatMessage:
        return ChatMessage(
            id=self.id,
            content=self.content,
            author_id=self.author_id,
            contract_id=self.contract_id,
            created_at=self.created_at,
            author=placeholder_author(self.author_id),
            is_fallback=True,
        )


class TypingEvent(BaseModel):
    """Ephemeral "is typing" signal; never persisted."""

    author_id: int
    author_name: str
    contract_id: int
    timestamp: int = Field(default_factory=lambda: int(time.time() * 1000))
