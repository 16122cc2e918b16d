"""Chat message schemas."""

from pydantic import BaseModel


class MessageCreate(BaseModel):
    """Message send request."""

    content: str


class TypingRequest(BaseModel):
    """Typing notification request."""

    display_name: str | None = None
