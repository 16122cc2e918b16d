"""Chat message model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import relationship

from app.persistence.database import Base


class Message(Base):
    """Message exchanged between a customer and an advisor on a contract."""

    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_contract_created", "contract_id", "created_at", "id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    content = Column(Text, nullable=False)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    # NULL only for rows of the retired unscoped channel
    contract_id = Column(Integer, ForeignKey("contracts.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    author = relationship("User")
    contract = relationship("Contract", back_populates="messages")

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, contract_id={self.contract_id}, author_id={self.author_id})>"
