"""Contract model: a customer's request to subscribe to a plan."""

import enum
from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship

from app.persistence.database import Base


class ContractStatus(str, enum.Enum):
    """Contract lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


# A customer may hold at most one contract in these states
OPEN_STATUSES = (ContractStatus.PENDING.value, ContractStatus.APPROVED.value)

_OPEN_STATUS_PREDICATE = text("status IN ('pending', 'approved')")


class Contract(Base):
    """Contract request tracked through its approval lifecycle."""

    __tablename__ = "contracts"
    __table_args__ = (
        Index(
            "uq_contracts_one_open_per_customer",
            "customer_id",
            unique=True,
            postgresql_where=_OPEN_STATUS_PREDICATE,
            sqlite_where=_OPEN_STATUS_PREDICATE,
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("plans.id"), nullable=False, index=True)
    advisor_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default=ContractStatus.PENDING.value, index=True)
    requested_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    decided_at = Column(DateTime, nullable=True)  # approval or rejection time
    expires_at = Column(DateTime, nullable=True, index=True)
    duration_minutes = Column(Integer, nullable=True)
    customer_notes = Column(Text, nullable=True)
    advisor_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    plan = relationship("Plan", back_populates="contracts")
    customer = relationship("User", foreign_keys=[customer_id])
    advisor = relationship("User", foreign_keys=[advisor_id])
    messages = relationship("Message", back_populates="contract", cascade="all, delete-orphan")

    def is_participant(self, user_id: int) -> bool:
        """Whether the user is this contract's customer or its assigned advisor."""
        return user_id in (self.customer_id, self.advisor_id)

    def __repr__(self) -> str:
        return f"<Contract(id={self.id}, customer_id={self.customer_id}, plan_id={self.plan_id}, status={self.status})>"
