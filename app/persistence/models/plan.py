"""Mobile plan catalog model."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from app.persistence.database import Base

# Allowance sentinel for data, minutes and SMS
UNLIMITED = "UNLIMITED"

SEGMENT_BASIC = "basic"
SEGMENT_MID = "mid"
SEGMENT_PREMIUM = "premium"
PLAN_SEGMENTS = (SEGMENT_BASIC, SEGMENT_MID, SEGMENT_PREMIUM)


class Plan(Base):
    """Service plan offered to customers.

    Plans are never hard-deleted; deactivation clears ``is_active`` so that
    existing contracts keep their plan reference.
    """

    __tablename__ = "plans"

    id = Column(Integer, primary_key=True, index=True)
    advisor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    # Allowances: a quantity such as "5GB" / "300", or UNLIMITED
    data_allowance = Column(String(50), nullable=False)
    minutes_allowance = Column(String(50), nullable=False)
    sms_allowance = Column(String(50), nullable=False)

    # Network speed tiers
    speed_4g = Column(String(50), nullable=False)
    speed_5g = Column(String(50), nullable=True)

    # Feature flags
    free_messaging = Column(Boolean, default=False, nullable=False)
    free_social_media = Column(Boolean, default=False, nullable=False)
    international_calling = Column(Boolean, default=False, nullable=False)
    roaming = Column(Boolean, default=False, nullable=False)

    segment = Column(String(20), nullable=False, default=SEGMENT_BASIC, index=True)  # basic, mid, premium
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    image_url = Column(Text, nullable=True)
    image_path = Column(String(512), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    advisor = relationship("User", back_populates="plans")
    contracts = relationship("Contract", back_populates="plan")

    def __repr__(self) -> str:
        return f"<Plan(id={self.id}, name={self.name}, price={self.price}, active={self.is_active})>"
