"""User model."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from app.persistence.database import Base

ROLE_CUSTOMER = "customer"
ROLE_ADVISOR = "advisor"
USER_ROLES = (ROLE_CUSTOMER, ROLE_ADVISOR)


class User(Base):
    """Application user, either a customer or a commercial advisor."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    photo_url = Column(Text, nullable=True)
    photo_path = Column(String(512), nullable=True)
    role = Column(String(50), nullable=False, default=ROLE_CUSTOMER)  # customer, advisor
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    plans = relationship("Plan", back_populates="advisor")

    @property
    def is_advisor(self) -> bool:
        return self.role == ROLE_ADVISOR

    @property
    def is_customer(self) -> bool:
        return self.role == ROLE_CUSTOMER

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
