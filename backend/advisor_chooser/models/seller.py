"""
Seller profile model.
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, Float, Text, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from advisor_chooser.db.base import Base


class Seller(Base):
    """Business owner looking for an advisor."""

    __tablename__ = "sellers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    contact_name = Column(String(255), nullable=True)
    contact_email = Column(String(255), nullable=True)
    contact_title = Column(String(255), nullable=True)
    company_name = Column(String(255), nullable=True)
    industry = Column(String(255), nullable=True)
    geography = Column(String(255), nullable=True)  # "Region" or "Region > Subregion"
    annual_revenue = Column(Float, nullable=True)
    currency = Column(String(10), nullable=False, default="USD")
    phone = Column(String(50), nullable=True)
    website = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="seller_profile")

    def __repr__(self):
        return f"<Seller(id={self.id}, company={self.company_name})>"
