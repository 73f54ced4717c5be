"""
Advisor profile model.
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, Integer, Float, Text, ForeignKey
from sqlalchemy.dialects.postgresql import UUID, ARRAY
from sqlalchemy.orm import relationship

from advisor_chooser.db.base import Base


class Advisor(Base):
    """M&A advisor listing shown to matching sellers."""

    __tablename__ = "advisors"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    company_name = Column(String(255), nullable=False)
    industries = Column(ARRAY(String), nullable=False, default=list)
    geographies = Column(ARRAY(String), nullable=False, default=list)
    revenue_min = Column(Float, nullable=True)
    revenue_max = Column(Float, nullable=True)
    years_experience = Column(Integer, nullable=False, default=0)
    number_of_transactions = Column(Integer, nullable=False, default=0)
    currency = Column(String(10), nullable=False, default="USD")

    phone = Column(String(50), nullable=True)
    website = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    licensing = Column(String(500), nullable=True)
    logo_url = Column(String(1000), nullable=True)
    intro_video_url = Column(String(1000), nullable=True)
    testimonials = Column(ARRAY(String), nullable=False, default=list)

    is_active = Column(Boolean, default=True, nullable=False)
    send_leads = Column(Boolean, default=True, nullable=False)
    worked_with_cimamplify = Column(Boolean, default=False, nullable=False)
    impressions = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="advisor_profile")

    def __repr__(self):
        return f"<Advisor(id={self.id}, company={self.company_name})>"
