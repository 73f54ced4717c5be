"""
Coupon model for membership discounts and free trials.
"""
import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import Column, String, DateTime, Boolean, Integer, Float
from sqlalchemy.dialects.postgresql import UUID

from advisor_chooser.db.base import Base

COUPON_TYPES = ("percentage", "fixed", "free_trial")


class Coupon(Base):
    """Discount code. Codes are stored upper-case and matched case-insensitively."""

    __tablename__ = "coupons"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(String(64), unique=True, nullable=False, index=True)
    type = Column(String(20), nullable=False)  # percentage, fixed, free_trial
    value = Column(Float, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
    expires_at = Column(DateTime, nullable=True)
    usage_limit = Column(Integer, nullable=True)
    used_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at is not None and self.expires_at < (now or datetime.utcnow())

    @property
    def is_exhausted(self) -> bool:
        return self.usage_limit is not None and self.used_count >= self.usage_limit

    def __repr__(self):
        return f"<Coupon(code={self.code}, type={self.type}, used={self.used_count}/{self.usage_limit})>"
