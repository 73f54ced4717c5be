"""
Append-only payment history, keyed by the provider payment id.
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship

from advisor_chooser.db.base import Base


class PaymentHistory(Base):
    """One row per successful or failed charge, trial grant or coupon redemption."""

    __tablename__ = "payment_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    provider = Column(String(20), nullable=False, default="stripe")  # stripe, coupon
    payment_id = Column(String(255), nullable=False, unique=True)
    amount = Column(Integer, nullable=False, default=0)  # cents
    currency = Column(String(10), nullable=False, default="usd")
    status = Column(String(50), nullable=False)
    description = Column(String(500), nullable=True)
    period_start = Column(DateTime, nullable=True)
    period_end = Column(DateTime, nullable=True)
    # "metadata" is reserved on declarative classes
    extra = Column("metadata", JSONB, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="payments")

    __table_args__ = (
        Index("idx_payment_history_user_created", "user_id", "created_at"),
    )

    def __repr__(self):
        return f"<PaymentHistory(payment_id={self.payment_id}, status={self.status}, amount={self.amount})>"
