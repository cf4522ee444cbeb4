import uuid
from sqlalchemy import Column, String, Boolean, Integer, DateTime, CheckConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from helitour.db.session import Base

class CancellationPolicy(Base):
    """One tier of the cancellation fee table."""
    __tablename__ = "cancellation_policies"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    days_before = Column(Integer, nullable=False) # tier applies when days until flight <= this
    fee_percentage = Column(Integer, nullable=False)
    display_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("fee_percentage >= 0 AND fee_percentage <= 100", name="ck_policy_fee_range"),
        CheckConstraint("days_before >= 0", name="ck_policy_days_before_non_negative"),
    )
