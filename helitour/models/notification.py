import uuid
from sqlalchemy import Column, String, Boolean, DateTime, func, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from helitour.db.session import Base

class Notification(Base):
    """Outbox row picked up by the email/LINE senders."""
    __tablename__ = "notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(50), nullable=False) # reservation_confirmed, reservation_cancelled, refund_completed
    is_read = Column(Boolean, default=False)
    reference_id = Column(UUID(as_uuid=True), nullable=True) # Reservation ID
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    customer = relationship("Customer")
