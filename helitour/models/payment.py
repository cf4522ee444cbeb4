import enum
import uuid
from sqlalchemy import Column, String, Integer, DateTime, Enum, ForeignKey, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from helitour.db.session import Base
from helitour.models.reservation import PaymentStatus, payment_status_enum


class RefundReason(str, enum.Enum):
    customer_request = "customer_request"
    weather = "weather"
    mechanical = "mechanical"
    operator_cancel = "operator_cancel"
    other = "other"


class Payment(Base):
    __tablename__ = "payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reservation_id = Column(UUID(as_uuid=True), ForeignKey("reservations.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False) # yen
    status = Column(payment_status_enum, nullable=False, default=PaymentStatus.pending)
    stripe_payment_intent_id = Column(String(255), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    reservation = relationship("Reservation", back_populates="payments")
    refunds = relationship("Refund", back_populates="payment")


class Refund(Base):
    __tablename__ = "refunds"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reservation_id = Column(UUID(as_uuid=True), ForeignKey("reservations.id"), nullable=False, index=True)
    payment_id = Column(UUID(as_uuid=True), ForeignKey("payments.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    reason = Column(Enum(RefundReason, name="refund_reason"), nullable=False, default=RefundReason.customer_request)
    reason_detail = Column(Text, nullable=True)
    stripe_refund_id = Column(String(255), nullable=True, unique=True)
    status = Column(String(20), nullable=False, default="completed")
    processed_at = Column(DateTime(timezone=True), nullable=True)
    processed_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True) # NULL = customer self-service
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    reservation = relationship("Reservation", back_populates="refunds")
    payment = relationship("Payment", back_populates="refunds")
