import enum
import uuid
from sqlalchemy import Column, String, Date, Time, Integer, DateTime, Enum, ForeignKey, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from helitour.db.session import Base


class ReservationStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"
    completed = "completed"
    no_show = "no_show"


class PaymentStatus(str, enum.Enum):
    pending = "pending"
    paid = "paid"
    failed = "failed"
    refunded = "refunded"
    partial_refund = "partial_refund"


# Shared with payments.status so the Postgres enum type is created once
payment_status_enum = Enum(PaymentStatus, name="payment_status")


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    booking_number = Column(String(20), unique=True, nullable=False, index=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)
    course_id = Column(UUID(as_uuid=True), ForeignKey("courses.id"), nullable=False, index=True)
    slot_id = Column(UUID(as_uuid=True), ForeignKey("slots.id"), nullable=False, index=True)
    reservation_date = Column(Date, nullable=False, index=True)
    reservation_time = Column(Time, nullable=False)
    pax = Column(Integer, nullable=False)
    subtotal = Column(Integer, nullable=False)
    tax = Column(Integer, nullable=False)
    total_price = Column(Integer, nullable=False)
    status = Column(
        Enum(ReservationStatus, name="reservation_status"),
        nullable=False,
        default=ReservationStatus.pending,
        index=True,
    )
    payment_status = Column(
        payment_status_enum,
        nullable=False,
        default=PaymentStatus.pending,
    )
    customer_notes = Column(Text, nullable=True)
    # Populated only on cancellation
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String(64), nullable=True) # staff user id or "customer"
    cancellation_reason = Column(Text, nullable=True)
    cancellation_fee = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    customer = relationship("Customer", back_populates="reservations")
    course = relationship("Course")
    slot = relationship("Slot", back_populates="reservations")
    payments = relationship("Payment", back_populates="reservation")
    refunds = relationship("Refund", back_populates="reservation")
