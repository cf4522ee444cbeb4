from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, EmailStr, Field, UUID4, field_validator
from datetime import date, time, datetime

from helitour.models.reservation import ReservationStatus, PaymentStatus
from helitour.models.payment import RefundReason
from helitour.schemas.cancellation import CancelledReservationRecord


class CustomerInput(BaseModel):
    email: EmailStr
    name: str
    phone: Optional[str] = None
    preferred_lang: str = "ja"

    # Customers are matched on the lowercased address
    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


# Reservation — Create (POST /reservations)
class ReservationCreate(BaseModel):
    course_id: UUID4
    slot_id: UUID4
    pax: int = Field(gt=0)
    customer: CustomerInput
    customer_notes: Optional[str] = None


# Reservation — Update (PATCH /admin/reservations/{id})
class ReservationUpdate(BaseModel):
    status: Optional[ReservationStatus] = None
    payment_status: Optional[PaymentStatus] = None
    pax: Optional[int] = Field(None, gt=0)
    customer_notes: Optional[str] = None

    @field_validator("status", "payment_status", "pax")
    @classmethod
    def not_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


# Reservation — DB response
class Reservation(BaseModel):
    id: UUID4
    booking_number: str
    customer_id: UUID4
    course_id: UUID4
    slot_id: UUID4
    reservation_date: date
    reservation_time: time
    pax: int
    subtotal: int
    tax: int
    total_price: int
    status: ReservationStatus
    payment_status: PaymentStatus
    customer_notes: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancellation_fee: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Reservation — Create response, includes the slot's remaining seats
class ReservationCreated(Reservation):
    available_pax: int


# Cancellation requests
class CustomerCancelRequest(BaseModel):
    reason: Optional[str] = None


class AdminCancelRequest(BaseModel):
    reason: str
    cancellation_fee: Optional[int] = Field(None, ge=0)

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Cancellation reason is required")
        return v.strip()


# Refunds
class RefundRequest(BaseModel):
    amount: Optional[int] = None
    reason: RefundReason = RefundReason.customer_request
    reason_detail: Optional[str] = None


class Refund(BaseModel):
    id: UUID4
    reservation_id: UUID4
    payment_id: UUID4
    amount: int
    reason: RefundReason
    reason_detail: Optional[str] = None
    stripe_refund_id: Optional[str] = None
    status: str
    processed_at: Optional[datetime] = None
    processed_by: Optional[UUID4] = None

    class Config:
        from_attributes = True


# POST /reservations/{id}/cancel and /admin/reservations/{id}/cancel
class CancellationResponse(BaseModel):
    message: str
    cancellation: CancelledReservationRecord
    refund: Optional[Refund] = None
    refund_error: Optional[str] = None
