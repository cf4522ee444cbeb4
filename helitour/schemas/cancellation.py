from typing import Optional, List
from pydantic import BaseModel, Field, UUID4, field_validator
from datetime import date, time, datetime

from helitour.models.reservation import ReservationStatus


# Cancellation policy tier — DB response / display
class CancellationTier(BaseModel):
    id: UUID4
    name: str
    days_before: int
    fee_percentage: int
    display_order: int = 0
    is_active: bool = True

    class Config:
        from_attributes = True


class CancellationPolicyCreate(BaseModel):
    name: str
    days_before: int = Field(ge=0)
    fee_percentage: int = Field(ge=0, le=100)
    display_order: int = 0
    is_active: bool = True


class CancellationPolicyUpdate(BaseModel):
    name: Optional[str] = None
    days_before: Optional[int] = Field(None, ge=0)
    fee_percentage: Optional[int] = Field(None, ge=0, le=100)
    display_order: Optional[int] = None
    is_active: Optional[bool] = None

    # Omitted fields are left alone; an explicit null is rejected
    @field_validator("name", "days_before", "fee_percentage", "display_order", "is_active")
    @classmethod
    def not_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


# Fee / refund breakdown shown before the customer confirms
class CancellationQuote(BaseModel):
    total_price: int
    fee_percentage: int
    cancellation_fee: int
    refund_amount: int
    days_until: int
    can_cancel: bool
    applied_tier: Optional[str] = None
    reason: Optional[str] = None


# Result of applying a cancellation
class CancelledReservationRecord(BaseModel):
    reservation_id: UUID4
    booking_number: str
    slot_id: UUID4
    status: ReservationStatus
    cancelled_at: datetime
    cancelled_by: str
    cancellation_reason: Optional[str] = None
    cancellation_fee: int
    fee_percentage: int
    refund_amount: int
    slot_current_pax: int


# GET /reservations/{id}/cancel
class CancellationQuoteResponse(BaseModel):
    reservation_id: UUID4
    booking_number: str
    reservation_date: date
    reservation_time: time
    cancellation: CancellationQuote
    policy: List[CancellationTier]
