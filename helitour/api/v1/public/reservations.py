import logging
import random
import string
from uuid import UUID
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from helitour.db.session import get_db
from helitour.api.deps import get_current_customer, get_refund_gateway
from helitour.core.errors import (
    BookingError,
    ConflictError,
    CourseNotFound,
    InvalidInput,
    PersistenceFailure,
    ReservationNotCancellable,
    ReservationNotFound,
    SlotNotFound,
)
from helitour.models.course import Course
from helitour.models.customer import Customer
from helitour.models.notification import Notification
from helitour.models.reservation import Reservation, ReservationStatus
from helitour.models.slot import Slot
from helitour.schemas.cancellation import CancellationQuoteResponse, CancellationTier
from helitour.schemas.common import ErrorResponse, InsufficientCapacityError
from helitour.schemas.reservation import (
    CancellationResponse,
    CustomerCancelRequest,
    ReservationCreate,
    ReservationCreated,
    Refund as RefundSchema,
)
from helitour.utils.cancellation_policy import (
    apply_cancellation,
    load_active_tiers,
    quote_reservation,
)
from helitour.utils.capacity import reserve_capacity
from helitour.utils.pricing import calculate_totals
from helitour.utils.refunds import refund_cancellation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reservations", tags=["Reservations"])
policy_router = APIRouter(prefix="/cancellation-policy", tags=["Reservations"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _generate_booking_number(db: Session) -> str:
    """Generate a unique 'HT-XXXXXXXX' booking reference."""
    chars = string.ascii_uppercase + string.digits
    while True:
        number = "HT-" + "".join(random.choices(chars, k=8))
        if not db.query(Reservation).filter(Reservation.booking_number == number).first():
            return number


def _get_or_create_customer(db: Session, data) -> Customer:
    customer = db.query(Customer).filter(Customer.email == data.email).first()
    if customer:
        return customer
    customer = Customer(
        email=data.email,
        name=data.name,
        phone=data.phone,
        preferred_lang=data.preferred_lang,
    )
    db.add(customer)
    db.flush()
    return customer


def _load_own_reservation(reservation_id: UUID, customer: Customer, db: Session) -> Reservation:
    reservation = (
        db.query(Reservation)
        .filter(
            Reservation.id == reservation_id,
            Reservation.customer_id == customer.id,
        )
        .first()
    )
    if not reservation:
        raise ReservationNotFound()
    return reservation


# ---------------------------------------------------------------------------
# POST /reservations — book seats on a slot
# ---------------------------------------------------------------------------


@router.post(
    "/",
    response_model=ReservationCreated,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": InsufficientCapacityError},
    },
)
def create_reservation(
    data: ReservationCreate,
    db: Session = Depends(get_db),
):
    """
    Book `pax` seats on a slot.

    The seat count is taken with a conditional UPDATE on the slot and the
    reservation row is inserted in the same transaction, so either both
    land or neither does. Losing a race for the last seats returns 409
    with the number of seats still available.
    """
    course = db.query(Course).filter(Course.id == data.course_id).first()
    if not course:
        raise CourseNotFound(data.course_id)
    if not course.is_active:
        raise ConflictError("Course is not available")

    slot = db.query(Slot).filter(Slot.id == data.slot_id).first()
    if not slot:
        raise SlotNotFound(data.slot_id)
    if slot.course_id is not None and slot.course_id != course.id:
        raise InvalidInput("Slot does not belong to this course")

    subtotal, tax, total_price = calculate_totals(course.price, data.pax)

    try:
        customer = _get_or_create_customer(db, data.customer)
        slot = reserve_capacity(db, slot.id, data.pax)

        reservation = Reservation(
            booking_number=_generate_booking_number(db),
            customer_id=customer.id,
            course_id=course.id,
            slot_id=slot.id,
            reservation_date=slot.slot_date,
            reservation_time=slot.slot_time,
            pax=data.pax,
            subtotal=subtotal,
            tax=tax,
            total_price=total_price,
            status=ReservationStatus.pending,
            customer_notes=data.customer_notes,
        )
        db.add(reservation)
        db.flush()

        db.add(Notification(
            customer_id=customer.id,
            title="Reservation Received",
            message=(
                f"Your reservation for {course.title} on {slot.slot_date} "
                f"{slot.slot_time.strftime('%H:%M')} is received. Ref: {reservation.booking_number}"
            ),
            type="reservation_confirmed",
            reference_id=reservation.id,
        ))
        db.commit()
    except BookingError:
        db.rollback()
        raise
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to create reservation on slot %s", data.slot_id)
        raise PersistenceFailure("Failed to create reservation")

    db.refresh(reservation)
    db.refresh(slot)
    logger.info(
        "Reservation %s created: %d pax on slot %s.",
        reservation.booking_number, reservation.pax, slot.id,
    )

    return ReservationCreated(
        **{
            field: getattr(reservation, field)
            for field in ReservationCreated.model_fields
            if field != "available_pax"
        },
        available_pax=slot.available_pax,
    )


# ---------------------------------------------------------------------------
# GET /reservations/{id}/cancel — cancellation quote
# ---------------------------------------------------------------------------


@router.get("/{reservation_id}/cancel", response_model=CancellationQuoteResponse)
def get_cancellation_quote(
    reservation_id: UUID,
    db: Session = Depends(get_db),
    customer: Customer = Depends(get_current_customer),
):
    """Fee and refund the customer would get by cancelling now, plus the policy table."""
    reservation = _load_own_reservation(reservation_id, customer, db)

    return CancellationQuoteResponse(
        reservation_id=reservation.id,
        booking_number=reservation.booking_number,
        reservation_date=reservation.reservation_date,
        reservation_time=reservation.reservation_time,
        cancellation=quote_reservation(db, reservation),
        policy=[CancellationTier.model_validate(tier) for tier in load_active_tiers(db)],
    )


# ---------------------------------------------------------------------------
# POST /reservations/{id}/cancel — customer self-service cancellation
# ---------------------------------------------------------------------------


@router.post("/{reservation_id}/cancel", response_model=CancellationResponse)
def cancel_reservation(
    reservation_id: UUID,
    body: Optional[CustomerCancelRequest] = None,
    db: Session = Depends(get_db),
    customer: Customer = Depends(get_current_customer),
    gateway=Depends(get_refund_gateway),
):
    """
    Cancel the customer's reservation at the current policy fee.
    - Returns the seats to the slot.
    - Refunds paid reservations automatically. A refund failure is reported
      in `refund_error`; the cancellation itself stays in place.
    """
    reservation = _load_own_reservation(reservation_id, customer, db)

    quote = quote_reservation(db, reservation)
    if not quote.can_cancel:
        raise ReservationNotCancellable(quote.reason or "This reservation cannot be cancelled")

    record = apply_cancellation(
        db,
        reservation,
        quote,
        cancelled_by="customer",
        reason=(body.reason if body else None) or "Customer self-service cancellation",
    )

    refund = None
    refund_error = None
    try:
        refund = refund_cancellation(
            db,
            reservation,
            quote,
            gateway,
            reason_detail="Customer self-service cancellation",
        )
    except BookingError as exc:
        logger.error(
            "Refund after cancelling %s failed, manual processing needed: %s",
            reservation.booking_number,
            exc.message,
        )
        refund_error = exc.message

    return CancellationResponse(
        message="Reservation cancelled successfully",
        cancellation=record,
        refund=RefundSchema.model_validate(refund) if refund else None,
        refund_error=refund_error,
    )


# ---------------------------------------------------------------------------
# GET /cancellation-policy — tiers for display
# ---------------------------------------------------------------------------


@policy_router.get("/", response_model=List[CancellationTier])
def get_cancellation_policy(db: Session = Depends(get_db)):
    return load_active_tiers(db)
