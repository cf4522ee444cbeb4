import logging
from uuid import UUID
from typing import Optional
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from helitour.db.session import get_db
from helitour.api.deps import get_current_staff_user, get_refund_gateway
from helitour.core.errors import (
    BookingError,
    ConflictError,
    InvalidInput,
    InvalidStatusTransition,
    PersistenceFailure,
    ReservationNotCancellable,
    ReservationNotFound,
)
from helitour.models.user import User
from helitour.models.payment import Payment, RefundReason
from helitour.models.reservation import Reservation, ReservationStatus, PaymentStatus
from helitour.schemas.common import MessageResponse, PaginatedResponse
from helitour.schemas.reservation import (
    AdminCancelRequest,
    CancellationResponse,
    Refund as RefundSchema,
    RefundRequest,
    Reservation as ReservationSchema,
    ReservationUpdate,
)
from helitour.utils.cancellation_policy import apply_cancellation, override_fee, quote_reservation
from helitour.utils.capacity import release_capacity, reserve_capacity
from helitour.utils.pricing import calculate_totals
from helitour.utils.refunds import issue_refund, refund_cancellation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/reservations", tags=["Admin - Reservations"])


def _get_reservation(db: Session, reservation_id: UUID) -> Reservation:
    reservation = db.query(Reservation).filter(Reservation.id == reservation_id).first()
    if not reservation:
        raise ReservationNotFound()
    return reservation


@router.get("/", response_model=PaginatedResponse[ReservationSchema])
def list_reservations(
    # --- Filters ---
    date: Optional[date] = Query(None, description="Filter by flight date (YYYY-MM-DD)"),
    slot_id: Optional[UUID] = Query(None),
    reservation_status: Optional[ReservationStatus] = Query(None, alias="status"),
    payment_status: Optional[PaymentStatus] = Query(None),
    booking_number: Optional[str] = Query(None),
    # --- Pagination ---
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff_user),
):
    query = db.query(Reservation)

    if date:
        query = query.filter(Reservation.reservation_date == date)
    if slot_id:
        query = query.filter(Reservation.slot_id == slot_id)
    if reservation_status:
        query = query.filter(Reservation.status == reservation_status)
    if payment_status:
        query = query.filter(Reservation.payment_status == payment_status)
    if booking_number:
        query = query.filter(Reservation.booking_number == booking_number.upper())

    total = query.count()
    reservations = (
        query.order_by(Reservation.reservation_date.desc(), Reservation.reservation_time.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return PaginatedResponse(
        data=[ReservationSchema.model_validate(r) for r in reservations],
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
    )


@router.get("/{id}", response_model=ReservationSchema)
def get_reservation(
    id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff_user),
):
    return _get_reservation(db, id)


# ---------------------------------------------------------------------------
# Update: status lifecycle, payment status, pax and notes
# ---------------------------------------------------------------------------


# Cancellation goes through POST /{id}/cancel so the fee and refund are applied
STATUS_TRANSITIONS = {
    ReservationStatus.pending: {ReservationStatus.confirmed},
    ReservationStatus.confirmed: {ReservationStatus.completed, ReservationStatus.no_show},
    ReservationStatus.cancelled: set(),
    ReservationStatus.completed: set(),
    ReservationStatus.no_show: set(),
}

ACTIVE_STATUSES = (ReservationStatus.pending, ReservationStatus.confirmed)


def _change_status(reservation: Reservation, new_status: ReservationStatus) -> None:
    current = reservation.status
    if new_status == current:
        return
    if new_status == ReservationStatus.cancelled:
        raise InvalidStatusTransition(
            "Use POST /admin/reservations/{id}/cancel to cancel a reservation"
        )
    if new_status not in STATUS_TRANSITIONS[current]:
        raise InvalidStatusTransition(
            f"Cannot change reservation status from {current.value} to {new_status.value}"
        )
    reservation.status = new_status


def _change_pax(db: Session, reservation: Reservation, pax: int) -> None:
    delta = pax - reservation.pax
    if delta == 0:
        return
    if reservation.status not in ACTIVE_STATUSES:
        raise ConflictError(f"Cannot change pax of a {reservation.status.value} reservation")

    if delta > 0:
        reserve_capacity(db, reservation.slot_id, delta)
    else:
        release_capacity(db, reservation.slot_id, -delta)

    subtotal, tax, total_price = calculate_totals(reservation.course.price, pax)
    reservation.pax = pax
    reservation.subtotal = subtotal
    reservation.tax = tax
    reservation.total_price = total_price


@router.patch("/{id}", response_model=ReservationSchema)
def update_reservation(
    id: UUID,
    data: ReservationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff_user),
):
    """
    Update a reservation.
    - `status`: pending -> confirmed -> completed | no_show. Cancelling has its own endpoint.
    - `pax`: seats are taken from or given back to the slot in the same
      transaction, and the price is recalculated. Only while pending or confirmed.
    - `payment_status` and `customer_notes` are set as given.
    """
    reservation = _get_reservation(db, id)
    updates = data.model_dump(exclude_unset=True)
    if not updates:
        raise InvalidInput("No fields to update")

    try:
        if "pax" in updates:
            _change_pax(db, reservation, updates["pax"])
        if "status" in updates:
            _change_status(reservation, updates["status"])
        if "payment_status" in updates:
            reservation.payment_status = updates["payment_status"]
        if "customer_notes" in updates:
            reservation.customer_notes = updates["customer_notes"]
        db.commit()
    except BookingError:
        db.rollback()
        raise
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to update reservation %s", id)
        raise PersistenceFailure("Failed to update reservation")

    db.refresh(reservation)
    logger.info(
        "Reservation %s updated by %s: %s.",
        reservation.booking_number, current_user.id, ", ".join(sorted(updates)),
    )
    return reservation


# ---------------------------------------------------------------------------
# Cancellation by staff
# ---------------------------------------------------------------------------


@router.post("/{id}/cancel", response_model=CancellationResponse)
def cancel_reservation(
    id: UUID,
    data: AdminCancelRequest,
    refund: bool = Query(True, description="Refund paid reservations after cancelling"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff_user),
    gateway=Depends(get_refund_gateway),
):
    """
    Cancel a reservation on behalf of the customer or the operator.
    The policy fee applies unless `cancellation_fee` overrides it.
    Past-date reservations may be cancelled by staff.
    """
    reservation = _get_reservation(db, id)

    quote = quote_reservation(db, reservation)
    if reservation.status not in (ReservationStatus.pending, ReservationStatus.confirmed):
        raise ReservationNotCancellable(quote.reason or "This reservation cannot be cancelled")
    if data.cancellation_fee is not None:
        quote = override_fee(quote, data.cancellation_fee)

    record = apply_cancellation(
        db,
        reservation,
        quote,
        cancelled_by=str(current_user.id),
        reason=data.reason,
    )

    refund_row = None
    refund_error = None
    if refund:
        try:
            refund_row = refund_cancellation(
                db,
                reservation,
                quote,
                gateway,
                reason=RefundReason.operator_cancel,
                reason_detail=data.reason,
                processed_by=current_user.id,
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
        refund=RefundSchema.model_validate(refund_row) if refund_row else None,
        refund_error=refund_error,
    )


# ---------------------------------------------------------------------------
# Manual refund
# ---------------------------------------------------------------------------


@router.post("/{id}/refund", response_model=RefundSchema, status_code=status.HTTP_201_CREATED)
def refund_reservation(
    id: UUID,
    data: RefundRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff_user),
    gateway=Depends(get_refund_gateway),
):
    """Full refund when `amount` is omitted, partial otherwise."""
    reservation = _get_reservation(db, id)
    return issue_refund(
        db,
        reservation,
        gateway,
        amount=data.amount,
        reason=data.reason,
        reason_detail=data.reason_detail,
        processed_by=current_user.id,
    )


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------


@router.delete("/{id}", response_model=MessageResponse)
def delete_reservation(
    id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_staff_user),
):
    """
    Remove a reservation entered by mistake. Completed reservations and
    reservations with payment records are kept for the books.
    """
    reservation = _get_reservation(db, id)

    if reservation.status == ReservationStatus.completed:
        raise ConflictError("Completed reservations cannot be deleted")
    if db.query(Payment.id).filter(Payment.reservation_id == id).first():
        raise ConflictError("Reservations with payment records cannot be deleted. Cancel it instead.")

    booking_number = reservation.booking_number
    try:
        if reservation.status != ReservationStatus.cancelled:
            release_capacity(db, reservation.slot_id, reservation.pax)
        db.delete(reservation)
        db.commit()
    except BookingError:
        db.rollback()
        raise
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to delete reservation %s", booking_number)
        raise PersistenceFailure("Failed to delete reservation")

    logger.info("Reservation %s deleted by %s.", booking_number, current_user.id)
    return MessageResponse(message="Reservation deleted", id=str(id))
