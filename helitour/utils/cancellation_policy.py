"""
Cancellation fee policy.

A policy is a table of tiers, each saying "cancelling this many days (or
fewer) before the flight costs this percentage". Tiers are evaluated in
ascending `days_before` order and the first one the booking falls into
wins, so the closer the flight, the higher the fee. Cancelling earlier
than every tier is free.

The quote functions are pure and never raise for missing tiers or past
flights; they fall back to a 0% fee and `can_cancel=False` respectively.
"""
import logging
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from helitour.core.config import settings
from helitour.core.errors import BookingError, PersistenceFailure, ReservationNotCancellable
from helitour.models.cancellation_policy import CancellationPolicy
from helitour.models.notification import Notification
from helitour.models.reservation import Reservation, ReservationStatus
from helitour.schemas.cancellation import CancellationQuote, CancelledReservationRecord
from helitour.utils.capacity import release_capacity

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = (ReservationStatus.pending, ReservationStatus.confirmed)

# Seeded into an empty policy table on startup: (name, days_before, fee %)
DEFAULT_CANCELLATION_TIERS = [
    ("Same day", 0, 100),
    ("1 day before", 1, 80),
    ("2-3 days before", 3, 50),
    ("4-7 days before", 7, 30),
]


def business_today() -> date:
    return datetime.now(ZoneInfo(settings.BUSINESS_TIMEZONE)).date()


def days_until(flight_date: date, as_of=None) -> int:
    """
    Whole calendar days from `as_of` (default: today at the heliport) to the
    flight. 0 means the flight is today; negative means it already happened.
    """
    if as_of is None:
        as_of = business_today()
    elif isinstance(as_of, datetime):
        if as_of.tzinfo is not None:
            as_of = as_of.astimezone(ZoneInfo(settings.BUSINESS_TIMEZONE))
        as_of = as_of.date()

    if isinstance(flight_date, datetime):
        flight_date = flight_date.date()

    return (flight_date - as_of).days


def find_applicable_tier(tiers: Iterable, days: int):
    """First active tier (ascending `days_before`) with days <= days_before, or None."""
    active = sorted((t for t in tiers if t.is_active), key=lambda t: t.days_before)
    for tier in active:
        if days <= tier.days_before:
            return tier
    return None


def resolve_fee_percentage(tiers: Iterable, days: int) -> int:
    tier = find_applicable_tier(tiers, days)
    return tier.fee_percentage if tier else 0


def compute_cancellation_quote(
    total_price: int,
    tiers: Iterable,
    flight_date: date,
    as_of=None,
) -> CancellationQuote:
    days = days_until(flight_date, as_of)
    tier = find_applicable_tier(tiers, days)
    fee_percentage = tier.fee_percentage if tier else 0
    cancellation_fee = total_price * fee_percentage // 100

    return CancellationQuote(
        total_price=total_price,
        fee_percentage=fee_percentage,
        cancellation_fee=cancellation_fee,
        refund_amount=total_price - cancellation_fee,
        days_until=days,
        can_cancel=days >= 0,
        applied_tier=tier.name if tier else None,
        reason=None if days >= 0 else "The flight date has already passed",
    )


def load_active_tiers(db: Session) -> List[CancellationPolicy]:
    return (
        db.query(CancellationPolicy)
        .filter(CancellationPolicy.is_active == True)  # noqa: E712
        .order_by(CancellationPolicy.display_order, CancellationPolicy.days_before)
        .all()
    )


def quote_reservation(db: Session, reservation: Reservation, as_of=None) -> CancellationQuote:
    """Quote against the live policy table, closing the gate for finished reservations."""
    quote = compute_cancellation_quote(
        reservation.total_price,
        load_active_tiers(db),
        reservation.reservation_date,
        as_of,
    )
    if reservation.status not in CANCELLABLE_STATUSES:
        quote = quote.model_copy(update={
            "can_cancel": False,
            "reason": f"Reservation is already {reservation.status.value}",
        })
    return quote


def override_fee(quote: CancellationQuote, cancellation_fee: int) -> CancellationQuote:
    """Replace the policy fee with an operator-chosen amount (capped at the total)."""
    fee = min(cancellation_fee, quote.total_price)
    percentage = fee * 100 // quote.total_price if quote.total_price else 0
    return quote.model_copy(update={
        "cancellation_fee": fee,
        "refund_amount": quote.total_price - fee,
        "fee_percentage": percentage,
        "applied_tier": "manual",
    })


def apply_cancellation(
    db: Session,
    reservation: Reservation,
    quote: CancellationQuote,
    cancelled_by: str,
    reason: Optional[str],
) -> CancelledReservationRecord:
    """
    Cancel a reservation and give its seats back, as one transaction.

    The status flip is itself a conditional UPDATE, so two concurrent
    cancellations of the same reservation release the seats only once.
    On any database error both changes are rolled back.
    """
    now = datetime.now(timezone.utc)
    try:
        updated = (
            db.query(Reservation)
            .filter(
                Reservation.id == reservation.id,
                Reservation.status.in_(CANCELLABLE_STATUSES),
            )
            .update(
                {
                    Reservation.status: ReservationStatus.cancelled,
                    Reservation.cancelled_at: now,
                    Reservation.cancelled_by: cancelled_by,
                    Reservation.cancellation_reason: reason,
                    Reservation.cancellation_fee: quote.cancellation_fee,
                },
                synchronize_session=False,
            )
        )
        if not updated:
            db.refresh(reservation)
            raise ReservationNotCancellable(
                "Only pending or confirmed reservations can be cancelled "
                f"(current status: '{reservation.status.value}')"
            )

        slot = release_capacity(db, reservation.slot_id, reservation.pax)

        db.add(Notification(
            customer_id=reservation.customer_id,
            title="Reservation Cancelled",
            message=(
                f"Your reservation {reservation.booking_number} has been cancelled. "
                f"Cancellation fee: ¥{quote.cancellation_fee:,}. "
                f"Refund amount: ¥{quote.refund_amount:,}."
            ),
            type="reservation_cancelled",
            reference_id=reservation.id,
        ))
        db.commit()
    except BookingError:
        db.rollback()
        raise
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to cancel reservation %s", reservation.booking_number)
        raise PersistenceFailure("Failed to cancel reservation")

    db.refresh(reservation)
    logger.info(
        "Reservation %s cancelled by %s (fee %d, refund %d).",
        reservation.booking_number,
        cancelled_by,
        quote.cancellation_fee,
        quote.refund_amount,
    )

    return CancelledReservationRecord(
        reservation_id=reservation.id,
        booking_number=reservation.booking_number,
        slot_id=reservation.slot_id,
        status=reservation.status,
        cancelled_at=reservation.cancelled_at,
        cancelled_by=reservation.cancelled_by,
        cancellation_reason=reservation.cancellation_reason,
        cancellation_fee=quote.cancellation_fee,
        fee_percentage=quote.fee_percentage,
        refund_amount=quote.refund_amount,
        slot_current_pax=slot.current_pax,
    )
