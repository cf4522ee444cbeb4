"""
Refund issuance and bookkeeping.

Refunds run after a cancellation has been committed and may fail on their
own: a gateway error never un-cancels the reservation, it surfaces as a
retryable GatewayFailure and nothing is written.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Optional

import stripe
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from helitour.core.config import settings
from helitour.core.errors import GatewayFailure, InvalidInput, PersistenceFailure
from helitour.models.notification import Notification
from helitour.models.payment import Payment, Refund, RefundReason
from helitour.models.reservation import PaymentStatus, Reservation
from helitour.schemas.cancellation import CancellationQuote

logger = logging.getLogger(__name__)

REFUNDABLE_PAYMENT_STATUSES = (PaymentStatus.paid, PaymentStatus.partial_refund)


class StripeRefundGateway:
    """Issues refunds against a Stripe PaymentIntent."""

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or settings.STRIPE_SECRET_KEY

    def refund(self, payment_reference: str, amount: int, metadata: Optional[Dict[str, str]] = None) -> str:
        if not self.api_key:
            raise GatewayFailure("Stripe secret key not configured (STRIPE_SECRET_KEY)")

        stripe.api_key = self.api_key
        try:
            refund = stripe.Refund.create(
                payment_intent=payment_reference,
                amount=amount,
                reason="requested_by_customer",
                metadata=metadata or {},
            )
        except stripe.StripeError as exc:
            logger.error("Stripe refund for %s failed: %s", payment_reference, exc)
            message = exc.user_message or str(exc)
            raise GatewayFailure(f"Stripe refund failed: {message}") from exc

        return refund.id


def latest_refundable_payment(db: Session, reservation: Reservation) -> Optional[Payment]:
    return (
        db.query(Payment)
        .filter(
            Payment.reservation_id == reservation.id,
            Payment.status.in_(REFUNDABLE_PAYMENT_STATUSES),
        )
        .order_by(Payment.created_at.desc())
        .first()
    )


def refundable_amount(db: Session, payment: Payment) -> int:
    already_refunded = (
        db.query(func.coalesce(func.sum(Refund.amount), 0))
        .filter(Refund.payment_id == payment.id, Refund.status == "completed")
        .scalar()
    )
    return payment.amount - int(already_refunded)


def issue_refund(
    db: Session,
    reservation: Reservation,
    gateway,
    amount: Optional[int] = None,
    reason: RefundReason = RefundReason.customer_request,
    reason_detail: Optional[str] = None,
    processed_by=None,
) -> Refund:
    """
    Refund `amount` (default: everything still refundable) of the
    reservation's latest paid payment and record it.
    """
    payment = latest_refundable_payment(db, reservation)
    if not payment:
        raise InvalidInput("No paid payment found for this reservation")
    if not payment.stripe_payment_intent_id:
        raise InvalidInput("No Stripe payment intent ID found")

    max_refundable = refundable_amount(db, payment)
    if max_refundable <= 0:
        raise InvalidInput("This payment has already been fully refunded")

    if amount is None:
        amount = max_refundable
    if amount <= 0:
        raise InvalidInput("Refund amount must be greater than 0")
    if amount > max_refundable:
        raise InvalidInput(
            f"Refund amount exceeds maximum refundable amount ({max_refundable} yen)"
        )

    stripe_refund_id = gateway.refund(
        payment.stripe_payment_intent_id,
        amount,
        metadata={
            "reservation_id": str(reservation.id),
            "booking_number": reservation.booking_number,
            "processed_by": str(processed_by) if processed_by else "customer_self_service",
            "reason": reason.value,
        },
    )

    fully_refunded = amount >= max_refundable
    new_status = PaymentStatus.refunded if fully_refunded else PaymentStatus.partial_refund

    try:
        refund = Refund(
            reservation_id=reservation.id,
            payment_id=payment.id,
            amount=amount,
            reason=reason,
            reason_detail=reason_detail,
            stripe_refund_id=stripe_refund_id,
            status="completed",
            processed_at=datetime.now(timezone.utc),
            processed_by=processed_by,
        )
        db.add(refund)
        payment.status = new_status
        reservation.payment_status = new_status
        db.add(Notification(
            customer_id=reservation.customer_id,
            title="Refund Completed",
            message=(
                f"A refund of ¥{amount:,} for reservation "
                f"{reservation.booking_number} has been processed."
            ),
            type="refund_completed",
            reference_id=reservation.id,
        ))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Stripe refund %s for %s succeeded but could not be recorded",
            stripe_refund_id,
            reservation.booking_number,
        )
        raise PersistenceFailure(
            "Refund processed in Stripe but failed to record in database. Please contact support."
        )

    db.refresh(refund)
    logger.info(
        "Refund processed: %s - %d yen (%s).", reservation.booking_number, amount, reason.value
    )
    return refund


def refund_cancellation(
    db: Session,
    reservation: Reservation,
    quote: CancellationQuote,
    gateway,
    reason: RefundReason = RefundReason.customer_request,
    reason_detail: Optional[str] = None,
    processed_by=None,
) -> Optional[Refund]:
    """
    Refund what a cancellation quote allows, capped by what is still
    refundable. Returns None when there is nothing to refund.
    """
    if reservation.payment_status not in REFUNDABLE_PAYMENT_STATUSES or quote.refund_amount <= 0:
        return None

    payment = latest_refundable_payment(db, reservation)
    if not payment:
        logger.warning(
            "Reservation %s is marked paid but has no refundable payment; manual refund needed.",
            reservation.booking_number,
        )
        return None

    amount = min(quote.refund_amount, refundable_amount(db, payment))
    if amount <= 0:
        return None

    return issue_refund(
        db,
        reservation,
        gateway,
        amount=amount,
        reason=reason,
        reason_detail=reason_detail,
        processed_by=processed_by,
    )
