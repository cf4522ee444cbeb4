"""
Slot capacity bookkeeping.

`current_pax` is only ever changed through conditional UPDATE statements so
the database decides races between concurrent bookers: of two requests
racing for the last seat, exactly one UPDATE matches a row. None of the
helpers here commit; the caller's unit of work owns the transaction.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from helitour.core.errors import (
    InsufficientCapacity,
    InvalidInput,
    InvalidStatusTransition,
    SlotNotFound,
    SlotUnavailable,
)
from helitour.models.slot import Slot, SlotStatus

logger = logging.getLogger(__name__)

# open -> closed -> open, open -> suspended; suspended ends the booking cycle
ALLOWED_STATUS_TRANSITIONS = {
    SlotStatus.open: {SlotStatus.closed, SlotStatus.suspended},
    SlotStatus.closed: {SlotStatus.open},
    SlotStatus.suspended: set(),
}


def _check_pax(pax) -> None:
    if isinstance(pax, bool) or not isinstance(pax, int) or pax <= 0:
        raise InvalidInput("pax must be a positive integer")


def _load_slot(db: Session, slot_id: UUID) -> Optional[Slot]:
    # Bulk UPDATEs bypass the identity map, so always reload from the row
    return (
        db.query(Slot)
        .populate_existing()
        .filter(Slot.id == slot_id)
        .first()
    )


def reserve_capacity(db: Session, slot_id: UUID, pax: int) -> Slot:
    """
    Atomically add `pax` passengers to a slot.

    The increment only applies when the slot is open and the new total stays
    within `max_pax`. When nothing matched, the slot is re-read to report why:

      - SlotNotFound          the id does not exist
      - SlotUnavailable       status is closed or suspended
      - InsufficientCapacity  not enough seats; carries the remaining count
    """
    _check_pax(pax)

    updated = (
        db.query(Slot)
        .filter(
            Slot.id == slot_id,
            Slot.status == SlotStatus.open,
            Slot.current_pax + pax <= Slot.max_pax,
        )
        .update({Slot.current_pax: Slot.current_pax + pax}, synchronize_session=False)
    )

    slot = _load_slot(db, slot_id)
    if updated:
        return slot

    if slot is None:
        raise SlotNotFound(slot_id)
    if slot.status != SlotStatus.open:
        raise SlotUnavailable(slot.status.value)
    raise InsufficientCapacity(available=slot.available_pax, requested=pax)


def release_capacity(db: Session, slot_id: UUID, pax: int) -> Slot:
    """
    Give `pax` seats back to a slot. Never goes below zero: an underflow is
    logged and clamped instead of raising.
    """
    _check_pax(pax)

    while True:
        updated = (
            db.query(Slot)
            .filter(Slot.id == slot_id, Slot.current_pax >= pax)
            .update({Slot.current_pax: Slot.current_pax - pax}, synchronize_session=False)
        )
        if updated:
            return _load_slot(db, slot_id)

        slot = _load_slot(db, slot_id)
        if slot is None:
            raise SlotNotFound(slot_id)

        # Only zero a row that is still short; a booking committed in between
        # means the decrement is retried against the new count
        clamped = (
            db.query(Slot)
            .filter(Slot.id == slot_id, Slot.current_pax < pax)
            .update({Slot.current_pax: 0}, synchronize_session=False)
        )
        if clamped:
            logger.warning(
                "Releasing %d pax from slot %s would underflow (current_pax=%d); clamping to 0.",
                pax,
                slot_id,
                slot.current_pax,
            )
            return _load_slot(db, slot_id)


def update_max_pax(db: Session, slot_id: UUID, max_pax: int) -> Slot:
    """Change a slot's ceiling without ever dropping below the seats already sold."""
    if isinstance(max_pax, bool) or not isinstance(max_pax, int) or max_pax <= 0:
        raise InvalidInput("max_pax must be a positive integer")

    updated = (
        db.query(Slot)
        .filter(Slot.id == slot_id, Slot.current_pax <= max_pax)
        .update({Slot.max_pax: max_pax}, synchronize_session=False)
    )

    slot = _load_slot(db, slot_id)
    if slot is None:
        raise SlotNotFound(slot_id)
    if not updated:
        raise InvalidInput(
            f"max_pax cannot be less than current bookings ({slot.current_pax})"
        )
    return slot


def change_slot_status(slot: Slot, new_status: SlotStatus, reason: Optional[str] = None) -> Slot:
    """
    Apply an operator status change to a loaded slot.

    Suspending requires a reason. Closed and suspended never convert into
    each other, and a suspended slot stays suspended.
    """
    reason = reason.strip() if reason else None

    if new_status == slot.status:
        if new_status == SlotStatus.suspended and reason:
            slot.suspended_reason = reason
        return slot

    if new_status not in ALLOWED_STATUS_TRANSITIONS[slot.status]:
        raise InvalidStatusTransition(
            f"Cannot change slot status from '{slot.status.value}' to '{new_status.value}'"
        )

    if new_status == SlotStatus.suspended:
        if not reason:
            raise InvalidInput("suspended_reason is required when suspending a slot")
        slot.suspended_reason = reason
    else:
        slot.suspended_reason = None

    slot.status = new_status
    return slot
