import logging
from uuid import UUID
from typing import List, Optional
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from helitour.db.session import get_db
from helitour.api.deps import get_current_admin_user
from helitour.core.errors import (
    BookingError,
    CourseNotFound,
    ConflictError,
    PersistenceFailure,
    SlotInUse,
    SlotNotFound,
)
from helitour.models.user import User
from helitour.models.course import Course
from helitour.models.reservation import Reservation
from helitour.models.slot import Slot, SlotStatus
from helitour.schemas.common import MessageResponse
from helitour.schemas.slot import (
    Slot as SlotSchema,
    SlotCreate,
    SlotUpdate,
    SlotGenerateRequest,
    GenerationReport,
)
from helitour.utils.capacity import change_slot_status, update_max_pax
from helitour.utils.slot_generation import generate_slots

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/slots", tags=["Admin - Slots"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_slot(db: Session, slot_id: UUID) -> Slot:
    slot = db.query(Slot).filter(Slot.id == slot_id).first()
    if not slot:
        raise SlotNotFound(slot_id)
    return slot


def _check_course(db: Session, course_id: Optional[UUID]) -> None:
    if course_id and not db.query(Course.id).filter(Course.id == course_id).first():
        raise CourseNotFound(course_id)


def _check_unique(db: Session, slot_date: date, slot_time, course_id, exclude_id=None) -> None:
    query = db.query(Slot.id).filter(
        Slot.slot_date == slot_date,
        Slot.slot_time == slot_time,
        Slot.course_id == course_id if course_id else Slot.course_id.is_(None),
    )
    if exclude_id:
        query = query.filter(Slot.id != exclude_id)
    if query.first():
        raise ConflictError(f"A slot already exists on {slot_date} at {slot_time.strftime('%H:%M')}")


def _commit(db: Session, action: str) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("Slot %s rejected by a table constraint", action, exc_info=True)
        raise ConflictError(f"Cannot {action} slot: it conflicts with an existing row")
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to %s slot", action)
        raise PersistenceFailure(f"Failed to {action} slot")


# ---------------------------------------------------------------------------
# Slot CRUD
# ---------------------------------------------------------------------------


@router.get("/", response_model=List[SlotSchema])
def list_slots(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    course_id: Optional[UUID] = None,
    slot_status: Optional[SlotStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    query = db.query(Slot)
    if start_date:
        query = query.filter(Slot.slot_date >= start_date)
    if end_date:
        query = query.filter(Slot.slot_date <= end_date)
    if course_id:
        query = query.filter(Slot.course_id == course_id)
    if slot_status:
        query = query.filter(Slot.status == slot_status)

    return query.order_by(Slot.slot_date, Slot.slot_time).all()


@router.post("/", response_model=SlotSchema, status_code=status.HTTP_201_CREATED)
def create_slot(
    data: SlotCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    _check_course(db, data.course_id)
    slot_time = data.slot_time.replace(second=0, microsecond=0)
    _check_unique(db, data.slot_date, slot_time, data.course_id)

    slot = Slot(
        course_id=data.course_id,
        slot_date=data.slot_date,
        slot_time=slot_time,
        max_pax=data.max_pax,
        current_pax=0,
        status=SlotStatus.open,
    )
    db.add(slot)
    _commit(db, "create")
    db.refresh(slot)
    return slot


@router.post("/generate", response_model=GenerationReport, status_code=status.HTTP_201_CREATED)
def generate_slot_grid(
    data: SlotGenerateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    """
    Create one slot per (date, time) between start_date and end_date.

    - Pairs that already have a slot are skipped.
    - Rows are inserted in batches of 100; a failed batch is listed in
      `warnings` and the rest still go through.
    - Fails with 500 only when every batch failed.
    """
    return generate_slots(
        db,
        data.start_date,
        data.end_date,
        data.times,
        max_pax=data.max_pax,
        course_id=data.course_id,
    )


@router.get("/{id}", response_model=SlotSchema)
def get_slot(
    id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    return _get_slot(db, id)


@router.patch("/{id}", response_model=SlotSchema)
def update_slot(
    id: UUID,
    data: SlotUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    """
    Update a slot. `max_pax` can never go below the seats already sold.
    Status changes follow open <-> closed and open -> suspended (reason required).
    """
    slot = _get_slot(db, id)
    updates = data.model_dump(exclude_unset=True)

    try:
        if "max_pax" in updates and updates["max_pax"] is not None:
            slot = update_max_pax(db, slot.id, updates["max_pax"])

        if updates.get("status") is not None:
            change_slot_status(slot, updates["status"], updates.get("suspended_reason"))
        elif "suspended_reason" in updates and slot.status == SlotStatus.suspended:
            change_slot_status(slot, SlotStatus.suspended, updates["suspended_reason"])

        new_date = updates.get("slot_date") or slot.slot_date
        new_time = (updates.get("slot_time") or slot.slot_time).replace(second=0, microsecond=0)
        new_course = updates["course_id"] if "course_id" in updates else slot.course_id
        if (new_date, new_time, new_course) != (slot.slot_date, slot.slot_time, slot.course_id):
            _check_course(db, new_course)
            _check_unique(db, new_date, new_time, new_course, exclude_id=slot.id)
            slot.slot_date = new_date
            slot.slot_time = new_time
            slot.course_id = new_course
    except BookingError:
        db.rollback()
        raise

    _commit(db, "update")
    db.refresh(slot)
    return slot


@router.delete("/{id}", response_model=MessageResponse)
def delete_slot(
    id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
):
    """Hard-delete a slot that has never been booked."""
    slot = _get_slot(db, id)

    if slot.current_pax > 0:
        raise SlotInUse(
            "Cannot delete slot with existing bookings. Cancel reservations first or set status to closed."
        )
    if db.query(Reservation.id).filter(Reservation.slot_id == id).first():
        raise SlotInUse("Cannot delete slot with linked reservations. Remove reservations first.")

    db.delete(slot)
    _commit(db, "delete")
    return MessageResponse(message="Slot deleted", id=str(id))
