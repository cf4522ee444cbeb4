from uuid import UUID
from typing import List, Optional
from datetime import date, datetime
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, Query
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from helitour.core.config import settings
from helitour.db.session import get_db
from helitour.models.slot import Slot, SlotStatus
from helitour.schemas.slot import Slot as SlotSchema

router = APIRouter(prefix="/slots", tags=["Slots"])


# ---------------------------------------------------------------------------
# Public: available slots for a day (date/time picker)
# ---------------------------------------------------------------------------


@router.get("/available", response_model=List[SlotSchema])
def get_available_slots(
    date: date = Query(..., description="Flight date (YYYY-MM-DD)"),
    course_id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
):
    """
    Return open slots on `date` that still have seats.
    Slots that have already departed today are left out.
    """
    # slot_date/slot_time are local heliport wall-clock values
    now = datetime.now(ZoneInfo(settings.BUSINESS_TIMEZONE))
    today = now.date()
    current_time = now.time().replace(tzinfo=None)

    query = db.query(Slot).filter(
        Slot.slot_date == date,
        Slot.status == SlotStatus.open,
        Slot.current_pax < Slot.max_pax,
        or_(
            Slot.slot_date > today,
            and_(Slot.slot_date == today, Slot.slot_time >= current_time),
        ),
    )
    if course_id:
        query = query.filter(Slot.course_id == course_id)

    return query.order_by(Slot.slot_time).all()
