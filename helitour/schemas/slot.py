from typing import Optional, List
from pydantic import BaseModel, Field, UUID4
from datetime import date, time, datetime

from helitour.models.slot import SlotStatus


# Slot — Create (admin POST /admin/slots)
class SlotCreate(BaseModel):
    course_id: Optional[UUID4] = None
    slot_date: date
    slot_time: time
    max_pax: int = Field(4, gt=0)


# Slot — Update (admin PATCH /admin/slots/{id})
class SlotUpdate(BaseModel):
    course_id: Optional[UUID4] = None
    slot_date: Optional[date] = None
    slot_time: Optional[time] = None
    max_pax: Optional[int] = None
    status: Optional[SlotStatus] = None
    suspended_reason: Optional[str] = None


# Slot — DB response
class Slot(BaseModel):
    id: UUID4
    course_id: Optional[UUID4] = None
    slot_date: date
    slot_time: time
    max_pax: int
    current_pax: int
    available_pax: int
    status: SlotStatus
    suspended_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Bulk generation — raw strings so the generator reports exactly which value is bad
class SlotGenerateRequest(BaseModel):
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    times: Optional[List[str]] = None
    max_pax: Optional[int] = None
    course_id: Optional[str] = None


class GenerationReport(BaseModel):
    message: str
    created: int
    skipped: int
    warnings: List[str] = []
    start_date: date
    end_date: date
    times: List[str]
    course_id: Optional[UUID4] = None
