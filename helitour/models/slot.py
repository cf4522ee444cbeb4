import enum
import uuid
from sqlalchemy import (
    Column, String, Date, Time, Integer, DateTime, Enum, ForeignKey,
    CheckConstraint, UniqueConstraint, func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from helitour.db.session import Base


class SlotStatus(str, enum.Enum):
    open = "open"
    closed = "closed"         # sales stopped, reversible
    suspended = "suspended"   # operator cancellation, carries a reason


class Slot(Base):
    __tablename__ = "slots"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    course_id = Column(UUID(as_uuid=True), ForeignKey("courses.id"), nullable=True, index=True)
    slot_date = Column(Date, nullable=False, index=True)
    slot_time = Column(Time, nullable=False)
    max_pax = Column(Integer, nullable=False, default=4)
    current_pax = Column(Integer, nullable=False, default=0)
    status = Column(Enum(SlotStatus, name="slot_status"), nullable=False, default=SlotStatus.open)
    suspended_reason = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("max_pax > 0", name="ck_slots_max_pax_positive"),
        CheckConstraint("current_pax >= 0", name="ck_slots_current_pax_non_negative"),
        CheckConstraint("current_pax <= max_pax", name="ck_slots_current_pax_within_max"),
        UniqueConstraint(
            "course_id", "slot_date", "slot_time",
            name="uq_slots_course_date_time",
            postgresql_nulls_not_distinct=True,
        ),
    )

    # Relationships
    course = relationship("Course", back_populates="slots")
    reservations = relationship("Reservation", back_populates="slot")

    @property
    def available_pax(self) -> int:
        return self.max_pax - self.current_pax
