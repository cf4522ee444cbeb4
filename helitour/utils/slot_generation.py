"""
Batch slot generation over a date x time grid.

Every (date, time) pair between start_date and end_date (inclusive) is
created unless a slot already exists for that pair in the same course
context. Inserts are committed in chunks; a failing chunk is rolled back
and reported as a warning while the remaining chunks still run, so a
partially failed run can simply be repeated.
"""
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Sequence, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from helitour.core.config import settings
from helitour.core.errors import CourseNotFound, InvalidInput, PersistenceFailure
from helitour.models.course import Course
from helitour.models.slot import Slot, SlotStatus
from helitour.schemas.slot import GenerationReport

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


@dataclass(frozen=True)
class SlotGenerationParams:
    start_date: date
    end_date: date
    times: List[time]
    time_labels: List[str]
    max_pax: int
    course_id: Optional[uuid.UUID]


def _parse_date(value, field: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        raise InvalidInput(f"{field} must be in YYYY-MM-DD format")
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise InvalidInput(f"Invalid date value for {field}: {value}")


def validate_generation_request(
    start_date,
    end_date,
    times,
    max_pax=None,
    course_id=None,
) -> SlotGenerationParams:
    """
    Check a generation request before touching the database.
    Raises InvalidInput naming the offending field or value.
    """
    if not start_date or not end_date:
        raise InvalidInput("start_date and end_date are required")

    start = _parse_date(start_date, "start_date")
    end = _parse_date(end_date, "end_date")
    if start > end:
        raise InvalidInput("start_date must be before or equal to end_date")

    max_days = settings.SLOT_GENERATION_MAX_DAYS
    if (end - start).days > max_days:
        raise InvalidInput(f"Date range cannot exceed {max_days} days")

    if not isinstance(times, (list, tuple)) or not times:
        raise InvalidInput("times array is required and must not be empty")

    labels: List[str] = []
    for value in times:
        if not isinstance(value, str) or not TIME_PATTERN.match(value):
            raise InvalidInput(
                f"Invalid time format: {value}. Must be in HH:mm format (24-hour)"
            )
        if value not in labels:
            labels.append(value)

    if max_pax is None:
        max_pax = settings.DEFAULT_SLOT_MAX_PAX
    if isinstance(max_pax, bool) or not isinstance(max_pax, int) or max_pax <= 0:
        raise InvalidInput("max_pax must be a positive integer")

    parsed_course_id = None
    if course_id:
        try:
            parsed_course_id = uuid.UUID(str(course_id))
        except ValueError:
            raise InvalidInput("Invalid course_id format")

    return SlotGenerationParams(
        start_date=start,
        end_date=end,
        times=[datetime.strptime(label, "%H:%M").time() for label in labels],
        time_labels=labels,
        max_pax=max_pax,
        course_id=parsed_course_id,
    )


def _daterange(start: date, end: date):
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def _minute(value: time) -> time:
    return value.replace(second=0, microsecond=0)


def _existing_pairs(db: Session, params: SlotGenerationParams) -> Set[Tuple[date, time]]:
    """All (date, time) pairs already taken in the window, in one query."""
    query = db.query(Slot.slot_date, Slot.slot_time).filter(
        Slot.slot_date >= params.start_date,
        Slot.slot_date <= params.end_date,
    )
    if params.course_id:
        query = query.filter(Slot.course_id == params.course_id)
    else:
        query = query.filter(Slot.course_id.is_(None))

    return {(slot_date, _minute(slot_time)) for slot_date, slot_time in query.all()}


def _insert_batch(
    db: Session,
    pairs: Sequence[Tuple[date, time]],
    params: SlotGenerationParams,
) -> int:
    db.add_all(
        [
            Slot(
                course_id=params.course_id,
                slot_date=slot_date,
                slot_time=slot_time,
                max_pax=params.max_pax,
                current_pax=0,
                status=SlotStatus.open,
            )
            for slot_date, slot_time in pairs
        ]
    )
    db.commit()
    return len(pairs)


def generate_slots(
    db: Session,
    start_date,
    end_date,
    times,
    max_pax=None,
    course_id=None,
    batch_size: Optional[int] = None,
) -> GenerationReport:
    params = validate_generation_request(start_date, end_date, times, max_pax, course_id)
    batch_size = batch_size or settings.SLOT_GENERATION_BATCH_SIZE

    if params.course_id:
        course = db.query(Course.id).filter(Course.id == params.course_id).first()
        if not course:
            raise CourseNotFound(params.course_id)

    candidates = [
        (slot_date, slot_time)
        for slot_date in _daterange(params.start_date, params.end_date)
        for slot_time in params.times
    ]
    existing = _existing_pairs(db, params)
    new_pairs = [pair for pair in candidates if pair not in existing]
    skipped = len(candidates) - len(new_pairs)

    report = dict(
        start_date=params.start_date,
        end_date=params.end_date,
        times=params.time_labels,
        course_id=params.course_id,
    )

    if not new_pairs:
        return GenerationReport(
            message="No new slots to create - all slots already exist",
            created=0,
            skipped=skipped,
            **report,
        )

    created = 0
    warnings: List[str] = []
    for offset in range(0, len(new_pairs), batch_size):
        batch_number = offset // batch_size + 1
        batch = new_pairs[offset:offset + batch_size]
        try:
            created += _insert_batch(db, batch, params)
        except SQLAlchemyError as exc:
            db.rollback()
            detail = str(exc).splitlines()[0]
            logger.warning(
                "Slot generation batch %d (%d rows) failed: %s", batch_number, len(batch), detail
            )
            warnings.append(f"Batch {batch_number}: {detail}")

    if warnings and created == 0:
        logger.error(
            "Slot generation %s..%s created nothing; %d batch(es) failed.",
            params.start_date,
            params.end_date,
            len(warnings),
        )
        raise PersistenceFailure(f"Failed to create slots: {'; '.join(warnings)}")

    if warnings:
        # Partially generated runs are surfaced at ERROR so log alerting picks them up
        logger.error(
            "Slot generation %s..%s partially failed: created %d, %d batch(es) failed.",
            params.start_date,
            params.end_date,
            created,
            len(warnings),
        )
    else:
        logger.info(
            "Generated %d slot(s) for %s..%s (%d skipped).",
            created,
            params.start_date,
            params.end_date,
            skipped,
        )

    return GenerationReport(
        message=f"Successfully generated {created} slots",
        created=created,
        skipped=skipped,
        warnings=warnings,
        **report,
    )
