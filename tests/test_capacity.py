"""
Tests for helitour.utils.capacity: seat accounting on slots.
"""
import random
import uuid
from datetime import date, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from helitour.core.errors import (
    InsufficientCapacity,
    InvalidInput,
    InvalidStatusTransition,
    SlotNotFound,
    SlotUnavailable,
)
from helitour.db.base import Base
from helitour.models import Slot, SlotStatus
from helitour.utils import capacity
from helitour.utils.capacity import (
    change_slot_status,
    release_capacity,
    reserve_capacity,
    update_max_pax,
)


class TestReserveCapacity:

    def test_reserve_then_reject_overbooking(self, db, make_slot):
        """Max 4: reserving 3 leaves 1, then asking for 2 fails and reports 1."""
        slot = make_slot(max_pax=4)

        slot = reserve_capacity(db, slot.id, 3)
        db.commit()
        assert slot.current_pax == 3
        assert slot.available_pax == 1

        with pytest.raises(InsufficientCapacity) as exc_info:
            reserve_capacity(db, slot.id, 2)
        assert exc_info.value.available == 1
        assert exc_info.value.requested == 2
        assert exc_info.value.message == "Only 1 spots available."

        db.rollback()
        assert db.get(Slot, slot.id).current_pax == 3

    def test_fill_exactly_to_max(self, db, make_slot):
        slot = make_slot(max_pax=4, current_pax=1)
        slot = reserve_capacity(db, slot.id, 3)
        assert slot.current_pax == 4
        assert slot.available_pax == 0

    @pytest.mark.parametrize("slot_status", [SlotStatus.closed, SlotStatus.suspended])
    def test_not_open_slot_is_unavailable(self, db, make_slot, slot_status):
        slot = make_slot(status=slot_status)
        with pytest.raises(SlotUnavailable):
            reserve_capacity(db, slot.id, 1)
        db.rollback()
        assert db.get(Slot, slot.id).current_pax == 0

    def test_unknown_slot(self, db):
        with pytest.raises(SlotNotFound):
            reserve_capacity(db, uuid.uuid4(), 1)

    @pytest.mark.parametrize("pax", [0, -1, True, "2"])
    def test_pax_must_be_positive_integer(self, db, make_slot, pax):
        slot = make_slot()
        with pytest.raises(InvalidInput):
            reserve_capacity(db, slot.id, pax)

    def test_random_sequences_stay_in_bounds(self, db, make_slot):
        """Interleaved reserve/release never leaves [0, max_pax]."""
        slot = make_slot(max_pax=6)
        rng = random.Random(42)
        booked = 0
        for _ in range(200):
            pax = rng.randint(1, 4)
            if rng.random() < 0.6:
                try:
                    reserve_capacity(db, slot.id, pax)
                    booked += pax
                except InsufficientCapacity:
                    pass
            elif booked >= pax:
                release_capacity(db, slot.id, pax)
                booked -= pax
            db.commit()
            current = db.get(Slot, slot.id).current_pax
            assert 0 <= current <= 6
            assert current == booked


class TestStaleSnapshots:

    def test_concurrent_bookers_cannot_oversell(self, tmp_path):
        """Five sessions that all saw 3 free seats: exactly three bookings succeed."""
        engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}")
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        setup = Session()
        slot = Slot(slot_date=date(2024, 6, 15), slot_time=time(9, 0), max_pax=3)
        setup.add(slot)
        setup.commit()
        slot_id = slot.id
        setup.close()

        sessions = [Session() for _ in range(5)]
        try:
            snapshots = [s.get(Slot, slot_id) for s in sessions]
            assert all(snap.available_pax == 3 for snap in snapshots)

            outcomes = []
            for session in sessions:
                try:
                    reserve_capacity(session, slot_id, 1)
                    session.commit()
                    outcomes.append(True)
                except InsufficientCapacity as exc:
                    session.rollback()
                    assert exc.available == 0
                    outcomes.append(False)

            assert outcomes.count(True) == 3

            check = Session()
            assert check.get(Slot, slot_id).current_pax == 3
            check.close()
        finally:
            for session in sessions:
                session.close()
            engine.dispose()


class TestReleaseCapacity:

    def test_release_returns_seats(self, db, make_slot):
        slot = make_slot(max_pax=4, current_pax=3)
        slot = release_capacity(db, slot.id, 2)
        assert slot.current_pax == 1

    def test_underflow_is_clamped_and_logged(self, db, make_slot, caplog):
        slot = make_slot(max_pax=4, current_pax=1)
        with caplog.at_level("WARNING", logger="helitour.utils.capacity"):
            slot = release_capacity(db, slot.id, 3)
        assert slot.current_pax == 0
        assert "clamping to 0" in caplog.text

    def test_release_on_closed_slot(self, db, make_slot):
        slot = make_slot(current_pax=2, status=SlotStatus.closed)
        slot = release_capacity(db, slot.id, 2)
        assert slot.current_pax == 0

    def test_clamp_does_not_erase_booking_made_in_between(self, db, make_slot, monkeypatch, caplog):
        """
        Max 4, 1 booked, release 2: the decrement misses, then 3 seats are
        booked before the clamp runs. The clamp must not zero the slot; the
        decrement is retried and leaves 2.
        """
        slot = make_slot(max_pax=4, current_pax=1)
        real_load = capacity._load_slot
        calls = []

        def load_then_book(session, slot_id):
            loaded = real_load(session, slot_id)
            if not calls:
                session.query(Slot).filter(Slot.id == slot_id).update(
                    {Slot.current_pax: Slot.current_pax + 3}, synchronize_session=False
                )
            calls.append(slot_id)
            return loaded

        monkeypatch.setattr(capacity, "_load_slot", load_then_book)

        with caplog.at_level("WARNING", logger="helitour.utils.capacity"):
            slot = release_capacity(db, slot.id, 2)
        db.commit()

        assert slot.current_pax == 2
        assert db.get(Slot, slot.id).current_pax == 2
        assert "clamping to 0" not in caplog.text

    def test_release_on_missing_slot(self, db):
        with pytest.raises(SlotNotFound):
            release_capacity(db, uuid.uuid4(), 1)


class TestUpdateMaxPax:

    def test_raise_and_lower_ceiling(self, db, make_slot):
        slot = make_slot(max_pax=4, current_pax=2)
        assert update_max_pax(db, slot.id, 6).max_pax == 6
        assert update_max_pax(db, slot.id, 2).max_pax == 2

    def test_cannot_go_below_booked(self, db, make_slot):
        slot = make_slot(max_pax=4, current_pax=3)
        with pytest.raises(InvalidInput, match="current bookings \\(3\\)"):
            update_max_pax(db, slot.id, 2)


class TestChangeSlotStatus:

    def test_close_and_reopen(self, make_slot):
        slot = make_slot()
        change_slot_status(slot, SlotStatus.closed)
        assert slot.status == SlotStatus.closed
        change_slot_status(slot, SlotStatus.open)
        assert slot.status == SlotStatus.open

    def test_suspend_requires_reason(self, make_slot):
        slot = make_slot()
        with pytest.raises(InvalidInput, match="suspended_reason"):
            change_slot_status(slot, SlotStatus.suspended, "  ")
        change_slot_status(slot, SlotStatus.suspended, "Strong winds")
        assert slot.status == SlotStatus.suspended
        assert slot.suspended_reason == "Strong winds"

    def test_suspended_is_final(self, make_slot):
        slot = make_slot(status=SlotStatus.suspended)
        with pytest.raises(InvalidStatusTransition):
            change_slot_status(slot, SlotStatus.open)

    def test_closed_cannot_be_suspended(self, make_slot):
        slot = make_slot(status=SlotStatus.closed)
        with pytest.raises(InvalidStatusTransition):
            change_slot_status(slot, SlotStatus.suspended, "Maintenance")
