"""
Tests for helitour.utils.cancellation_policy: fee tiers, quotes and
applying a cancellation.
"""
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from helitour.core.errors import PersistenceFailure, ReservationNotCancellable, SlotNotFound
from helitour.db.init_db import seed_cancellation_policies
from helitour.models import CancellationPolicy, Notification, ReservationStatus, Slot
from helitour.utils import cancellation_policy
from helitour.utils.cancellation_policy import (
    DEFAULT_CANCELLATION_TIERS,
    apply_cancellation,
    business_today,
    compute_cancellation_quote,
    days_until,
    override_fee,
    quote_reservation,
    resolve_fee_percentage,
)


def tier(days_before, fee_percentage, name=None, is_active=True):
    return SimpleNamespace(
        name=name or f"{days_before} days",
        days_before=days_before,
        fee_percentage=fee_percentage,
        is_active=is_active,
    )


TIERS = [tier(1, 100), tier(3, 50), tier(7, 20)]
AS_OF = date(2024, 6, 10)


class TestFeeResolution:

    @pytest.mark.parametrize("days, expected", [
        (0, 100),
        (1, 100),
        (2, 50),
        (3, 50),
        (5, 20),
        (7, 20),
        (8, 0),
        (30, 0),
    ])
    def test_tier_lookup(self, days, expected):
        assert resolve_fee_percentage(TIERS, days) == expected

    def test_unordered_tiers(self):
        assert resolve_fee_percentage(list(reversed(TIERS)), 2) == 50

    def test_inactive_tiers_ignored(self):
        tiers = [tier(1, 100), tier(3, 50, is_active=False), tier(7, 20)]
        assert resolve_fee_percentage(tiers, 2) == 20

    def test_no_tiers_means_free(self):
        assert resolve_fee_percentage([], 0) == 0

    def test_fee_never_increases_with_more_notice(self):
        fees = [resolve_fee_percentage(TIERS, days) for days in range(0, 15)]
        assert all(a >= b for a, b in zip(fees, fees[1:]))


class TestQuote:

    def test_two_days_before_is_half(self):
        quote = compute_cancellation_quote(110000, TIERS, date(2024, 6, 12), as_of=AS_OF)

        assert quote.days_until == 2
        assert quote.fee_percentage == 50
        assert quote.cancellation_fee == 55000
        assert quote.refund_amount == 55000
        assert quote.can_cancel is True
        assert quote.applied_tier == "3 days"

    @pytest.mark.parametrize("total", [1, 999, 39600, 110000, 123457])
    def test_fee_and_refund_add_up(self, total):
        for offset in range(0, 10):
            quote = compute_cancellation_quote(total, TIERS, AS_OF + timedelta(days=offset), as_of=AS_OF)
            assert quote.cancellation_fee + quote.refund_amount == total
            assert quote.cancellation_fee == total * quote.fee_percentage // 100

    def test_past_flight_cannot_be_cancelled(self):
        quote = compute_cancellation_quote(39600, TIERS, date(2024, 6, 9), as_of=AS_OF)
        assert quote.days_until == -1
        assert quote.can_cancel is False
        assert quote.reason == "The flight date has already passed"

    def test_no_policy_rows(self):
        quote = compute_cancellation_quote(39600, [], date(2024, 6, 10), as_of=AS_OF)
        assert quote.fee_percentage == 0
        assert quote.refund_amount == 39600
        assert quote.applied_tier is None


class TestDaysUntil:

    def test_calendar_days(self):
        assert days_until(date(2024, 6, 12), as_of=AS_OF) == 2
        assert days_until(date(2024, 6, 10), as_of=AS_OF) == 0

    def test_aware_datetime_uses_business_timezone(self):
        # 2024-06-10 20:00 UTC is already 2024-06-11 in Tokyo
        as_of = datetime(2024, 6, 10, 20, 0, tzinfo=timezone.utc)
        assert days_until(date(2024, 6, 12), as_of=as_of) == 1

    def test_defaults_to_business_today(self):
        assert days_until(business_today()) == 0


class TestOverrideFee:

    def test_manual_fee(self):
        quote = compute_cancellation_quote(110000, TIERS, date(2024, 6, 12), as_of=AS_OF)
        manual = override_fee(quote, 11000)
        assert manual.cancellation_fee == 11000
        assert manual.refund_amount == 99000
        assert manual.fee_percentage == 10
        assert manual.applied_tier == "manual"

    def test_fee_capped_at_total(self):
        quote = compute_cancellation_quote(39600, TIERS, date(2024, 6, 30), as_of=AS_OF)
        assert override_fee(quote, 50000).refund_amount == 0


class TestSeedPolicies:

    def test_seed_once(self, db):
        assert seed_cancellation_policies(db) == len(DEFAULT_CANCELLATION_TIERS)
        assert seed_cancellation_policies(db) == 0
        assert db.query(CancellationPolicy).count() == len(DEFAULT_CANCELLATION_TIERS)


class TestApplyCancellation:

    def test_cancel_releases_seats(self, db, make_course, make_slot, make_customer,
                                   make_reservation, policy_tiers):
        course = make_course(price=36000)
        slot = make_slot(course, slot_date=business_today() + timedelta(days=2))
        reservation = make_reservation(make_customer(), course, slot, pax=3)
        assert slot.current_pax == 3

        quote = quote_reservation(db, reservation)
        record = apply_cancellation(db, reservation, quote, cancelled_by="customer", reason="Change of plans")

        assert record.status == ReservationStatus.cancelled
        assert record.cancellation_fee == reservation.total_price // 2
        assert record.slot_current_pax == 0
        assert reservation.status == ReservationStatus.cancelled
        assert reservation.cancellation_fee == record.cancellation_fee
        assert db.get(Slot, slot.id).current_pax == 0
        assert db.query(Notification).filter_by(type="reservation_cancelled").count() == 1

    def test_second_cancellation_is_rejected(self, db, make_course, make_slot, make_customer,
                                             make_reservation):
        course = make_course()
        slot = make_slot(course)
        reservation = make_reservation(make_customer(), course, slot, pax=2)
        quote = quote_reservation(db, reservation)

        apply_cancellation(db, reservation, quote, cancelled_by="customer", reason=None)
        with pytest.raises(ReservationNotCancellable):
            apply_cancellation(db, reservation, quote, cancelled_by="customer", reason=None)

        assert db.get(Slot, slot.id).current_pax == 0

    def test_quote_closed_for_completed(self, db, make_course, make_slot, make_customer,
                                        make_reservation):
        course = make_course()
        slot = make_slot(course)
        reservation = make_reservation(
            make_customer(), course, slot, status=ReservationStatus.completed
        )
        quote = quote_reservation(db, reservation)
        assert quote.can_cancel is False
        assert quote.reason == "Reservation is already completed"

    @pytest.mark.parametrize("failure, expected", [
        (OperationalError("UPDATE slots", {}, Exception("server closed the connection")), PersistenceFailure),
        (SlotNotFound(), SlotNotFound),
    ])
    def test_release_failure_rolls_back_status(self, db, monkeypatch, make_course, make_slot,
                                               make_customer, make_reservation, policy_tiers,
                                               failure, expected):
        course = make_course()
        slot = make_slot(course, slot_date=business_today() + timedelta(days=5))
        reservation = make_reservation(make_customer(), course, slot, pax=2)
        quote = quote_reservation(db, reservation)

        def failing_release(session, slot_id, pax):
            raise failure

        monkeypatch.setattr(cancellation_policy, "release_capacity", failing_release)

        with pytest.raises(expected):
            apply_cancellation(db, reservation, quote, cancelled_by="customer", reason="Change of plans")

        db.refresh(reservation)
        assert reservation.status == ReservationStatus.confirmed
        assert reservation.cancelled_at is None
        assert reservation.cancellation_fee is None
        assert db.get(Slot, slot.id).current_pax == 2
        assert db.query(Notification).filter_by(type="reservation_cancelled").count() == 0
