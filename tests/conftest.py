import os

# Point settings at SQLite before helitour builds its engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret")

import uuid
from datetime import time, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from helitour.api.deps import get_refund_gateway
from helitour.core.errors import GatewayFailure
from helitour.core.security import create_access_token
from helitour.db.base import Base
from helitour.db.session import get_db
from helitour.main import app
from helitour.models import (
    CancellationPolicy,
    Course,
    Customer,
    Payment,
    PaymentStatus,
    Reservation,
    ReservationStatus,
    Slot,
    SlotStatus,
    User,
)
from helitour.utils.cancellation_policy import business_today


class FakeRefundGateway:
    """Records refund calls instead of talking to Stripe."""

    def __init__(self):
        self.calls = []
        self.fail_with = None

    def refund(self, payment_reference, amount, metadata=None):
        if self.fail_with:
            raise GatewayFailure(self.fail_with)
        self.calls.append((payment_reference, amount, metadata or {}))
        return f"re_test_{len(self.calls)}"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return FakeRefundGateway()


@pytest.fixture
def client(db, gateway):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_refund_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_course(db):
    def _make(price=36000, max_pax=4, is_active=True):
        course = Course(title="Tokyo Bay Night Cruise", price=price, max_pax=max_pax, is_active=is_active)
        db.add(course)
        db.commit()
        db.refresh(course)
        return course
    return _make


@pytest.fixture
def make_slot(db):
    def _make(course=None, slot_date=None, slot_time=time(14, 0), max_pax=4,
              current_pax=0, status=SlotStatus.open):
        slot = Slot(
            course_id=course.id if course else None,
            slot_date=slot_date or business_today() + timedelta(days=10),
            slot_time=slot_time,
            max_pax=max_pax,
            current_pax=current_pax,
            status=status,
        )
        db.add(slot)
        db.commit()
        db.refresh(slot)
        return slot
    return _make


@pytest.fixture
def make_customer(db):
    def _make(email=None):
        customer = Customer(email=email or f"{uuid.uuid4().hex[:8]}@example.com", name="Hanako Yamada")
        db.add(customer)
        db.commit()
        db.refresh(customer)
        return customer
    return _make


@pytest.fixture
def make_reservation(db):
    """Reservation row with its seats already counted on the slot."""
    def _make(customer, course, slot, pax=2, total_price=None,
              status=ReservationStatus.confirmed, payment_status=PaymentStatus.pending):
        subtotal = course.price * pax
        total = total_price if total_price is not None else subtotal + subtotal // 10
        reservation = Reservation(
            booking_number=f"HT-{uuid.uuid4().hex[:8].upper()}",
            customer_id=customer.id,
            course_id=course.id,
            slot_id=slot.id,
            reservation_date=slot.slot_date,
            reservation_time=slot.slot_time,
            pax=pax,
            subtotal=subtotal,
            tax=total - subtotal,
            total_price=total,
            status=status,
            payment_status=payment_status,
        )
        slot.current_pax += pax
        db.add(reservation)
        db.commit()
        db.refresh(reservation)
        return reservation
    return _make


@pytest.fixture
def make_payment(db):
    def _make(reservation, amount=None, intent_id="pi_test_123"):
        payment = Payment(
            reservation_id=reservation.id,
            amount=amount if amount is not None else reservation.total_price,
            status=PaymentStatus.paid,
            stripe_payment_intent_id=intent_id,
        )
        reservation.payment_status = PaymentStatus.paid
        db.add(payment)
        db.commit()
        db.refresh(payment)
        return payment
    return _make


@pytest.fixture
def policy_tiers(db):
    tiers = [
        CancellationPolicy(name="Day before or same day", days_before=1, fee_percentage=100, display_order=0),
        CancellationPolicy(name="2-3 days before", days_before=3, fee_percentage=50, display_order=1),
        CancellationPolicy(name="4-7 days before", days_before=7, fee_percentage=20, display_order=2),
    ]
    db.add_all(tiers)
    db.commit()
    return tiers


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


@pytest.fixture
def admin_user(db):
    user = User(email="ops@example.com", full_name="Ops Admin", role="admin")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def staff_user(db):
    user = User(email="desk@example.com", full_name="Front Desk", role="staff")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin_headers(admin_user):
    return {"Authorization": f"Bearer {create_access_token(admin_user.id)}"}


@pytest.fixture
def staff_headers(staff_user):
    return {"Authorization": f"Bearer {create_access_token(staff_user.id)}"}


@pytest.fixture
def customer_headers():
    def _headers(customer):
        token = create_access_token(customer.id, scope="customer")
        return {"Authorization": f"Bearer {token}"}
    return _headers
