from helitour.models.user import User
from helitour.models.customer import Customer
from helitour.models.course import Course
from helitour.models.slot import Slot, SlotStatus
from helitour.models.reservation import Reservation, ReservationStatus, PaymentStatus
from helitour.models.cancellation_policy import CancellationPolicy
from helitour.models.payment import Payment, Refund, RefundReason
from helitour.models.notification import Notification
