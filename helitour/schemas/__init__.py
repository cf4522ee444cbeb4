from helitour.schemas.common import PaginatedResponse, ErrorResponse, InsufficientCapacityError, MessageResponse
from helitour.schemas.slot import (
    Slot, SlotCreate, SlotUpdate, SlotGenerateRequest, GenerationReport,
)
from helitour.schemas.cancellation import (
    CancellationTier, CancellationPolicyCreate, CancellationPolicyUpdate,
    CancellationQuote, CancelledReservationRecord, CancellationQuoteResponse,
)
from helitour.schemas.reservation import (
    CustomerInput, Reservation, ReservationCreate, ReservationCreated, ReservationUpdate,
    CustomerCancelRequest, AdminCancelRequest, RefundRequest, Refund,
    CancellationResponse,
)
