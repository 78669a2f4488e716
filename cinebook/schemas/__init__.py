from cinebook.schemas.common import (
    PaginatedResponse, ErrorResponse, SeatsUnavailableError, InsufficientCapacityError,
    SweepResult,
)
from cinebook.schemas.showtime import (
    Showtime, ShowtimeCreate, ShowtimeUpdate, ShowtimeWithOccupancy,
    ShowtimeListResponse, SeatMapResponse, SeatMapRow, SeatState,
)
from cinebook.schemas.booking import (
    Booking, BookingCreate, BookingGroup, BookingSeat, SeatClaim,
    BookingCancelRequest, BookingCancelResponse,
)
from cinebook.schemas.payment import CheckoutRequest, CheckoutResponse, Payment, WebhookAck
