from typing import List, Optional
from datetime import date, time

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from cinebook.db.session import get_db
from cinebook.api.deps import get_current_user_id, get_payment_gateway, require_user
from cinebook.core.exceptions import NothingToCancel
from cinebook.integrations.payments import PaymentGateway
from cinebook.models.booking import BookingStatus
from cinebook.schemas.booking import (
    Booking as BookingSchema,
    BookingCancelRequest,
    BookingCancelResponse,
    BookingCreate,
    BookingGroup as BookingGroupSchema,
    SeatClaim,
)
from cinebook.schemas.common import PaginatedResponse
from cinebook.services import ledger
from cinebook.services.cancellation import cancel_bookings
from cinebook.services.reconciler import get_reconciled_booking
from cinebook.services.sweeper import expire_pending_bookings_before_show

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def _serialize_group(group: ledger.BookingGroup) -> BookingGroupSchema:
    return BookingGroupSchema(
        group_key=group.group_key,
        session_ref=group.session_ref,
        txn_ref=group.txn_ref,
        user_id=group.user_id,
        movie_id=group.movie_id,
        show_date=group.show_date,
        show_time=group.show_time,
        showtime_id=group.showtime_id,
        status=group.status,
        created_at=group.created_at,
        seat_ids=group.seat_ids,
        seats=group.seats,
        total_amount=group.total_amount,
    )


# ---------------------------------------------------------------------------
# POST /bookings: hold seats
# ---------------------------------------------------------------------------


@router.post("/", response_model=List[BookingSchema], status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """
    Hold the selected seats, one PENDING_PAYMENT row per seat.
    - All or nothing: one taken seat rejects the whole request (409 seats_unavailable).
    - 409 sold_out when the showtime cannot cover the seat count.
    - Anonymous callers book as the guest user.
    """
    return ledger.create_booking(
        db,
        user_id=user_id,
        showtime_id=data.showtime_id,
        movie_id=data.movie_id,
        show_date=data.show_date,
        show_time=data.show_time,
        seat_ids=data.seat_ids,
        amount=data.amount,
        price_per_seat=data.price_per_seat,
    )


# ---------------------------------------------------------------------------
# GET /bookings: current user's purchase history
# ---------------------------------------------------------------------------


@router.get("/", response_model=PaginatedResponse[BookingGroupSchema])
def list_my_bookings(
    status: Optional[BookingStatus] = Query(None, description="Filter purchases by status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    user_id: str = Depends(require_user),
):
    """Return the authenticated user's purchases, newest first. Lapsed holds are expired first."""
    expire_pending_bookings_before_show(db)

    groups = ledger.group_bookings(ledger.get_bookings_for_user(db, user_id))
    if status:
        groups = [g for g in groups if g.status == status]

    total = len(groups)
    page_groups = groups[(page - 1) * limit: page * limit]
    return PaginatedResponse(
        data=[_serialize_group(g) for g in page_groups],
        total=total,
        page=page,
        limit=limit,
        total_pages=-(-total // limit) if total else 0,
    )


# ---------------------------------------------------------------------------
# GET /bookings/movie: live claims for one screening
# ---------------------------------------------------------------------------


@router.get("/movie", response_model=List[SeatClaim])
def list_showtime_claims(
    movie_id: int = Query(..., gt=0),
    show_date: date = Query(...),
    show_time: time = Query(...),
    db: Session = Depends(get_db),
):
    """Seat ids currently held or booked for a screening."""
    expire_pending_bookings_before_show(db)
    rows = ledger.get_bookings_for_showtime(db, movie_id, show_date, show_time)
    return [SeatClaim(booking_id=b.id, seat_id=b.seat_id, status=b.status) for b in rows]


# ---------------------------------------------------------------------------
# GET /bookings/session/{session_id}: purchase by checkout session
# ---------------------------------------------------------------------------


@router.get("/session/{session_id}", response_model=BookingGroupSchema)
def get_booking_by_session(
    session_id: str,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Return the purchase attached to a checkout session. The session is looked
    up at the provider first so a missed webhook does not leave it pending.
    """
    return _serialize_group(get_reconciled_booking(db, session_id, gateway))


# ---------------------------------------------------------------------------
# POST /bookings/cancel
# ---------------------------------------------------------------------------


@router.post("/cancel", response_model=BookingCancelResponse)
def cancel_my_bookings(
    data: BookingCancelRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(require_user),
):
    """
    Cancel pending or confirmed bookings owned by the caller and return their seats.
    409 when none of the ids could be cancelled (unknown, not yours, or already final).
    """
    count = cancel_bookings(db, user_id, data.booking_ids)
    if not count:
        raise NothingToCancel("No bookings eligible for cancellation")
    return BookingCancelResponse(
        requested=len(set(data.booking_ids)),
        cancelled_count=count,
        message=f"Cancelled {count} booking(s)",
    )
