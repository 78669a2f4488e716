from uuid import UUID
from typing import Optional
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from cinebook.db.session import get_db
from cinebook.models.booking import BookingStatus
from cinebook.schemas.showtime import (
    Showtime as ShowtimeSchema,
    ShowtimeListResponse,
    SeatMapResponse,
    SeatMapRow,
    SeatState,
)
from cinebook.services.inventory import ensure_showtimes_exist, get_showtime, list_showtimes
from cinebook.services.ledger import get_live_claims
from cinebook.services.sweeper import expire_pending_bookings_before_show
from cinebook.utils.layouts import get_layout
from cinebook.utils.timeslots import resolve_date_range

router = APIRouter(prefix="/showtimes", tags=["Showtimes"])


# ---------------------------------------------------------------------------
# Public: showtimes for a movie (date/time picker screen)
# ---------------------------------------------------------------------------


@router.get("/", response_model=ShowtimeListResponse)
def get_movie_showtimes(
    movie_id: int = Query(..., gt=0, description="External catalog movie id"),
    date_from: Optional[date] = Query(None, description="First date (YYYY-MM-DD), default today"),
    date_to: Optional[date] = Query(None, description="Last date (YYYY-MM-DD)"),
    db: Session = Depends(get_db),
):
    """
    Return the active showtimes of a movie over a date range.
    Dates with no showtimes yet get the default schedule created first.
    """
    start, end = resolve_date_range(date_from, date_to)
    created = ensure_showtimes_exist(db, movie_id, start, end)
    showtimes = list_showtimes(db, movie_id=movie_id, date_from=start, date_to=end)
    return ShowtimeListResponse(
        movie_id=movie_id,
        date_from=start,
        date_to=end,
        created=created,
        showtimes=showtimes,
    )


@router.get("/{showtime_id}", response_model=ShowtimeSchema)
def get_showtime_detail(showtime_id: UUID, db: Session = Depends(get_db)):
    return get_showtime(db, showtime_id)


# ---------------------------------------------------------------------------
# Public: seat map (seat selection screen)
# ---------------------------------------------------------------------------


@router.get("/{showtime_id}/seat-map", response_model=SeatMapResponse)
def get_seat_map(showtime_id: UUID, db: Session = Depends(get_db)):
    """
    Returns the seat map for a showtime, grouped by row.
    Lapsed pending holds are expired before the response is built.
    Does not require authentication.
    """
    expire_pending_bookings_before_show(db)

    showtime = get_showtime(db, showtime_id)
    layout = get_layout(showtime.screen_format)
    claims = get_live_claims(db, showtime.id)
    aisles = set(layout.aisle_after())

    rows = []
    for label in layout.rows:
        tier = layout.tier_for_row(label)
        seats = []
        for number, seat_id in enumerate(layout.seat_labels(label), start=1):
            claim = claims.get(seat_id)
            if claim is None:
                state = "available"
            elif claim == BookingStatus.confirmed:
                state = "booked"
            else:
                state = "held"
            seats.append(SeatState(
                id=seat_id,
                number=number,
                status=state,
                aisle_after=number in aisles,
            ))
        rows.append(SeatMapRow(label=label, tier=tier.name, price=tier.price, seats=seats))

    return SeatMapResponse(
        showtime_id=showtime.id,
        screen_format=showtime.screen_format,
        total_seats=showtime.total_seats,
        available_seats=showtime.available_seats,
        rows=rows,
        extra_claimed=sorted(s for s in claims if not layout.contains(s)),
    )
