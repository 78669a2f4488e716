"""
Seat hold & booking ledger.

``create_booking`` turns a seat selection into PENDING_PAYMENT rows, one per
seat, all-or-nothing: the showtime row is locked, the live-claim check, the
availability decrement and the inserts share one transaction, and the partial
unique index on (showtime_id, seat_id) for live statuses backs the check up
against a concurrent insert.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cinebook.core.config import settings
from cinebook.core.exceptions import (
    InsufficientAvailability,
    NotFound,
    SeatsUnavailable,
    ShowtimeClosed,
    ShowtimeMismatch,
    ValidationFailed,
)
from cinebook.models.booking import Booking, BookingStatus, GUEST_USER_ID, LIVE_STATUSES
from cinebook.models.showtime import Showtime
from cinebook.services.inventory import adjust_availability
from cinebook.utils.layouts import get_layout, normalize_seat_ids, seat_price
from cinebook.utils.timeslots import show_start, utcnow

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _taken_seats(db: Session, showtime_id: UUID, seat_ids: Iterable[str]) -> List[str]:
    return [
        row[0]
        for row in db.query(Booking.seat_id)
        .filter(
            Booking.showtime_id == showtime_id,
            Booking.seat_id.in_(list(seat_ids)),
            Booking.status.in_(LIVE_STATUSES),
        )
        .all()
    ]


def _seat_prices(
    showtime: Showtime,
    seat_ids: List[str],
    amount: Optional[Decimal],
    price_per_seat: Optional[Decimal],
) -> List[Decimal]:
    """Per-seat prices: an even split of ``amount``, a flat price, or tier prices."""
    if amount is not None:
        if amount <= 0:
            raise ValidationFailed("amount must be positive")
        each = (Decimal(amount) / len(seat_ids)).quantize(CENT, rounding=ROUND_HALF_UP)
        return [each] * len(seat_ids)
    if price_per_seat is not None:
        if price_per_seat <= 0:
            raise ValidationFailed("price_per_seat must be positive")
        return [Decimal(price_per_seat).quantize(CENT)] * len(seat_ids)
    return [
        seat_price(showtime.screen_format, seat_id, Decimal(showtime.price))
        for seat_id in seat_ids
    ]


def _check_seats_on_screen(showtime: Showtime, seat_ids: List[str]) -> None:
    layout = get_layout(showtime.screen_format)
    outside = [s for s in seat_ids if not layout.contains(s)]
    if outside:
        raise ValidationFailed(f"Seat(s) not on this screen: {', '.join(outside)}")


def _check_showtime_matches(
    showtime: Showtime,
    movie_id: int,
    show_date: date,
    show_time: time,
    now: datetime,
) -> None:
    if not showtime.is_active:
        raise ShowtimeMismatch("Selected time slot is not active")
    if showtime.movie_id != movie_id:
        raise ShowtimeMismatch("Time slot does not belong to this movie")
    if showtime.show_date != show_date:
        raise ShowtimeMismatch("Selected date does not match the time slot")
    if showtime.show_time.replace(second=0, microsecond=0) != show_time.replace(
        second=0, microsecond=0, tzinfo=None
    ):
        raise ShowtimeMismatch("Selected time does not match the time slot")

    closes_at = show_start(showtime.show_date, showtime.show_time) - timedelta(
        minutes=settings.PAYMENT_WINDOW_MINUTES
    )
    if now >= closes_at:
        raise ShowtimeClosed("Booking for this showtime has closed")


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


def create_booking(
    db: Session,
    *,
    user_id: Optional[str],
    showtime_id: UUID,
    movie_id: int,
    show_date: date,
    show_time: time,
    seat_ids: List[str],
    amount: Optional[Decimal] = None,
    price_per_seat: Optional[Decimal] = None,
    now: Optional[datetime] = None,
) -> List[Booking]:
    """
    Hold ``seat_ids`` for ``user_id`` and return the new PENDING_PAYMENT rows.

    Raises SeatsUnavailable when any seat already has a live claim and
    InsufficientAvailability when the showtime counter cannot cover the
    request; in both cases nothing is written.
    """
    if not seat_ids:
        raise ValidationFailed("At least one seat is required")
    try:
        seat_ids = normalize_seat_ids(seat_ids)
    except ValueError as e:
        raise ValidationFailed(str(e))

    now = now or utcnow()
    user_id = user_id or GUEST_USER_ID

    showtime = (
        db.query(Showtime)
        .filter(Showtime.id == showtime_id)
        .with_for_update()
        .first()
    )
    if not showtime:
        db.rollback()
        raise NotFound("Showtime not found")

    try:
        _check_showtime_matches(showtime, movie_id, show_date, show_time, now)
        _check_seats_on_screen(showtime, seat_ids)
        prices = _seat_prices(showtime, seat_ids, amount, price_per_seat)
    except (ShowtimeMismatch, ShowtimeClosed, ValidationFailed):
        db.rollback()
        raise

    taken = _taken_seats(db, showtime.id, seat_ids)
    if taken:
        db.rollback()
        logger.info("Seat conflict on showtime %s: %s", showtime_id, ", ".join(taken))
        raise SeatsUnavailable(taken)

    available = showtime.available_seats
    if not adjust_availability(db, showtime.id, -len(seat_ids)):
        db.rollback()
        raise InsufficientAvailability(available=available, requested=len(seat_ids))

    batch_id = uuid.uuid4()
    created_at = datetime.now(timezone.utc)
    bookings = [
        Booking(
            user_id=user_id,
            movie_id=movie_id,
            show_date=showtime.show_date,
            show_time=showtime.show_time,
            showtime_id=showtime.id,
            seat_id=seat_id,
            price=price,
            status=BookingStatus.pending_payment,
            batch_id=batch_id,
            created_at=created_at,
        )
        for seat_id, price in zip(seat_ids, prices)
    ]
    db.add_all(bookings)
    try:
        db.flush()
    except IntegrityError:
        # A concurrent request claimed one of the seats between our check and insert
        db.rollback()
        taken = _taken_seats(db, showtime_id, seat_ids) or list(seat_ids)
        logger.info("Seat conflict on insert for showtime %s: %s", showtime_id, ", ".join(taken))
        raise SeatsUnavailable(taken)

    db.commit()
    for booking in bookings:
        db.refresh(booking)

    logger.info(
        "Held %d seat(s) on showtime %s for user %s (batch %s)",
        len(bookings), showtime_id, user_id, batch_id,
    )
    return bookings


def attach_payment_session(db: Session, booking_ids: List[int], session_ref: str) -> int:
    """Stamp a checkout session reference on a batch of bookings."""
    if not booking_ids:
        return 0
    updated = (
        db.query(Booking)
        .filter(Booking.id.in_(booking_ids))
        .update(
            {
                Booking.session_ref: session_ref,
                Booking.updated_at: datetime.now(timezone.utc),
            },
            synchronize_session="fetch",
        )
    )
    db.commit()
    return updated


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def get_bookings_by_ids(db: Session, booking_ids: List[int]) -> List[Booking]:
    return db.query(Booking).filter(Booking.id.in_(booking_ids)).order_by(Booking.id).all()


def get_bookings_for_user(db: Session, user_id: str) -> List[Booking]:
    return (
        db.query(Booking)
        .filter(Booking.user_id == user_id)
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .all()
    )


def get_bookings_for_showtime(
    db: Session, movie_id: int, show_date: date, show_time: time
) -> List[Booking]:
    """Live claims for one screening, used to paint the seat map."""
    return (
        db.query(Booking)
        .filter(
            Booking.movie_id == movie_id,
            Booking.show_date == show_date,
            Booking.show_time == show_time.replace(tzinfo=None),
            Booking.status.in_(LIVE_STATUSES),
        )
        .order_by(Booking.seat_id)
        .all()
    )


def get_live_claims(db: Session, showtime_id: UUID) -> Dict[str, BookingStatus]:
    """seat_id -> status for every live claim on a showtime."""
    return {
        seat_id: status
        for seat_id, status in db.query(Booking.seat_id, Booking.status)
        .filter(
            Booking.showtime_id == showtime_id,
            Booking.status.in_(LIVE_STATUSES),
        )
        .all()
    }


def get_booking_by_session_ref(db: Session, session_ref: str) -> Optional["BookingGroup"]:
    """All rows of a checkout session folded into one logical purchase."""
    rows = db.query(Booking).filter(Booking.session_ref == session_ref).all()
    if not rows:
        return None
    return group_bookings(rows)[0]


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------


@dataclass
class BookingGroup:
    """One logical purchase made of one or more seat rows."""

    group_key: str
    session_ref: Optional[str]
    txn_ref: Optional[str]
    user_id: str
    movie_id: int
    show_date: date
    show_time: time
    showtime_id: UUID
    status: BookingStatus
    created_at: Optional[datetime]
    rows: List[Booking] = field(default_factory=list)

    @property
    def seat_ids(self) -> List[str]:
        return [row.seat_id for row in self.rows]

    @property
    def booking_ids(self) -> List[int]:
        return [row.id for row in self.rows]

    @property
    def total_amount(self) -> Decimal:
        return sum((Decimal(row.price) for row in self.rows), Decimal("0.00"))

    @property
    def seats(self) -> List[dict]:
        return [
            {
                "booking_id": row.id,
                "seat_id": row.seat_id,
                "price": row.price,
                "status": row.status,
            }
            for row in self.rows
        ]


def group_key(booking: Booking) -> Tuple:
    """
    Primary key: the session reference. Rows without one yet fall back to
    (user, movie, date, time, showtime, status, creation batch).
    """
    if booking.session_ref:
        return ("session", booking.session_ref)
    return (
        "batch",
        booking.user_id,
        booking.movie_id,
        booking.show_date,
        booking.show_time,
        booking.showtime_id,
        booking.status,
        booking.batch_id,
    )


def _naive(value: Optional[datetime]) -> datetime:
    # SQLite hands back naive values, PostgreSQL aware UTC ones
    if value is None:
        return datetime.min
    return value.replace(tzinfo=None)


def _format_key(key: Tuple) -> str:
    if key[0] == "session":
        return f"session:{key[1]}"
    # status is part of the key: a partly cancelled batch splits into two groups
    return f"batch:{key[-1]}:{key[-2].value}"


def group_bookings(rows: Iterable[Booking]) -> List[BookingGroup]:
    """
    Fold seat rows into logical purchases, newest purchase first.

    Shared fields (status, date, txn ref, ...) come from the earliest-created
    row of each group.
    """
    ordered = sorted(rows, key=lambda b: (_naive(b.created_at), b.id or 0))
    groups: Dict[Tuple, BookingGroup] = {}
    for row in ordered:
        key = group_key(row)
        group = groups.get(key)
        if group is None:
            group = BookingGroup(
                group_key=_format_key(key),
                session_ref=row.session_ref,
                txn_ref=row.txn_ref,
                user_id=row.user_id,
                movie_id=row.movie_id,
                show_date=row.show_date,
                show_time=row.show_time,
                showtime_id=row.showtime_id,
                status=row.status,
                created_at=row.created_at,
            )
            groups[key] = group
        elif not group.txn_ref and row.txn_ref:
            group.txn_ref = row.txn_ref
        group.rows.append(row)

    return sorted(
        groups.values(),
        key=lambda g: (_naive(g.created_at), g.rows[0].id or 0),
        reverse=True,
    )
