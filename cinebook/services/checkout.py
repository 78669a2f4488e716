import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from cinebook.core.config import settings
from cinebook.core.exceptions import (
    Conflict,
    Forbidden,
    NotFound,
    PaymentProviderUnavailable,
    PaymentWindowClosed,
    ValidationFailed,
)
from cinebook.integrations.payments import PaymentGateway
from cinebook.models.booking import Booking, BookingStatus, GUEST_USER_ID
from cinebook.schemas.payment import CheckoutRequest
from cinebook.services.ledger import attach_payment_session, create_booking, get_bookings_by_ids
from cinebook.services.reconciler import session_field, outcome_for_session, update_booking_status_by_session
from cinebook.services.transitions import apply_transition
from cinebook.utils.timeslots import show_start, utcnow

logger = logging.getLogger(__name__)


def _load_pending(db: Session, booking_ids: List[int], user_id: str) -> List[Booking]:
    """Pre-created holds to pay for: all found, all pending, one show, one owner."""
    rows = get_bookings_by_ids(db, sorted(set(booking_ids)))
    if len(rows) != len(set(booking_ids)):
        raise NotFound("Some bookings were not found")
    if any(row.status != BookingStatus.pending_payment for row in rows):
        raise Conflict("Some seats are no longer pending for payment")

    first = rows[0]
    if any(
        row.movie_id != first.movie_id
        or row.show_date != first.show_date
        or row.show_time != first.show_time
        or row.showtime_id != first.showtime_id
        for row in rows
    ):
        raise ValidationFailed("Pending seats must belong to same show and movie")
    if any((row.user_id or GUEST_USER_ID) != user_id for row in rows):
        raise Forbidden("Pending booking ownership mismatch")
    return rows


def _existing_session(db: Session, rows: List[Booking], gateway: PaymentGateway) -> Optional[dict]:
    """
    Reuse an open checkout already attached to these holds. A session that
    has meanwhile completed or expired is applied first.
    """
    session_ref = rows[0].session_ref
    if not session_ref or any(row.session_ref != session_ref for row in rows):
        return None

    session = gateway.retrieve_session(session_ref)
    outcome = outcome_for_session(session)
    if outcome is not None:
        update_booking_status_by_session(
            db, session_ref, outcome, session_field(session, "payment_intent")
        )
        raise Conflict("Some seats are no longer pending for payment")
    if session_field(session, "status") == "open":
        return {"id": session_ref, "url": session_field(session, "url")}
    return None


def start_checkout(
    db: Session,
    *,
    user_id: str,
    request: CheckoutRequest,
    gateway: PaymentGateway,
    now: Optional[datetime] = None,
) -> dict:
    """
    Create (or reuse) a hosted checkout session for a set of held seats and
    stamp its reference on the bookings.
    """
    if not gateway.enabled:
        raise PaymentProviderUnavailable("Payment provider is not configured")

    now = now or utcnow()
    user_id = user_id or GUEST_USER_ID

    if request.booking_ids:
        rows = _load_pending(db, request.booking_ids, user_id)
        first = rows[0]
        closes_at = show_start(first.show_date, first.show_time) - timedelta(
            minutes=settings.PAYMENT_WINDOW_MINUTES
        )
        if now >= closes_at:
            apply_transition(
                db,
                BookingStatus.expired,
                Booking.id.in_([row.id for row in rows]),
                from_statuses=(BookingStatus.pending_payment,),
            )
            db.commit()
            raise PaymentWindowClosed("Payment window expired for this show")

        existing = _existing_session(db, rows, gateway)
        if existing:
            return {
                "session_id": existing["id"],
                "url": existing["url"],
                "booking_ids": [row.id for row in rows],
                "amount": sum((Decimal(row.price) for row in rows), Decimal("0.00")),
                "currency": settings.PAYMENT_CURRENCY,
            }
    else:
        rows = create_booking(
            db,
            user_id=user_id,
            showtime_id=request.showtime_id,
            movie_id=request.movie_id,
            show_date=request.show_date,
            show_time=request.show_time,
            seat_ids=request.seat_ids,
            amount=request.amount,
            now=now,
        )

    first = rows[0]
    booking_ids = [row.id for row in rows]
    seat_ids = [row.seat_id for row in rows]
    amount = sum((Decimal(row.price) for row in rows), Decimal("0.00"))
    show_date = first.show_date.isoformat()
    show_time = first.show_time.strftime("%H:%M")
    title = request.movie_title or "Movie Ticket"

    session = gateway.create_checkout_session(
        amount=amount,
        currency=settings.PAYMENT_CURRENCY,
        product_name=title,
        description=f"{title} - {show_date} at {show_time} (Seats: {', '.join(seat_ids)})",
        metadata={
            "user_id": user_id,
            "movie_id": str(first.movie_id),
            "show_date": show_date,
            "show_time": show_time,
            "showtime_id": str(first.showtime_id),
            "seat_ids": ",".join(seat_ids),
            "booking_ids": ",".join(str(i) for i in booking_ids),
            "amount": str(amount),
        },
        expires_at=datetime.now(timezone.utc) + timedelta(minutes=settings.CHECKOUT_SESSION_MINUTES),
        success_url=settings.CHECKOUT_SUCCESS_URL,
        cancel_url=settings.CHECKOUT_CANCEL_URL,
        customer_email=request.customer_email,
    )

    attach_payment_session(db, booking_ids, session["id"])
    logger.info(
        "Checkout session %s started for %d booking(s) of user %s",
        session["id"], len(booking_ids), user_id,
    )
    return {
        "session_id": session["id"],
        "url": session["url"],
        "booking_ids": booking_ids,
        "amount": amount,
        "currency": settings.PAYMENT_CURRENCY,
    }
