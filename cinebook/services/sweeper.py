import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from cinebook.core.config import settings
from cinebook.models.booking import Booking, BookingStatus
from cinebook.services.transitions import apply_transition
from cinebook.utils.timeslots import starts_at_or_before, utcnow

logger = logging.getLogger(__name__)


def expire_pending_bookings_before_show(db: Session, now: Optional[datetime] = None) -> int:
    """
    Expire every PENDING_PAYMENT booking nobody is going to pay for, giving
    its seat back to the showtime.

    A pending booking is due when:
      - its show starts within PAYMENT_WINDOW_MINUTES (or already started), or
      - it was created / sent to checkout more than PENDING_HOLD_MINUTES ago

    Safe to run at any time and concurrently with webhooks and cancellations.
    Returns the number of bookings expired.
    """
    now = now or utcnow()
    show_cutoff = now + timedelta(minutes=settings.PAYMENT_WINDOW_MINUTES)
    hold_cutoff = now.replace(tzinfo=timezone.utc) - timedelta(minutes=settings.PENDING_HOLD_MINUTES)

    moved = apply_transition(
        db,
        BookingStatus.expired,
        or_(
            starts_at_or_before(Booking.show_date, Booking.show_time, show_cutoff),
            func.coalesce(Booking.updated_at, Booking.created_at) <= hold_cutoff,
        ),
        from_statuses=(BookingStatus.pending_payment,),
    )
    db.commit()

    if moved:
        logger.info("Expired %d pending booking(s)", len(moved))
    return len(moved)
