import logging
from typing import List

from sqlalchemy.orm import Session

from cinebook.models.booking import Booking, BookingStatus
from cinebook.services.transitions import apply_transition

logger = logging.getLogger(__name__)


def cancel_bookings(db: Session, user_id: str, booking_ids: List[int]) -> int:
    """
    Cancel the user's pending or confirmed bookings among ``booking_ids`` and
    return their seats. Ids that are unknown, owned by someone else or already
    terminal are skipped. Returns how many bookings were cancelled.

    There is no cut-off relative to showtime here; lapsed pending holds are
    the sweeper's job.
    """
    ids = sorted(set(booking_ids))
    if not ids:
        return 0

    moved = apply_transition(
        db,
        BookingStatus.cancelled,
        Booking.id.in_(ids),
        Booking.user_id == user_id,
    )
    db.commit()

    logger.info(
        "User %s cancelled %d of %d requested booking(s)", user_id, len(moved), len(ids)
    )
    return len(moved)
