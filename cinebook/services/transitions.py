"""
Guarded booking-status transitions.

Every status change in the system goes through ``apply_transition``: one
UPDATE whose WHERE clause includes the allowed source statuses, so a row that
another component already moved is simply not matched. Concurrent callers
(webhook, poll, sweeper, cancellation) therefore need no coordination: at most
one of them moves a given row, the others see zero rows.
"""

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from cinebook.models.booking import (
    Booking,
    BookingStatus,
    LEGAL_TRANSITIONS,
    RELEASING_STATUSES,
    sources_for,
)
from cinebook.services.inventory import adjust_availability

logger = logging.getLogger(__name__)


def apply_transition(
    db: Session,
    target: BookingStatus,
    *criteria,
    from_statuses: Optional[Iterable[BookingStatus]] = None,
    txn_ref: Optional[str] = None,
) -> List[Tuple[int, UUID]]:
    """
    Move every booking matching ``criteria`` and currently in one of
    ``from_statuses`` (default: every legal source of ``target``) to
    ``target``. Seats of rows entering a releasing status are returned to
    their showtimes.

    Returns (booking_id, showtime_id) for the rows that actually moved.
    Does not commit.
    """
    sources = tuple(from_statuses) if from_statuses is not None else sources_for(target)
    for source in sources:
        if target not in LEGAL_TRANSITIONS[source]:
            raise ValueError(f"Illegal booking transition {source.value} -> {target.value}")
    if not sources:
        return []

    values = {"status": target, "updated_at": datetime.now(timezone.utc)}
    if txn_ref:
        values["txn_ref"] = txn_ref

    stmt = (
        update(Booking)
        .where(Booking.status.in_(sources), *criteria)
        .values(**values)
        .returning(Booking.id, Booking.showtime_id)
    )
    moved = [
        (row.id, row.showtime_id)
        for row in db.execute(stmt, execution_options={"synchronize_session": False})
    ]

    if moved and target in RELEASING_STATUSES:
        for showtime_id, count in Counter(s for _, s in moved).items():
            adjust_availability(db, showtime_id, count)

    return moved
