"""
Showtime inventory: lazy materialization, admin CRUD, and the single
counter primitive every other component uses to move ``available_seats``.
"""

import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy import case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cinebook.core.config import settings
from cinebook.core.exceptions import Conflict, NotFound, ValidationFailed
from cinebook.models.showtime import Showtime, ScreenFormat
from cinebook.schemas.showtime import ShowtimeCreate, ShowtimeUpdate
from cinebook.utils.layouts import get_capacity
from cinebook.utils.timeslots import DEFAULT_SCHEDULE, iter_dates, resolve_date_range

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Counter primitive
# ---------------------------------------------------------------------------


def adjust_availability(db: Session, showtime_id: UUID, delta: int) -> bool:
    """
    Atomically add ``delta`` to a showtime's available_seats.

    A decrement is one conditional UPDATE that only matches while the result
    stays >= 0; a rejected decrement returns False (sold out). An increment
    always applies but is clamped to total_seats.

    Does not commit: runs inside the caller's transaction.
    """
    if delta == 0:
        return True

    query = db.query(Showtime).filter(Showtime.id == showtime_id)
    if delta < 0:
        updated = query.filter(Showtime.available_seats + delta >= 0).update(
            {Showtime.available_seats: Showtime.available_seats + delta},
            synchronize_session="fetch",
        )
    else:
        updated = query.update(
            {
                Showtime.available_seats: case(
                    (
                        Showtime.available_seats + delta > Showtime.total_seats,
                        Showtime.total_seats,
                    ),
                    else_=Showtime.available_seats + delta,
                )
            },
            synchronize_session="fetch",
        )

    if not updated:
        logger.info(
            "Rejected availability change of %d for showtime %s", delta, showtime_id
        )
    return bool(updated)


# ---------------------------------------------------------------------------
# Lazy materialization
# ---------------------------------------------------------------------------


def ensure_showtimes_exist(
    db: Session,
    movie_id: int,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> int:
    """
    Create the default schedule for every date in the range that has no
    showtime yet for this movie. Returns the number of rows created.

    Each date is committed on its own; losing an insert race to a concurrent
    caller rolls that date back and falls through to the rows the winner
    created. Call this before any other work in the session.
    """
    start, end = resolve_date_range(date_from, date_to)

    existing_dates = {
        row[0]
        for row in db.query(Showtime.show_date)
        .filter(
            Showtime.movie_id == movie_id,
            Showtime.show_date >= start,
            Showtime.show_date <= end,
        )
        .distinct()
        .all()
    }

    created = 0
    for day in iter_dates(start, end):
        if day in existing_dates:
            continue

        rows = []
        for show_time, screen_format in DEFAULT_SCHEDULE:
            capacity = get_capacity(screen_format)
            rows.append(Showtime(
                movie_id=movie_id,
                show_date=day,
                show_time=show_time,
                screen_format=screen_format,
                total_seats=capacity,
                available_seats=capacity,
                price=settings.DEFAULT_SEAT_PRICE,
            ))
        db.add_all(rows)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info(
                "Showtimes for movie %s on %s were created concurrently", movie_id, day
            )
            continue
        created += len(rows)

    if created:
        logger.info("Created %d showtime(s) for movie %s", created, movie_id)
    return created


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def list_showtimes(
    db: Session,
    movie_id: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    screen_format: Optional[ScreenFormat] = None,
    include_inactive: bool = False,
) -> List[Showtime]:
    query = db.query(Showtime)
    if not include_inactive:
        query = query.filter(Showtime.is_active == True)  # noqa: E712
    if movie_id is not None:
        query = query.filter(Showtime.movie_id == movie_id)
    if date_from:
        query = query.filter(Showtime.show_date >= date_from)
    if date_to:
        query = query.filter(Showtime.show_date <= date_to)
    if screen_format:
        query = query.filter(Showtime.screen_format == screen_format)
    return query.order_by(Showtime.show_date, Showtime.show_time).all()


def get_showtime(db: Session, showtime_id: UUID) -> Showtime:
    showtime = db.query(Showtime).filter(Showtime.id == showtime_id).first()
    if not showtime:
        raise NotFound("Showtime not found")
    return showtime


# ---------------------------------------------------------------------------
# Administrative CRUD
# ---------------------------------------------------------------------------


def create_showtime(db: Session, data: ShowtimeCreate) -> Showtime:
    duplicate = db.query(Showtime).filter(
        Showtime.movie_id == data.movie_id,
        Showtime.show_date == data.show_date,
        Showtime.show_time == data.show_time,
        Showtime.screen_format == data.screen_format,
    ).first()
    if duplicate:
        raise Conflict(
            f"Showtime already exists for movie {data.movie_id} on "
            f"{data.show_date} at {data.show_time:%H:%M} ({data.screen_format.value})"
        )

    values = data.model_dump()
    total = values["total_seats"] or get_capacity(data.screen_format)
    available = values.pop("available_seats")
    if available is None:
        available = total
    if available > total:
        raise ValidationFailed("available_seats cannot exceed total_seats")
    values["total_seats"] = total
    if values["price"] is None:
        values["price"] = settings.DEFAULT_SEAT_PRICE

    showtime = Showtime(available_seats=available, **values)
    db.add(showtime)
    db.commit()
    db.refresh(showtime)
    return showtime


def update_showtime(db: Session, showtime_id: UUID, data: ShowtimeUpdate) -> Showtime:
    """
    Apply a partial update. Changing total_seats without an explicit
    available_seats keeps the number of held seats constant.
    """
    showtime = (
        db.query(Showtime)
        .filter(Showtime.id == showtime_id)
        .with_for_update()
        .first()
    )
    if not showtime:
        raise NotFound("Showtime not found")

    updates = data.model_dump(exclude_unset=True)
    total = updates.get("total_seats", showtime.total_seats)
    if "available_seats" in updates:
        available = updates["available_seats"]
    else:
        available = showtime.available_seats + (total - showtime.total_seats)
        if available < 0:
            db.rollback()
            raise Conflict(
                f"{showtime.booked_seats} seat(s) are held; total_seats cannot drop to {total}"
            )
    if available > total:
        db.rollback()
        raise ValidationFailed("available_seats cannot exceed total_seats")

    updates["total_seats"] = total
    updates["available_seats"] = available
    for field, value in updates.items():
        setattr(showtime, field, value)

    db.commit()
    db.refresh(showtime)
    return showtime


def delete_showtime(db: Session, showtime_id: UUID) -> Showtime:
    """Soft delete: the row and its bookings are kept, new holds are refused."""
    showtime = db.query(Showtime).filter(
        Showtime.id == showtime_id, Showtime.is_active == True  # noqa: E712
    ).first()
    if not showtime:
        raise NotFound("Showtime not found")
    showtime.is_active = False
    db.commit()
    db.refresh(showtime)
    return showtime
