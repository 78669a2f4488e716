from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple

from sqlalchemy import and_, or_

from cinebook.core.config import settings
from cinebook.core.exceptions import ValidationFailed
from cinebook.models.showtime import ScreenFormat

# Canonical daily schedule used when a movie's showtimes are created lazily.
DEFAULT_SCHEDULE: Tuple[Tuple[time, ScreenFormat], ...] = (
    (time(10, 0), ScreenFormat.two_d),
    (time(13, 30), ScreenFormat.three_d),
    (time(17, 0), ScreenFormat.imax),
    (time(20, 30), ScreenFormat.four_dx),
)


def utcnow() -> datetime:
    # show_date/show_time are stored as timezone-naive UTC values
    return datetime.now(timezone.utc).replace(tzinfo=None)


def show_start(show_date: date, show_time: time) -> datetime:
    return datetime.combine(show_date, show_time)


def resolve_date_range(
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    today: Optional[date] = None,
) -> Tuple[date, date]:
    """
    Fill in a missing bound and validate the range.

    - no ``date_from``: today
    - no ``date_to``:   ``date_from`` + SHOWTIME_DAYS_AHEAD - 1
    """
    start = date_from or today or utcnow().date()
    end = date_to or start + timedelta(days=max(settings.SHOWTIME_DAYS_AHEAD, 1) - 1)
    if end < start:
        raise ValidationFailed("date_to must not be before date_from")
    if (end - start).days + 1 > settings.MAX_SHOWTIME_RANGE_DAYS:
        raise ValidationFailed(
            f"Date range may span at most {settings.MAX_SHOWTIME_RANGE_DAYS} days"
        )
    return start, end


def iter_dates(start: date, end: date):
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def starts_at_or_before(date_column, time_column, cutoff: datetime):
    """
    SQL filter: the (date, time) pair is at or before ``cutoff``.

    True when:
      - date  < cutoff date, or
      - date == cutoff date AND time <= cutoff time
    """
    return or_(
        date_column < cutoff.date(),
        and_(
            date_column == cutoff.date(),
            time_column <= cutoff.time(),
        ),
    )
