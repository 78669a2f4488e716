import uuid
from datetime import time, timedelta
from decimal import Decimal

import pytest

from cinebook.core.exceptions import Conflict, NotFound, ValidationFailed
from cinebook.models.showtime import Showtime, ScreenFormat
from cinebook.schemas.showtime import ShowtimeCreate, ShowtimeUpdate
from cinebook.services import inventory


def test_ensure_showtimes_creates_default_schedule_once(db, show_day):
    created = inventory.ensure_showtimes_exist(db, 550, show_day, show_day + timedelta(days=2))
    assert created == 12

    showtimes = inventory.list_showtimes(db, movie_id=550)
    assert len(showtimes) == 12
    first_day = [s for s in showtimes if s.show_date == show_day]
    assert [(s.show_time, s.screen_format) for s in first_day] == [
        (time(10, 0), ScreenFormat.two_d),
        (time(13, 30), ScreenFormat.three_d),
        (time(17, 0), ScreenFormat.imax),
        (time(20, 30), ScreenFormat.four_dx),
    ]
    imax = first_day[2]
    assert imax.total_seats == imax.available_seats == 112
    assert imax.price == Decimal("150.00")

    assert inventory.ensure_showtimes_exist(db, 550, show_day, show_day + timedelta(days=2)) == 0


def test_ensure_showtimes_skips_dates_that_already_have_rows(db, make_showtime, show_day):
    make_showtime(movie_id=7, show_date=show_day, show_time=time(9, 0))
    created = inventory.ensure_showtimes_exist(db, 7, show_day, show_day + timedelta(days=1))
    assert created == 4
    assert len(inventory.list_showtimes(db, movie_id=7, date_from=show_day, date_to=show_day)) == 1


def test_ensure_showtimes_survives_a_lost_race(db, session_factory, show_day):
    # Another process materialized the same date between our read and our insert
    other = session_factory()
    inventory.ensure_showtimes_exist(other, 9, show_day, show_day)
    other.close()

    original = db.query

    def stale_query(*entities, **kwargs):
        query = original(*entities, **kwargs)
        if len(entities) == 1 and entities[0] is Showtime.show_date:
            return query.filter(Showtime.id.is_(None))
        return query

    db.query = stale_query
    try:
        assert inventory.ensure_showtimes_exist(db, 9, show_day, show_day) == 0
    finally:
        db.query = original
    assert len(inventory.list_showtimes(db, movie_id=9)) == 4


def test_decrement_never_goes_negative(db, make_showtime):
    showtime = make_showtime(total_seats=3)
    assert inventory.adjust_availability(db, showtime.id, -3)
    assert not inventory.adjust_availability(db, showtime.id, -1)
    db.commit()
    db.refresh(showtime)
    assert showtime.available_seats == 0


def test_increment_is_clamped_to_total(db, make_showtime):
    showtime = make_showtime(total_seats=10, available_seats=9)
    assert inventory.adjust_availability(db, showtime.id, 5)
    db.commit()
    db.refresh(showtime)
    assert showtime.available_seats == 10


def test_create_showtime_defaults_from_layout(db, show_day):
    showtime = inventory.create_showtime(db, ShowtimeCreate(
        movie_id=11, show_date=show_day, show_time=time(12, 0), screen_format=ScreenFormat.four_dx,
    ))
    assert showtime.total_seats == 80
    assert showtime.available_seats == 80
    assert showtime.booked_seats == 0

    with pytest.raises(Conflict):
        inventory.create_showtime(db, ShowtimeCreate(
            movie_id=11, show_date=show_day, show_time=time(12, 0), screen_format=ScreenFormat.four_dx,
        ))


def test_create_showtime_available_cannot_exceed_layout_total(db, show_day):
    with pytest.raises(ValidationFailed):
        inventory.create_showtime(db, ShowtimeCreate(
            movie_id=12, show_date=show_day, show_time=time(12, 0), available_seats=500,
        ))


def test_update_showtime_keeps_held_count(db, make_showtime):
    showtime = make_showtime(total_seats=100, available_seats=98)
    updated = inventory.update_showtime(db, showtime.id, ShowtimeUpdate(total_seats=120))
    assert (updated.total_seats, updated.available_seats) == (120, 118)

    with pytest.raises(Conflict):
        inventory.update_showtime(db, showtime.id, ShowtimeUpdate(total_seats=1))

    with pytest.raises(ValidationFailed):
        inventory.update_showtime(db, showtime.id, ShowtimeUpdate(available_seats=121))


def test_delete_is_soft(db, make_showtime):
    showtime = make_showtime()
    inventory.delete_showtime(db, showtime.id)

    assert inventory.list_showtimes(db, movie_id=showtime.movie_id) == []
    assert len(inventory.list_showtimes(db, movie_id=showtime.movie_id, include_inactive=True)) == 1
    with pytest.raises(NotFound):
        inventory.delete_showtime(db, showtime.id)


def test_get_showtime_not_found(db):
    with pytest.raises(NotFound):
        inventory.get_showtime(db, uuid.uuid4())
