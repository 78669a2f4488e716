import uuid
from datetime import date, time
from decimal import Decimal

import pytest
from pydantic import ValidationError

from cinebook import schemas
from cinebook.core.config import settings


def _booking_payload(**overrides):
    payload = {
        "showtime_id": str(uuid.uuid4()),
        "movie_id": 550,
        "show_date": "2030-01-15",
        "show_time": "17:00",
        "seat_ids": ["C7", "C8"],
    }
    payload.update(overrides)
    return payload


def test_booking_create_normalizes_seat_ids():
    data = schemas.BookingCreate(**_booking_payload(seat_ids=[" c7", "c8 "]))
    assert data.seat_ids == ["C7", "C8"]
    assert data.show_time == time(17, 0)


@pytest.mark.parametrize(
    "seat_ids",
    [[], ["7C"], ["C0"], ["C7", "c7"]],
)
def test_booking_create_rejects_bad_seat_lists(seat_ids):
    with pytest.raises(ValidationError):
        schemas.BookingCreate(**_booking_payload(seat_ids=seat_ids))


def test_booking_create_caps_seat_count():
    too_many = [f"F{n}" for n in range(1, settings.MAX_SEATS_PER_BOOKING + 2)]
    with pytest.raises(ValidationError):
        schemas.BookingCreate(**_booking_payload(seat_ids=too_many))


def test_booking_create_single_price_source():
    with pytest.raises(ValidationError):
        schemas.BookingCreate(**_booking_payload(amount="300", price_per_seat="150"))
    with pytest.raises(ValidationError):
        schemas.BookingCreate(**_booking_payload(amount="0"))

    data = schemas.BookingCreate(**_booking_payload(amount="300.00"))
    assert data.amount == Decimal("300.00")


def test_booking_create_rejects_bad_movie_and_date():
    with pytest.raises(ValidationError):
        schemas.BookingCreate(**_booking_payload(movie_id=0))
    with pytest.raises(ValidationError):
        schemas.BookingCreate(**_booking_payload(show_date="15/01/2030"))


def test_checkout_request_needs_bookings_or_selection():
    assert schemas.CheckoutRequest(booking_ids=[1, 2]).booking_ids == [1, 2]

    with pytest.raises(ValidationError) as exc:
        schemas.CheckoutRequest(seat_ids=["C7"])
    assert "showtime_id" in str(exc.value)

    with pytest.raises(ValidationError):
        schemas.CheckoutRequest(booking_ids=[1], customer_email="not-an-email")


def test_showtime_create_available_le_total():
    with pytest.raises(ValidationError):
        schemas.ShowtimeCreate(
            movie_id=1, show_date=date(2030, 1, 1), show_time=time(10, 0),
            total_seats=10, available_seats=11,
        )
    with pytest.raises(ValidationError):
        schemas.ShowtimeCreate(
            movie_id=1, show_date=date(2030, 1, 1), show_time=time(10, 0),
            screen_format="70MM",
        )


def test_occupancy_percent_is_derived():
    showtime = schemas.ShowtimeWithOccupancy(
        id=uuid.uuid4(),
        movie_id=1,
        show_date=date(2030, 1, 1),
        show_time=time(10, 0),
        screen_format="IMAX",
        total_seats=112,
        available_seats=84,
        booked_seats=28,
        price=Decimal("150.00"),
    )
    assert showtime.occupancy_percent == 25.0


def test_cancel_request_bounds():
    with pytest.raises(ValidationError):
        schemas.BookingCancelRequest(booking_ids=[])
    assert schemas.BookingCancelRequest(booking_ids=[3]).booking_ids == [3]


def test_checkout_request_normalizes_seat_ids_like_booking_create():
    data = schemas.CheckoutRequest(**_booking_payload(seat_ids=[" c7", "d1"]))
    assert data.seat_ids == ["C7", "D1"]

    with pytest.raises(ValidationError):
        schemas.CheckoutRequest(**_booking_payload(seat_ids=["C7", "c7"]))
    with pytest.raises(ValidationError):
        schemas.CheckoutRequest(**_booking_payload(seat_ids=["7C"]))
