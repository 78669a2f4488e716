import uuid
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal

import pytest

from cinebook.core.exceptions import (
    InsufficientAvailability,
    NotFound,
    SeatsUnavailable,
    ShowtimeClosed,
    ShowtimeMismatch,
    ValidationFailed,
)
from cinebook.models.booking import Booking, BookingStatus, GUEST_USER_ID
from cinebook.models.showtime import ScreenFormat
from cinebook.services import ledger

from conftest import at_show_start


def _hold(db, showtime, seat_ids, user_id="u1", **kwargs):
    return ledger.create_booking(
        db,
        user_id=user_id,
        showtime_id=showtime.id,
        movie_id=showtime.movie_id,
        show_date=showtime.show_date,
        show_time=showtime.show_time,
        seat_ids=seat_ids,
        **kwargs,
    )


def _available(db, showtime):
    db.refresh(showtime)
    return showtime.available_seats


def test_hold_creates_one_pending_row_per_seat(db, make_showtime):
    showtime = make_showtime(total_seats=100)
    rows = _hold(db, showtime, ["C7", "C8"], price_per_seat=Decimal("150"))

    assert [r.seat_id for r in rows] == ["C7", "C8"]
    assert all(r.status == BookingStatus.pending_payment for r in rows)
    assert all(r.price == Decimal("150.00") for r in rows)
    assert rows[0].batch_id == rows[1].batch_id
    assert rows[0].id is not None
    assert _available(db, showtime) == 98


def test_conflicting_hold_is_rejected_whole(db, make_showtime):
    showtime = make_showtime(total_seats=100)
    _hold(db, showtime, ["C7", "C8"])

    with pytest.raises(SeatsUnavailable) as exc:
        _hold(db, showtime, ["C7", "C9"], user_id="u2")
    assert exc.value.seat_ids == ["C7"]
    assert exc.value.payload()["unavailable_seat_ids"] == ["C7"]

    assert _available(db, showtime) == 98
    assert db.query(Booking).filter(Booking.user_id == "u2").count() == 0


def test_exact_availability_succeeds_one_more_fails(db, make_showtime):
    showtime = make_showtime(total_seats=10, available_seats=2)
    with pytest.raises(InsufficientAvailability) as exc:
        _hold(db, showtime, ["A1", "A2", "A3"])
    assert (exc.value.available, exc.value.requested) == (2, 3)
    assert db.query(Booking).count() == 0

    _hold(db, showtime, ["A1", "A2"])
    assert _available(db, showtime) == 0


def test_insert_race_maps_to_seat_conflict(db, make_showtime, monkeypatch):
    showtime = make_showtime(total_seats=100)
    _hold(db, showtime, ["C7"])

    # The pre-check misses a claim committed concurrently; the index catches it
    monkeypatch.setattr(ledger, "_taken_seats", lambda *args: [])
    with pytest.raises(SeatsUnavailable) as exc:
        _hold(db, showtime, ["C7"], user_id="u2")
    assert exc.value.seat_ids == ["C7"]
    assert _available(db, showtime) == 99


def test_guest_and_pricing_modes(db, make_showtime):
    showtime = make_showtime(total_seats=100, price=Decimal("120.00"))

    split = _hold(db, showtime, ["A1", "A2", "A3"], user_id=None, amount=Decimal("100"))
    assert [r.price for r in split] == [Decimal("33.33")] * 3
    assert split[0].user_id == GUEST_USER_ID

    tiered = _hold(db, showtime, ["B1", "D1", "H1"])
    assert [r.price for r in tiered] == [Decimal("500.00"), Decimal("300.00"), Decimal("150.00")]


def test_hold_checks_showtime_match(db, make_showtime):
    showtime = make_showtime()
    with pytest.raises(ShowtimeMismatch):
        ledger.create_booking(
            db,
            user_id="u1",
            showtime_id=showtime.id,
            movie_id=showtime.movie_id + 1,
            show_date=showtime.show_date,
            show_time=showtime.show_time,
            seat_ids=["C7"],
        )
    with pytest.raises(ShowtimeMismatch):
        ledger.create_booking(
            db,
            user_id="u1",
            showtime_id=showtime.id,
            movie_id=showtime.movie_id,
            show_date=showtime.show_date,
            show_time=time(9, 15),
            seat_ids=["C7"],
        )
    with pytest.raises(NotFound):
        ledger.create_booking(
            db,
            user_id="u1",
            showtime_id=uuid.uuid4(),
            movie_id=showtime.movie_id,
            show_date=showtime.show_date,
            show_time=showtime.show_time,
            seat_ids=["C7"],
        )
    assert _available(db, showtime) == showtime.total_seats


def test_hold_refused_inside_payment_window(db, make_showtime):
    showtime = make_showtime()
    with pytest.raises(ShowtimeClosed):
        _hold(db, showtime, ["C7"], now=at_show_start(showtime) - timedelta(minutes=30))


def test_inactive_showtime_refuses_holds(db, make_showtime):
    showtime = make_showtime()
    showtime.is_active = False
    db.commit()
    with pytest.raises(ShowtimeMismatch):
        _hold(db, showtime, ["C7"])


def test_duplicate_and_empty_seats_rejected(db, make_showtime):
    showtime = make_showtime()
    with pytest.raises(ValidationFailed):
        _hold(db, showtime, [])
    with pytest.raises(ValidationFailed):
        _hold(db, showtime, ["C7", "C7"])
    with pytest.raises(ValidationFailed):
        _hold(db, showtime, ["C7", " c7"])


def test_seat_labels_are_normalized_before_the_conflict_check(db, make_showtime):
    showtime = make_showtime()
    (row,) = _hold(db, showtime, [" c7 "])
    assert row.seat_id == "C7"

    with pytest.raises(SeatsUnavailable) as exc:
        _hold(db, showtime, ["c7"], user_id="u2")
    assert exc.value.seat_ids == ["C7"]
    assert db.query(Booking).filter(Booking.status == BookingStatus.pending_payment).count() == 1
    assert _available(db, showtime) == showtime.total_seats - 1


def test_seats_outside_the_screen_layout_are_rejected(db, make_showtime):
    showtime = make_showtime(total_seats=96)
    for seats in (["A99"], ["ZZ1"], ["A12", "A13"], ["J1"]):
        with pytest.raises(ValidationFailed):
            _hold(db, showtime, seats)
    assert db.query(Booking).count() == 0
    assert _available(db, showtime) == 96

    # 4DX rows are ten seats wide
    four_dx = make_showtime(show_time=time(20, 30), screen_format=ScreenFormat.four_dx, total_seats=80)
    with pytest.raises(ValidationFailed):
        _hold(db, four_dx, ["A11"])
    assert [r.seat_id for r in _hold(db, four_dx, ["A10", "H1"])] == ["A10", "H1"]


def test_queries(db, make_showtime):
    showtime = make_showtime()
    rows = _hold(db, showtime, ["C7", "C8"])
    _hold(db, showtime, ["D1"], user_id="u2")

    assert len(ledger.get_bookings_for_user(db, "u1")) == 2
    claims = ledger.get_bookings_for_showtime(db, showtime.movie_id, showtime.show_date, showtime.show_time)
    assert [b.seat_id for b in claims] == ["C7", "C8", "D1"]
    assert ledger.get_live_claims(db, showtime.id) == {
        "C7": BookingStatus.pending_payment,
        "C8": BookingStatus.pending_payment,
        "D1": BookingStatus.pending_payment,
    }

    assert ledger.attach_payment_session(db, [r.id for r in rows], "cs_1") == 2
    group = ledger.get_booking_by_session_ref(db, "cs_1")
    assert group.seat_ids == ["C7", "C8"]
    assert group.total_amount == Decimal("600.00")
    assert ledger.get_booking_by_session_ref(db, "cs_missing") is None


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------


def _row(id, seat_id, created_at, session_ref=None, batch_id=None, status=BookingStatus.pending_payment,
         txn_ref=None, user_id="u1"):
    return Booking(
        id=id,
        user_id=user_id,
        movie_id=550,
        show_date=created_at.date(),
        show_time=time(17, 0),
        showtime_id=uuid.UUID(int=1),
        seat_id=seat_id,
        price=Decimal("150.00"),
        status=status,
        batch_id=batch_id or uuid.UUID(int=100),
        session_ref=session_ref,
        txn_ref=txn_ref,
        created_at=created_at,
    )


def test_group_by_session_ref_earliest_row_wins():
    t0 = datetime(2030, 1, 1, 12, 0)
    rows = [
        _row(2, "C8", t0 + timedelta(seconds=1), session_ref="cs_1", status=BookingStatus.expired),
        _row(1, "C7", t0, session_ref="cs_1", status=BookingStatus.confirmed, txn_ref="pi_1"),
    ]
    (group,) = ledger.group_bookings(rows)
    assert group.group_key == "session:cs_1"
    assert group.status == BookingStatus.confirmed
    assert group.seat_ids == ["C7", "C8"]
    assert group.booking_ids == [1, 2]
    assert group.txn_ref == "pi_1"
    assert group.total_amount == Decimal("300.00")


def test_group_without_session_falls_back_to_batch():
    t0 = datetime(2030, 1, 1, 12, 0)
    batch_a, batch_b = uuid.UUID(int=1), uuid.UUID(int=2)
    rows = [
        _row(1, "C7", t0, batch_id=batch_a),
        _row(2, "C8", t0, batch_id=batch_a),
        _row(3, "D1", t0 + timedelta(minutes=5), batch_id=batch_b),
        _row(4, "D2", t0 + timedelta(minutes=5), batch_id=batch_b, user_id="u2"),
        _row(5, "E1", t0 + timedelta(minutes=9), session_ref="cs_9"),
    ]
    groups = ledger.group_bookings(rows)

    # newest purchase first
    assert [g.seat_ids for g in groups] == [["E1"], ["D2"], ["D1"], ["C7", "C8"]]
    assert groups[-1].group_key == f"batch:{batch_a}:pending_payment"


def test_grouping_mixes_aware_and_naive_timestamps():
    t0 = datetime(2030, 1, 1, 12, 0)
    rows = [
        _row(1, "C7", t0, session_ref="cs_1"),
        _row(2, "C8", (t0 + timedelta(hours=1)).replace(tzinfo=timezone.utc), session_ref="cs_2"),
    ]
    assert [g.session_ref for g in ledger.group_bookings(rows)] == ["cs_2", "cs_1"]


def test_partly_cancelled_batch_yields_distinct_group_keys():
    t0 = datetime(2030, 1, 1, 12, 0)
    batch = uuid.UUID(int=7)
    rows = [
        _row(1, "C7", t0, batch_id=batch),
        _row(2, "C8", t0, batch_id=batch, status=BookingStatus.cancelled),
    ]
    groups = ledger.group_bookings(rows)

    assert sorted(g.group_key for g in groups) == [
        f"batch:{batch}:cancelled",
        f"batch:{batch}:pending_payment",
    ]
    assert {g.status: g.seat_ids for g in groups} == {
        BookingStatus.pending_payment: ["C7"],
        BookingStatus.cancelled: ["C8"],
    }
