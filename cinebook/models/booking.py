
import enum
from sqlalchemy import (
    Column, String, Date, Time, DateTime, DECIMAL, Integer, SmallInteger,
    ForeignKey, Index, Uuid, func, text,
)
from sqlalchemy.types import TypeDecorator
from sqlalchemy.orm import relationship
from cinebook.db.session import Base

GUEST_USER_ID = "guest"


class BookingStatus(str, enum.Enum):
    pending_payment = "pending_payment"
    confirmed = "confirmed"
    failed = "failed"
    expired = "expired"
    cancelled = "cancelled"
    refunded = "refunded"

    @property
    def code(self) -> int:
        return _STATUS_CODES[self]

    @classmethod
    def from_code(cls, code: int) -> "BookingStatus":
        return _STATUS_BY_CODE[code]


# Integer representation used in the bookings table
_STATUS_CODES = {
    BookingStatus.pending_payment: 1,
    BookingStatus.confirmed: 2,
    BookingStatus.failed: 3,
    BookingStatus.expired: 4,
    BookingStatus.cancelled: 5,
    BookingStatus.refunded: 6,
}
_STATUS_BY_CODE = {code: status for status, code in _STATUS_CODES.items()}

# A seat is claimed while its booking is in one of these states
LIVE_STATUSES = (BookingStatus.pending_payment, BookingStatus.confirmed)

LEGAL_TRANSITIONS = {
    BookingStatus.pending_payment: frozenset({
        BookingStatus.confirmed,
        BookingStatus.failed,
        BookingStatus.expired,
        BookingStatus.cancelled,
    }),
    BookingStatus.confirmed: frozenset({
        BookingStatus.cancelled,
        BookingStatus.refunded,
    }),
    BookingStatus.failed: frozenset(),
    BookingStatus.expired: frozenset(),
    BookingStatus.cancelled: frozenset(),
    BookingStatus.refunded: frozenset(),
}

# Entering any of these gives the seat back to the showtime
RELEASING_STATUSES = frozenset({
    BookingStatus.failed,
    BookingStatus.expired,
    BookingStatus.cancelled,
    BookingStatus.refunded,
})


def sources_for(target: BookingStatus) -> tuple:
    """Statuses from which ``target`` may legally be entered."""
    return tuple(
        source for source, targets in LEGAL_TRANSITIONS.items() if target in targets
    )


class BookingStatusType(TypeDecorator):
    """Stores BookingStatus as its integer code."""

    impl = SmallInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return BookingStatus(value).code

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return BookingStatus.from_code(value)


_LIVE_SEAT_CLAUSE = "status IN ({})".format(
    ", ".join(str(s.code) for s in LIVE_STATUSES)
)


class Booking(Base):
    """One seat claimed by one user for one showtime."""

    __tablename__ = "bookings"
    __table_args__ = (
        # At most one live claim per (showtime, seat)
        Index(
            "uq_bookings_live_seat",
            "showtime_id",
            "seat_id",
            unique=True,
            postgresql_where=text(_LIVE_SEAT_CLAUSE),
            sqlite_where=text(_LIVE_SEAT_CLAUSE),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True, default=GUEST_USER_ID)
    movie_id = Column(Integer, nullable=False, index=True)
    show_date = Column(Date, nullable=False)
    show_time = Column(Time, nullable=False)
    showtime_id = Column(Uuid(as_uuid=True), ForeignKey("showtimes.id"), nullable=False, index=True)
    seat_id = Column(String(8), nullable=False)
    price = Column(DECIMAL(10, 2), nullable=False)
    status = Column(BookingStatusType(), nullable=False, index=True, default=BookingStatus.pending_payment)
    batch_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    session_ref = Column(String(255), nullable=True, index=True)
    txn_ref = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    showtime = relationship("Showtime", back_populates="bookings")
