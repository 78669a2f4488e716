
import uuid
import enum
from sqlalchemy import (
    Column, Boolean, Date, Time, Integer, DECIMAL, DateTime, Enum, Uuid,
    CheckConstraint, UniqueConstraint, func,
)
from sqlalchemy.orm import relationship
from cinebook.db.session import Base

class ScreenFormat(str, enum.Enum):
    two_d = "2D"
    three_d = "3D"
    imax = "IMAX"
    four_dx = "4DX"

class Showtime(Base):
    __tablename__ = "showtimes"
    __table_args__ = (
        UniqueConstraint(
            "movie_id", "show_date", "show_time", "screen_format",
            name="uq_showtimes_movie_slot",
        ),
        CheckConstraint(
            "available_seats >= 0 AND available_seats <= total_seats",
            name="ck_showtimes_available_range",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    movie_id = Column(Integer, nullable=False, index=True)  # external catalog id
    show_date = Column(Date, nullable=False, index=True)
    show_time = Column(Time, nullable=False)                 # UTC
    screen_format = Column(
        Enum(ScreenFormat, name="screen_format", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    total_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)
    price = Column(DECIMAL(10, 2), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    bookings = relationship("Booking", back_populates="showtime")

    @property
    def booked_seats(self) -> int:
        return self.total_seats - self.available_seats
