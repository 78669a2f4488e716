
from typing import Annotated, Optional, List
from pydantic import BaseModel, Field, UUID4, model_validator
from decimal import Decimal
from datetime import date, time, datetime

from cinebook.core.config import settings
from cinebook.models.booking import BookingStatus
from cinebook.schemas.common import SeatIds


# Booking: Create (POST /bookings)
class BookingCreate(BaseModel):
    showtime_id: UUID4
    movie_id: int = Field(gt=0)
    show_date: date
    show_time: time
    seat_ids: SeatIds = Field(min_length=1, max_length=settings.MAX_SEATS_PER_BOOKING)
    # Either the total for all seats (split evenly), a flat per-seat price,
    # or neither (each seat priced from its tier)
    amount: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    price_per_seat: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)

    @model_validator(mode="after")
    def one_price_source(self):
        if self.amount is not None and self.price_per_seat is not None:
            raise ValueError("Provide either amount or price_per_seat, not both")
        return self


# Booking: one row (one seat)
class Booking(BaseModel):
    id: int
    user_id: str
    movie_id: int
    show_date: date
    show_time: time
    showtime_id: UUID4
    seat_id: str
    price: Decimal
    status: BookingStatus
    session_ref: Optional[str] = None
    txn_ref: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BookingSeat(BaseModel):
    booking_id: int
    seat_id: str
    price: Decimal
    status: BookingStatus


# One logical purchase: rows sharing a session reference or a creation batch
class BookingGroup(BaseModel):
    group_key: str
    session_ref: Optional[str] = None
    txn_ref: Optional[str] = None
    user_id: str
    movie_id: int
    show_date: date
    show_time: time
    showtime_id: UUID4
    status: BookingStatus
    created_at: Optional[datetime] = None
    seat_ids: List[str]
    seats: List[BookingSeat]
    total_amount: Decimal


# Seat-map projection for GET /bookings/movie
class SeatClaim(BaseModel):
    booking_id: int
    seat_id: str
    status: BookingStatus


# Booking: Cancel (POST /bookings/cancel)
class BookingCancelRequest(BaseModel):
    booking_ids: Annotated[List[int], Field(min_length=1, max_length=100)]


class BookingCancelResponse(BaseModel):
    requested: int
    cancelled_count: int
    message: str
