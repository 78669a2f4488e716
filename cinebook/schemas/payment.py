
from typing import Optional, List
from pydantic import BaseModel, EmailStr, Field, UUID4, model_validator
from decimal import Decimal
from datetime import date, time, datetime

from cinebook.core.config import settings
from cinebook.schemas.common import SeatIds


# Checkout: either pay for pending bookings, or hold seats and pay in one call
class CheckoutRequest(BaseModel):
    booking_ids: List[int] = []

    showtime_id: Optional[UUID4] = None
    movie_id: Optional[int] = Field(None, gt=0)
    show_date: Optional[date] = None
    show_time: Optional[time] = None
    seat_ids: SeatIds = Field([], max_length=settings.MAX_SEATS_PER_BOOKING)
    amount: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)

    movie_title: Optional[str] = None
    customer_email: Optional[EmailStr] = None

    @model_validator(mode="after")
    def bookings_or_seats(self):
        if self.booking_ids:
            return self
        missing = [
            name
            for name in ("showtime_id", "movie_id", "show_date", "show_time")
            if getattr(self, name) is None
        ]
        if not self.seat_ids:
            missing.append("seat_ids")
        if missing:
            raise ValueError(
                "booking_ids, or a seat selection, is required; missing: " + ", ".join(missing)
            )
        return self


class CheckoutResponse(BaseModel):
    session_id: str
    url: Optional[str] = None
    booking_ids: List[int]
    amount: Decimal
    currency: str


# Payment: audit record
class Payment(BaseModel):
    id: int
    session_ref: str
    txn_ref: Optional[str] = None
    amount: Decimal
    currency: str
    status: str
    method: str
    recorded_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WebhookAck(BaseModel):
    received: bool = True
    event_type: Optional[str] = None
    transitioned: int = 0
