
from typing import Optional, List
from pydantic import BaseModel, Field, UUID4, model_validator
from decimal import Decimal
from datetime import date, time, datetime

from cinebook.models.showtime import ScreenFormat


# Showtime: Create (admin POST /admin/showtimes)
class ShowtimeCreate(BaseModel):
    movie_id: int = Field(gt=0)
    show_date: date
    show_time: time
    screen_format: ScreenFormat = ScreenFormat.two_d
    total_seats: Optional[int] = Field(None, gt=0)        # omit to use the screen layout
    available_seats: Optional[int] = Field(None, ge=0)    # omit for a fresh showtime
    price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)

    @model_validator(mode="after")
    def check_available_le_total(self):
        if (
            self.total_seats is not None
            and self.available_seats is not None
            and self.available_seats > self.total_seats
        ):
            raise ValueError("available_seats cannot exceed total_seats")
        return self


# Showtime: Update (admin PATCH /admin/showtimes/{id})
class ShowtimeUpdate(BaseModel):
    total_seats: Optional[int] = Field(None, gt=0)
    available_seats: Optional[int] = Field(None, ge=0)
    price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    screen_format: Optional[ScreenFormat] = None
    is_active: Optional[bool] = None


# Showtime: DB response
class Showtime(BaseModel):
    id: UUID4
    movie_id: int
    show_date: date
    show_time: time
    screen_format: ScreenFormat
    total_seats: int
    available_seats: int
    booked_seats: int
    price: Decimal
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Showtime with occupancy figures: used by the showtime picker
class ShowtimeWithOccupancy(Showtime):
    occupancy_percent: float = 0.0

    @model_validator(mode="after")
    def compute_occupancy(self):
        if self.total_seats:
            self.occupancy_percent = round(self.booked_seats * 100.0 / self.total_seats, 1)
        return self


class ShowtimeListResponse(BaseModel):
    movie_id: int
    date_from: date
    date_to: date
    created: int = 0
    showtimes: List[ShowtimeWithOccupancy]


# --- Seat map ---

class SeatState(BaseModel):
    id: str                 # "C7"
    number: int
    status: str             # available, held, booked
    aisle_after: bool = False


class SeatMapRow(BaseModel):
    label: str
    tier: str
    price: Decimal
    seats: List[SeatState]


class SeatMapResponse(BaseModel):
    showtime_id: UUID4
    screen_format: ScreenFormat
    total_seats: int
    available_seats: int
    rows: List[SeatMapRow]
    # Claimed seats whose label is outside the layout (admin-sized showtimes)
    extra_claimed: List[str] = []
