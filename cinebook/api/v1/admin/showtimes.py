from uuid import UUID
from typing import List, Optional
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from cinebook.db.session import get_db
from cinebook.api.deps import get_current_admin
from cinebook.models.showtime import ScreenFormat
from cinebook.schemas.showtime import (
    ShowtimeCreate,
    ShowtimeUpdate,
    ShowtimeWithOccupancy as ShowtimeSchema,
)
from cinebook.services import inventory

router = APIRouter(prefix="/admin/showtimes", tags=["Admin - Showtimes"])


@router.post("/", response_model=ShowtimeSchema, status_code=status.HTTP_201_CREATED)
def create_showtime(
    data: ShowtimeCreate,
    db: Session = Depends(get_db),
    admin_id: str = Depends(get_current_admin),
):
    """
    Create one showtime.
    - `total_seats` defaults to the screen layout capacity.
    - `available_seats` defaults to `total_seats`.
    - 409 when the (movie, date, time, format) slot already exists.
    """
    return inventory.create_showtime(db, data)


@router.get("/", response_model=List[ShowtimeSchema])
def list_showtimes(
    movie_id: Optional[int] = Query(None, gt=0),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    screen_format: Optional[ScreenFormat] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    admin_id: str = Depends(get_current_admin),
):
    return inventory.list_showtimes(
        db,
        movie_id=movie_id,
        date_from=date_from,
        date_to=date_to,
        screen_format=screen_format,
        include_inactive=include_inactive,
    )


@router.get("/{showtime_id}", response_model=ShowtimeSchema)
def get_showtime(
    showtime_id: UUID,
    db: Session = Depends(get_db),
    admin_id: str = Depends(get_current_admin),
):
    return inventory.get_showtime(db, showtime_id)


@router.patch("/{showtime_id}", response_model=ShowtimeSchema)
def update_showtime(
    showtime_id: UUID,
    data: ShowtimeUpdate,
    db: Session = Depends(get_db),
    admin_id: str = Depends(get_current_admin),
):
    """Partial update. Shrinking `total_seats` below the held seat count is a 409."""
    return inventory.update_showtime(db, showtime_id, data)


@router.delete("/{showtime_id}", response_model=ShowtimeSchema)
def delete_showtime(
    showtime_id: UUID,
    db: Session = Depends(get_db),
    admin_id: str = Depends(get_current_admin),
):
    """Soft delete: the showtime stops accepting holds; existing bookings are untouched."""
    return inventory.delete_showtime(db, showtime_id)
