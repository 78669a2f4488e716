
from typing import Annotated, Optional, List, Generic, TypeVar
from pydantic import AfterValidator, BaseModel

from cinebook.utils.layouts import normalize_seat_ids

T = TypeVar("T")

# Seat labels as stored: stripped, upper-cased, well-formed and unique
SeatIds = Annotated[List[str], AfterValidator(normalize_seat_ids)]


# Paginated response wrapper: used by all list endpoints
class PaginatedResponse(BaseModel, Generic[T]):
    data: List[T]
    total: int
    page: int
    limit: int
    total_pages: int


# Error responses
class ErrorResponse(BaseModel):
    error: str
    message: str


class SeatsUnavailableError(ErrorResponse):
    unavailable_seat_ids: List[str]


class InsufficientCapacityError(ErrorResponse):
    available: int
    requested: int


# Sweeper trigger
class SweepResult(BaseModel):
    expired_count: int
    message: Optional[str] = None
