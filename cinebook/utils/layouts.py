
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from cinebook.models.showtime import ScreenFormat

SEAT_LABEL_RE = re.compile(r"^([A-Z]{1,2})([1-9][0-9]{0,2})$")

DEFAULT_ROWS = ("A", "B", "C", "D", "E", "F", "G", "H")


@dataclass(frozen=True)
class SeatTier:
    name: str
    price: Decimal


VIP = SeatTier("VIP", Decimal("500.00"))
PREMIUM = SeatTier("PREMIUM", Decimal("300.00"))
STANDARD = SeatTier("STANDARD", Decimal("150.00"))


@dataclass(frozen=True)
class ScreenLayout:
    rows: Tuple[str, ...]
    block_sizes: Tuple[int, ...]   # seats per block, left to right; aisles between blocks
    vip_rows: int = 2
    premium_rows: int = 3

    @property
    def seats_per_row(self) -> int:
        return sum(self.block_sizes)

    @property
    def capacity(self) -> int:
        return len(self.rows) * self.seats_per_row

    def tier_for_row(self, row: str) -> Optional[SeatTier]:
        if row not in self.rows:
            return None
        index = self.rows.index(row)
        if index < self.vip_rows:
            return VIP
        if index < self.vip_rows + self.premium_rows:
            return PREMIUM
        return STANDARD

    def aisle_after(self) -> List[int]:
        """Seat numbers that are followed by an aisle."""
        edges, running = [], 0
        for size in self.block_sizes[:-1]:
            running += size
            edges.append(running)
        return edges

    def seat_labels(self, row: str) -> List[str]:
        return [f"{row}{n}" for n in range(1, self.seats_per_row + 1)]

    def contains(self, seat_id: str) -> bool:
        parsed = parse_seat_label(seat_id)
        if not parsed:
            return False
        row, number = parsed
        return row in self.rows and 1 <= number <= self.seats_per_row


SCREEN_LAYOUTS: Dict[ScreenFormat, ScreenLayout] = {
    ScreenFormat.two_d: ScreenLayout(rows=DEFAULT_ROWS, block_sizes=(4, 4, 4)),
    ScreenFormat.three_d: ScreenLayout(rows=DEFAULT_ROWS, block_sizes=(4, 3, 4)),
    ScreenFormat.imax: ScreenLayout(rows=DEFAULT_ROWS, block_sizes=(5, 4, 5)),
    ScreenFormat.four_dx: ScreenLayout(rows=DEFAULT_ROWS, block_sizes=(4, 3, 3)),
}


def get_layout(screen_format) -> ScreenLayout:
    """Layout for a format; unknown or missing formats get the 2D layout."""
    try:
        return SCREEN_LAYOUTS[ScreenFormat(screen_format)]
    except ValueError:
        return SCREEN_LAYOUTS[ScreenFormat.two_d]


def get_capacity(screen_format) -> int:
    return get_layout(screen_format).capacity


def parse_seat_label(seat_id: str) -> Optional[Tuple[str, int]]:
    """'C7' -> ('C', 7); None when the label is malformed."""
    match = SEAT_LABEL_RE.match(seat_id or "")
    if not match:
        return None
    return match.group(1), int(match.group(2))


def seat_price(screen_format, seat_id: str, fallback: Decimal) -> Decimal:
    """Tier price of a seat, or ``fallback`` when its row is outside the layout."""
    parsed = parse_seat_label(seat_id)
    if not parsed:
        return fallback
    tier = get_layout(screen_format).tier_for_row(parsed[0])
    return tier.price if tier else fallback


def normalize_seat_ids(seat_ids: Iterable[str]) -> List[str]:
    """Strip and upper-case seat labels; ValueError on malformed or repeated ones."""
    seats = [str(s).strip().upper() for s in seat_ids]
    bad = [s for s in seats if not parse_seat_label(s)]
    if bad:
        raise ValueError(f"Malformed seat id(s): {', '.join(bad)}")
    if len(set(seats)) != len(seats):
        raise ValueError("Duplicate seat ids in request")
    return seats
