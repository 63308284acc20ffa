"""Ship placement rules for the 5x5 grid.

A ship of size *n* occupies *n* distinct cells in one straight, contiguous run:
either along a row (indices ascending by 1 without crossing a row boundary) or
down a column (indices ascending by 5). Placements are always handed back
sorted so that they can be stored and compared directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Sequence, Tuple

from .config import GRID_SIZE
from .coord_utils import CELL_RE, cell_to_rowcol, format_cell, rowcol_to_cell
from .models import SHIP_SIZES, CellIndex, is_valid_cell_index


class PlacementError(ValueError):
    """Raised when cells or labels do not describe a legal placement."""


class Orientation(str, Enum):
    SINGLE = "single"
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


@dataclass(frozen=True, slots=True)
class ValidatedPlacement:
    cells: Tuple[CellIndex, ...]
    orientation: Orientation


def validate_placement(cells: Sequence[int], ship_size: int) -> ValidatedPlacement:
    """Check *cells* form a legal ship of *ship_size* and return them sorted."""
    if ship_size not in SHIP_SIZES:
        raise PlacementError(f"Unsupported ship size: {ship_size}")
    cells = list(cells)
    if len(cells) != ship_size:
        raise PlacementError(f"Ship size {ship_size} requires {ship_size} cell(s), got {len(cells)}")

    for cell in cells:
        if not is_valid_cell_index(cell):
            raise PlacementError(f"Invalid cell index: {cell!r}")

    if len(set(cells)) != len(cells):
        raise PlacementError("Duplicate cells in placement")

    ordered = tuple(sorted(CellIndex(c) for c in cells))
    if ship_size == 1:
        return ValidatedPlacement(ordered, Orientation.SINGLE)

    orientation = _orientation_of(ordered)
    if orientation is None:
        raise PlacementError("Ship cells must be contiguous horizontally or vertically")
    return ValidatedPlacement(ordered, orientation)


def _orientation_of(ordered: Sequence[int]) -> Orientation | None:
    pairs = list(zip(ordered, ordered[1:]))
    if all(b == a + 1 and a // GRID_SIZE == b // GRID_SIZE for a, b in pairs):
        return Orientation.HORIZONTAL
    if all(b == a + GRID_SIZE for a, b in pairs):
        return Orientation.VERTICAL
    return None


def get_cell_label(cell: int) -> str:
    """Return the display label of *cell*, e.g. 0 -> 'A1', 24 -> 'E5'."""
    return format_cell(*cell_to_rowcol(CellIndex(cell)))


def parse_cell_label(label: str) -> CellIndex:
    """Parse a label such as 'b3' back to its cell index (case-insensitive)."""
    if not isinstance(label, str):
        raise PlacementError(f"Invalid cell label: {label!r}")
    match = CELL_RE.fullmatch(label.upper())
    if not match:
        raise PlacementError(f"Invalid cell label: {label!r}")
    row = ord(match.group(1)) - ord("A")
    col = int(match.group(2)) - 1
    return CellIndex(rowcol_to_cell(row, col))


def parse_cell_labels(labels: Iterable[str]) -> Tuple[CellIndex, ...]:
    return tuple(parse_cell_label(label) for label in labels)


def get_valid_placements(from_cell: int, ship_size: int) -> List[Tuple[CellIndex, ...]]:
    """All placements of *ship_size* that include *from_cell* as an end cell.

    Used by interactive placement: the player picks one cell and is offered
    the runs extending right, left, down and up from it.
    """
    start = CellIndex(from_cell)
    if ship_size not in SHIP_SIZES:
        raise PlacementError(f"Unsupported ship size: {ship_size}")
    if ship_size == 1:
        return [(start,)]

    row, col = start.row, start.col
    candidates = []
    # (delta_row, delta_col) for right, left, down, up
    for d_row, d_col in ((0, 1), (0, -1), (1, 0), (-1, 0)):
        end_row = row + d_row * (ship_size - 1)
        end_col = col + d_col * (ship_size - 1)
        if not (0 <= end_row < GRID_SIZE and 0 <= end_col < GRID_SIZE):
            continue
        run = (rowcol_to_cell(row + d_row * i, col + d_col * i) for i in range(ship_size))
        candidates.append(tuple(sorted(CellIndex(c) for c in run)))

    placements: List[Tuple[CellIndex, ...]] = []
    for cells in candidates:
        if cells not in placements:
            placements.append(cells)
    return placements
