"""Plain-text views of a player's grid, used by the simulator and in logs."""

from __future__ import annotations

import logging
from typing import Iterable, List, Sequence

from .config import GRID_SIZE
from .placement import get_cell_label

logger = logging.getLogger(__name__)

WATER = "."
SHIP = "S"
HIT = "X"
MISS = "o"


def grid_rows(
    position: Sequence[int] = (),
    hits: Sequence[int] = (),
    shots: Sequence[int] = (),
) -> List[str]:
    """Render one ship with its hits and the shots fired around it.

    The first row is the column header; each following row starts with its
    letter, e.g. ``"A  . S X o ."``.
    """
    ship = set(position)
    struck = set(hits)
    fired = set(shots)
    rows = ["   " + " ".join(str(c + 1) for c in range(GRID_SIZE))]
    for r in range(GRID_SIZE):
        symbols = []
        for c in range(GRID_SIZE):
            cell = r * GRID_SIZE + c
            if cell in ship:
                symbols.append(HIT if cell in struck or cell in fired else SHIP)
            elif cell in fired:
                symbols.append(MISS)
            else:
                symbols.append(WATER)
        rows.append(f"{chr(ord('A') + r)}  " + " ".join(symbols))
    logger.debug("grid_rows() rendered %d ship cell(s), %d shot(s)", len(ship), len(fired))
    return rows


def format_cells(cells: Iterable[int]) -> str:
    return " ".join(get_cell_label(c) for c in cells)
