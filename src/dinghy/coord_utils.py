import re
from typing import Tuple

from .config import GRID_SIZE

# Regex for valid labels A1–E5 (row letter, column digit)
CELL_RE = re.compile(r"^([A-E])([1-5])$")


def cell_to_rowcol(cell: int) -> Tuple[int, int]:
    """
    Convert a cell index 0..24 to a zero-based (row, col) tuple.
    """
    return divmod(cell, GRID_SIZE)


def rowcol_to_cell(row: int, col: int) -> int:
    """
    Convert zero-based (row, col) to a row-major cell index.
    """
    return row * GRID_SIZE + col


def format_cell(row: int, col: int) -> str:
    """
    Convert zero-based (row, col) to a label string like 'A1'.
    """
    return f"{chr(ord('A') + row)}{col + 1}"
