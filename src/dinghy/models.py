"""Value types shared by the placement, salvo and lifecycle engines.

Everything here is immutable. Callers build new values (``dataclasses.replace``)
instead of mutating existing ones, which keeps the engines free of side effects.
"""

from __future__ import annotations

import random
import re
import string
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, NewType, Optional, Tuple

from .config import TOTAL_CELLS, GRID_SIZE

GameId = NewType("GameId", str)
WalletAddress = NewType("WalletAddress", str)

GAME_ID_RE = re.compile(r"^BD-[A-Z0-9]+$")
# base58 alphabet (no 0, O, I, l), 32-44 chars
WALLET_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")

SHIP_SIZES = (1, 2, 3)

_BASE36 = string.digits + string.ascii_uppercase


class CellIndex(int):
    """A cell on the 5x5 grid, validated on construction.

    Grid layout::

         0  1  2  3  4
         5  6  7  8  9
        10 11 12 13 14
        15 16 17 18 19
        20 21 22 23 24
    """

    __slots__ = ()

    def __new__(cls, value: int) -> "CellIndex":
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < TOTAL_CELLS:
            raise ValueError(f"Invalid cell index: {value!r}")
        return super().__new__(cls, value)

    @property
    def row(self) -> int:
        return self // GRID_SIZE

    @property
    def col(self) -> int:
        return self % GRID_SIZE


def is_valid_cell_index(value: object) -> bool:
    """Return True if *value* is an integer in ``[0, 24]``."""
    return not isinstance(value, bool) and isinstance(value, int) and 0 <= value < TOTAL_CELLS


def to_cells(values: Iterable[int]) -> Tuple[CellIndex, ...]:
    return tuple(CellIndex(v) for v in values)


class GameStatus(str, Enum):
    """Lifecycle phases of a game."""

    WAITING = "waiting"
    ACTIVE = "active"
    REPOSITIONING = "repositioning"
    COMPLETE = "complete"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (GameStatus.COMPLETE, GameStatus.CANCELLED)


class CancelReason(str, Enum):
    INSUFFICIENT_PLAYERS = "insufficient_players"
    ADMIN_CANCELLED = "admin_cancelled"


@dataclass(frozen=True, slots=True)
class GameConfig:
    """Per-game settings, fixed when the game is created."""

    entry_fee_lamports: int
    max_players: int
    ship_size: int
    shots_per_salvo: int
    fill_deadline_minutes: float
    reposition_window_minutes: float
    max_rounds: int

    def __post_init__(self) -> None:
        if self.entry_fee_lamports < 0:
            raise ValueError("entry_fee_lamports must be >= 0")
        if self.max_players < 2:
            raise ValueError("max_players must be at least 2")
        if self.ship_size not in SHIP_SIZES:
            raise ValueError(f"ship_size must be one of {SHIP_SIZES}, got {self.ship_size}")
        if not 1 <= self.shots_per_salvo <= TOTAL_CELLS:
            raise ValueError(f"shots_per_salvo must be between 1 and {TOTAL_CELLS}")
        if self.fill_deadline_minutes < 0 or self.reposition_window_minutes < 0:
            raise ValueError("deadlines must be non-negative")
        if self.max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")

    @property
    def reposition_window_ms(self) -> int:
        return int(self.reposition_window_minutes * 60 * 1000)

    @property
    def fill_deadline_ms(self) -> int:
        return int(self.fill_deadline_minutes * 60 * 1000)


@dataclass(frozen=True, slots=True)
class PlayerState:
    """One participant as seen by the engines.

    ``hits`` only ever grows; ``is_eliminated`` flips to True once and stays.
    Lists passed for ``position``/``hits`` are normalised to tuples of
    :class:`CellIndex`.
    """

    wallet: str
    position: Tuple[CellIndex, ...] = ()
    hits: Tuple[CellIndex, ...] = ()
    twitter_handle: Optional[str] = None
    is_eliminated: bool = False
    eliminated_round: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "position", to_cells(self.position))
        object.__setattr__(self, "hits", to_cells(self.hits))

    @property
    def unhit_cells(self) -> Tuple[CellIndex, ...]:
        struck = set(self.hits)
        return tuple(c for c in self.position if c not in struck)


@dataclass(frozen=True, slots=True)
class GameState:
    """Lifecycle state of one game. Only ``transition`` produces new ones."""

    status: GameStatus = GameStatus.WAITING
    round: int = 0
    deadline: Optional[datetime] = None
    winners: Tuple[str, ...] = ()
    cancel_reason: Optional[CancelReason] = None


@dataclass(frozen=True, slots=True)
class RoundRecord:
    """Audit entry for one fired salvo."""

    round_number: int
    seed: str
    shots: Tuple[CellIndex, ...]
    eliminations: Tuple[str, ...]
    timestamp: datetime
    hits: dict = field(default_factory=dict)


def _to_base36(value: int) -> str:
    digits = []
    while True:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
        if not value:
            return "".join(reversed(digits))


def create_game_id() -> GameId:
    """Return a fresh id such as ``BD-LZ1Q8K3F9XQ2``."""
    ts = _to_base36(int(time.time() * 1000))
    rand = "".join(random.choices(_BASE36, k=4))
    return GameId(f"BD-{ts}{rand}")


def parse_game_id(value: str) -> GameId:
    if not GAME_ID_RE.match(value or ""):
        raise ValueError(f"Invalid game ID: {value!r}")
    return GameId(value)


def parse_wallet_address(value: str) -> WalletAddress:
    if not WALLET_RE.match(value or ""):
        raise ValueError(f"Invalid wallet address: {value!r}")
    return WalletAddress(value)
