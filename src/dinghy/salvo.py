"""Salvo generation and hit resolution.

Shots are derived from a 64-hex-character seed only, so anyone holding the
seed can recompute a round and check the published result.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, Sequence, Tuple

from .config import TOTAL_CELLS
from .models import CellIndex, PlayerState

SEED_RE = re.compile(r"^[a-f0-9]{64}$")
# hex characters consumed per draw (2 bytes)
CHUNK = 4


class SalvoError(ValueError):
    """Raised for a malformed seed or an out-of-range shot count."""


@dataclass(frozen=True, slots=True)
class SalvoResult:
    shots: Tuple[CellIndex, ...]
    # wallet -> cells newly hit this round
    hits: Dict[str, Tuple[CellIndex, ...]] = field(default_factory=dict)
    eliminations: Tuple[str, ...] = ()
    survivors: Tuple[str, ...] = ()


def normalize_seed(seed: str) -> str:
    """Lower-case *seed* and check it is exactly 64 hex characters."""
    if not isinstance(seed, str):
        raise SalvoError("Invalid seed: must be 64 hex characters")
    normalized = seed.lower()
    if not SEED_RE.fullmatch(normalized):
        raise SalvoError("Invalid seed: must be 64 hex characters")
    return normalized


def generate_mock_seed() -> str:
    """Return a random seed for development and local simulation."""
    return os.urandom(32).hex()


def generate_shots(seed: str, count: int) -> Tuple[CellIndex, ...]:
    """Pick *count* distinct cells from *seed*, returned in ascending order.

    The seed is read in 4-character chunks, wrapping around after the last
    one. Each chunk, taken modulo the number of cells still unpicked, indexes
    into the ascending list of those cells. Every remaining cell can therefore
    be picked at every draw and no cell is picked twice.
    """
    normalized = normalize_seed(seed)
    if isinstance(count, bool) or not isinstance(count, int) or not 1 <= count <= TOTAL_CELLS:
        raise SalvoError(f"Invalid shot count: {count!r}. Must be 1-{TOTAL_CELLS}")

    remaining = list(range(TOTAL_CELLS))
    shots = []
    offset = 0
    while len(shots) < count:
        start = offset % len(normalized)
        chunk = (normalized + normalized)[start:start + CHUNK]
        offset += CHUNK
        value = int(chunk, 16)
        shots.append(remaining.pop(value % len(remaining)))
    return tuple(CellIndex(c) for c in sorted(shots))


def process_salvo(seed: str, shot_count: int, players: Iterable[PlayerState]) -> SalvoResult:
    """Fire one salvo at every active player.

    Cells already in a player's ``hits`` are never counted again. A player is
    eliminated once the running hit total covers their whole position.
    Inputs are left untouched; callers apply the result themselves.
    """
    shots = generate_shots(seed, shot_count)
    fired = set(shots)

    hits: Dict[str, Tuple[CellIndex, ...]] = {}
    eliminations = []
    survivors = []
    for player in players:
        if player.is_eliminated:
            continue
        already = set(player.hits)
        new_hits = tuple(c for c in player.position if c in fired and c not in already)
        if new_hits:
            hits[player.wallet] = new_hits
        if len(player.hits) + len(new_hits) >= len(player.position):
            eliminations.append(player.wallet)
        else:
            survivors.append(player.wallet)

    return SalvoResult(
        shots=shots,
        hits=hits,
        eliminations=tuple(eliminations),
        survivors=tuple(survivors),
    )


def would_be_hit(position: Sequence[int], shots: Sequence[int]) -> bool:
    """True if any cell of *position* is among *shots*."""
    fired = set(shots)
    return any(cell in fired for cell in position)


def calculate_hits(position: Sequence[int], shots: Sequence[int]) -> Tuple[int, ...]:
    fired = set(shots)
    return tuple(cell for cell in position if cell in fired)
