"""Rules for moving a ship between salvos.

A player may move only while at least one cell of their current ship is
unhit. Where they move is unrestricted beyond the normal placement rules:
choosing the new spot is the skill element of the game.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .models import CellIndex, PlayerState
from .placement import PlacementError, ValidatedPlacement, validate_placement


class RepositionError(ValueError):
    """Raised when a requested move breaks the repositioning rules."""


@dataclass(frozen=True, slots=True)
class RepositionCheck:
    can_reposition: bool
    unhit_cells: Tuple[CellIndex, ...]
    hit_cells: Tuple[CellIndex, ...]
    reason: Optional[str] = None


@dataclass(frozen=True, slots=True)
class DamageStats:
    total_cells: int
    hit_cells: int
    unhit_cells: int
    damage_percent: int
    can_move: bool


def can_player_reposition(player: PlayerState) -> RepositionCheck:
    if player.is_eliminated:
        return RepositionCheck(False, (), tuple(player.hits), "Player is eliminated")

    struck = set(player.hits)
    unhit = tuple(c for c in player.position if c not in struck)
    hit = tuple(c for c in player.position if c in struck)
    if not unhit:
        return RepositionCheck(False, (), hit, "All ship cells have been hit - cannot reposition")
    return RepositionCheck(True, unhit, hit)


def validate_reposition_move(
    old_position: Sequence[int],
    new_position: Sequence[int],
    hits: Sequence[int],
    ship_size: int,
) -> ValidatedPlacement:
    """Validate a move from *old_position* to *new_position*.

    Returns the validated (sorted) new placement or raises
    :class:`RepositionError`.
    """
    try:
        placement = validate_placement(new_position, ship_size)
    except PlacementError as exc:
        raise RepositionError(f"Invalid ship placement: {exc}") from exc

    if len(old_position) != len(placement.cells):
        raise RepositionError("Cannot change ship size during repositioning")

    struck = set(hits)
    if all(cell in struck for cell in old_position):
        raise RepositionError("Cannot move a fully hit ship")
    return placement


def get_ship_damage_stats(player: PlayerState) -> DamageStats:
    struck = set(player.hits)
    total = len(player.position)
    hit = sum(1 for c in player.position if c in struck)
    unhit = total - hit
    percent = round(hit * 100 / total) if total else 0
    return DamageStats(
        total_cells=total,
        hit_cells=hit,
        unhit_cells=unhit,
        damage_percent=percent,
        can_move=unhit > 0 and not player.is_eliminated,
    )
