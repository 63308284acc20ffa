from dataclasses import dataclass
from typing import Tuple, Union

from .models import CellIndex
from .placement import PlacementError, parse_cell_labels


class CommandParseError(Exception):
    """Raised when a line cannot be parsed as a valid command."""


@dataclass(frozen=True)
class PlaceCommand:
    cells: Tuple[CellIndex, ...]


@dataclass(frozen=True)
class HoldCommand:
    pass


@dataclass(frozen=True)
class QuitCommand:
    pass


Command = Union[PlaceCommand, HoldCommand, QuitCommand]


def parse_command(line: str) -> Command:
    if line is None:
        raise CommandParseError("No command to parse")
    raw = line.strip()
    if not raw:
        raise CommandParseError("Empty command")
    parts = raw.split()
    verb = parts[0].upper()
    if verb == "PLACE":
        if len(parts) < 2:
            raise CommandParseError("PLACE requires at least one cell")
        try:
            cells = parse_cell_labels(parts[1:])
        except PlacementError as exc:
            raise CommandParseError(str(exc)) from exc
        return PlaceCommand(cells=cells)
    elif verb == "HOLD" and len(parts) == 1:
        return HoldCommand()
    elif verb == "QUIT" and len(parts) == 1:
        return QuitCommand()
    else:
        raise CommandParseError(f"Unknown command: {raw}")
