"""Event and side-effect vocabulary of the game lifecycle.

Events are inputs to :func:`dinghy.state_machine.transition`; side effects are
its declarative outputs, executed afterwards by :mod:`dinghy.executor`. Each
variant is a small frozen dataclass carrying a ``TYPE`` tag for logs and error
messages.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Optional, Tuple, Union

from .models import CellIndex, to_cells


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlayerJoined:
    TYPE: ClassVar[str] = "PLAYER_JOINED"
    wallet: str
    position: Tuple[CellIndex, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "position", to_cells(self.position))


@dataclass(frozen=True)
class DeadlineReached:
    TYPE: ClassVar[str] = "DEADLINE_REACHED"


@dataclass(frozen=True)
class MaxPlayersReached:
    TYPE: ClassVar[str] = "MAX_PLAYERS_REACHED"


@dataclass(frozen=True)
class SalvoComplete:
    TYPE: ClassVar[str] = "SALVO_COMPLETE"
    seed: str
    survivors: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "survivors", tuple(self.survivors))


@dataclass(frozen=True)
class RepositionSubmitted:
    TYPE: ClassVar[str] = "REPOSITION_SUBMITTED"
    wallet: str
    position: Tuple[CellIndex, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "position", to_cells(self.position))


@dataclass(frozen=True)
class RepositionTimeout:
    TYPE: ClassVar[str] = "REPOSITION_TIMEOUT"


@dataclass(frozen=True)
class AdminCancel:
    TYPE: ClassVar[str] = "ADMIN_CANCEL"


@dataclass(frozen=True)
class AdminForceStart:
    TYPE: ClassVar[str] = "ADMIN_FORCE_START"


GameEvent = Union[
    PlayerJoined,
    DeadlineReached,
    MaxPlayersReached,
    SalvoComplete,
    RepositionSubmitted,
    RepositionTimeout,
    AdminCancel,
    AdminForceStart,
]


# ---------------------------------------------------------------------------
# Side effects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NotifyPlayers:
    TYPE: ClassVar[str] = "NOTIFY_PLAYERS"
    message: str
    # None means every player in the game
    wallets: Optional[Tuple[str, ...]] = None

    def __post_init__(self) -> None:
        if self.wallets is not None:
            object.__setattr__(self, "wallets", tuple(self.wallets))


@dataclass(frozen=True)
class ProcessPayouts:
    TYPE: ClassVar[str] = "PROCESS_PAYOUTS"
    winners: Tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "winners", tuple(self.winners))


@dataclass(frozen=True)
class ProcessRefunds:
    TYPE: ClassVar[str] = "PROCESS_REFUNDS"
    wallets: Tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "wallets", tuple(self.wallets))


@dataclass(frozen=True)
class ScheduleTimeout:
    TYPE: ClassVar[str] = "SCHEDULE_TIMEOUT"
    duration_ms: int
    event: GameEvent


@dataclass(frozen=True)
class PostTweet:
    TYPE: ClassVar[str] = "POST_TWEET"
    content: str


@dataclass(frozen=True)
class TriggerSalvo:
    TYPE: ClassVar[str] = "TRIGGER_SALVO"


SideEffect = Union[
    NotifyPlayers,
    ProcessPayouts,
    ProcessRefunds,
    ScheduleTimeout,
    PostTweet,
    TriggerSalvo,
]
