"""Pure lifecycle reducer for a single game.

``transition(state, event, context)`` returns the next :class:`GameState` and
the ordered list of side effects the caller must carry out. It performs no I/O,
never reads the clock (``context.now`` is supplied by the caller) and never
mutates its arguments, so replaying the same inputs always yields the same
output.

::

    waiting ──► active ──► repositioning ──► active ... ──► complete
       │                        │
       └──────► cancelled ◄─────┘
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from .events import (
    AdminCancel,
    AdminForceStart,
    DeadlineReached,
    GameEvent,
    MaxPlayersReached,
    NotifyPlayers,
    PlayerJoined,
    PostTweet,
    ProcessPayouts,
    ProcessRefunds,
    RepositionSubmitted,
    RepositionTimeout,
    SalvoComplete,
    ScheduleTimeout,
    SideEffect,
    TriggerSalvo,
)
from .models import CancelReason, GameConfig, GameState, GameStatus, PlayerState


class InvalidTransitionError(Exception):
    """Raised when *event* is not accepted in the current *status*."""

    def __init__(self, status: GameStatus, event: GameEvent, detail: str | None = None):
        self.status = status
        self.event = event
        kind = getattr(event, "TYPE", type(event).__name__)
        message = f"Invalid transition: {GameStatus(status).value} + {kind}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class InconsistentSnapshotError(ValueError):
    """Raised when the player snapshot contradicts the reported salvo outcome."""


@dataclass(frozen=True)
class StateMachineContext:
    config: GameConfig
    players: Sequence[PlayerState] = ()
    # aware datetime supplied by the caller; used for deadlines only
    now: Optional[datetime] = None


@dataclass(frozen=True)
class TransitionResult:
    new_state: GameState
    side_effects: List[SideEffect] = field(default_factory=list)


def create_initial_state(deadline: datetime | None = None) -> GameState:
    return GameState(status=GameStatus.WAITING, round=0, deadline=deadline)


def transition(state: GameState, event: GameEvent, context: StateMachineContext) -> TransitionResult:
    status = GameStatus(state.status)
    if status is GameStatus.WAITING:
        return _handle_waiting(state, event, context)
    if status is GameStatus.ACTIVE:
        return _handle_active(state, event, context)
    if status is GameStatus.REPOSITIONING:
        return _handle_repositioning(state, event, context)
    # complete / cancelled are terminal
    raise InvalidTransitionError(state.status, event)


def can_transition(state: GameState, event: GameEvent, context: StateMachineContext) -> bool:
    """Return True if *event* would be accepted, without applying it."""
    try:
        transition(state, event, context)
    except InvalidTransitionError:
        return False
    return True


# ---------------------------------------------------------------------------
# State handlers
# ---------------------------------------------------------------------------


def _handle_waiting(state: GameState, event: GameEvent, context: StateMachineContext) -> TransitionResult:
    config, players = context.config, context.players

    if isinstance(event, PlayerJoined):
        wallets = {p.wallet for p in players}
        count = len(players) if event.wallet in wallets else len(players) + 1
        joined = NotifyPlayers(f"Player joined! {count}/{config.max_players}")
        if count >= config.max_players:
            return TransitionResult(
                _started(),
                [
                    joined,
                    NotifyPlayers("Game is full! Starting..."),
                    PostTweet("Game starting! All players joined."),
                    TriggerSalvo(),
                ],
            )
        return TransitionResult(state, [joined])

    if isinstance(event, MaxPlayersReached):
        return TransitionResult(
            _started(),
            [
                NotifyPlayers("Game is full! Starting..."),
                PostTweet("Game starting! All players joined."),
                TriggerSalvo(),
            ],
        )

    if isinstance(event, DeadlineReached):
        active = _active(players)
        if len(active) < 2:
            return TransitionResult(
                _cancelled(state, CancelReason.INSUFFICIENT_PLAYERS),
                [
                    ProcessRefunds(tuple(p.wallet for p in players)),
                    NotifyPlayers("Game cancelled - not enough players. Refunds processing."),
                ],
            )
        return TransitionResult(
            _started(),
            [
                NotifyPlayers(f"Game starting with {len(active)} players!"),
                PostTweet(f"Game starting with {len(active)} players!"),
                TriggerSalvo(),
            ],
        )

    if isinstance(event, AdminForceStart):
        active = _active(players)
        if len(active) < 2:
            raise InvalidTransitionError(state.status, event, "at least 2 players required")
        return TransitionResult(
            _started(),
            [
                NotifyPlayers(f"Admin started game with {len(active)} players!"),
                TriggerSalvo(),
            ],
        )

    if isinstance(event, AdminCancel):
        return _admin_cancel(state, players)

    raise InvalidTransitionError(state.status, event)


def _handle_active(state: GameState, event: GameEvent, context: StateMachineContext) -> TransitionResult:
    if not isinstance(event, SalvoComplete):
        raise InvalidTransitionError(state.status, event)

    config, players = context.config, context.players
    survivors = event.survivors

    if not survivors:
        winners = _final_salvo_casualties(state.round, players)
        return _completed(
            state,
            winners,
            f"Game over! All ships sunk in final salvo. Pot split among {len(winners)} players.",
            f"Game complete! Pot split among {len(winners)} survivors.",
        )

    if len(survivors) == 1:
        return _completed(
            state,
            survivors,
            f"Game over! Winner: {survivors[0]}",
            "We have a winner! Congratulations!",
        )

    if state.round >= config.max_rounds:
        return _completed(
            state,
            survivors,
            f"Max rounds reached! Pot split among {len(survivors)} survivors.",
            f"Game complete after {config.max_rounds} rounds! {len(survivors)} survivors split the pot.",
        )

    if context.now is None:
        raise ValueError("context.now is required to open a reposition window")
    window = timedelta(minutes=config.reposition_window_minutes)
    return TransitionResult(
        GameState(
            status=GameStatus.REPOSITIONING,
            round=state.round,
            deadline=context.now + window,
        ),
        [
            NotifyPlayers(
                f"Round {state.round} complete! {len(survivors)} survivors. Reposition your ships!",
                wallets=survivors,
            ),
            ScheduleTimeout(config.reposition_window_ms, RepositionTimeout()),
        ],
    )


def _handle_repositioning(state: GameState, event: GameEvent, context: StateMachineContext) -> TransitionResult:
    players = context.players

    if isinstance(event, RepositionSubmitted):
        everyone_moved = all(
            p.wallet == event.wallet or len(p.position) > 0 for p in _active(players)
        )
        if everyone_moved:
            return TransitionResult(
                _next_round(state),
                [
                    NotifyPlayers(f"All players repositioned! Round {state.round + 1} starting..."),
                    TriggerSalvo(),
                ],
            )
        return TransitionResult(state, [NotifyPlayers(f"{event.wallet} has repositioned.")])

    if isinstance(event, RepositionTimeout):
        return TransitionResult(
            _next_round(state),
            [
                NotifyPlayers(f"Repositioning time up! Round {state.round + 1} starting..."),
                TriggerSalvo(),
            ],
        )

    if isinstance(event, AdminCancel):
        return _admin_cancel(state, players)

    raise InvalidTransitionError(state.status, event)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _active(players: Sequence[PlayerState]) -> List[PlayerState]:
    return [p for p in players if not p.is_eliminated]


def _started() -> GameState:
    return GameState(status=GameStatus.ACTIVE, round=1)


def _next_round(state: GameState) -> GameState:
    return GameState(status=GameStatus.ACTIVE, round=state.round + 1)


def _cancelled(state: GameState, reason: CancelReason) -> GameState:
    return GameState(status=GameStatus.CANCELLED, round=state.round, cancel_reason=reason)


def _admin_cancel(state: GameState, players: Sequence[PlayerState]) -> TransitionResult:
    return TransitionResult(
        _cancelled(state, CancelReason.ADMIN_CANCELLED),
        [
            ProcessRefunds(tuple(p.wallet for p in players)),
            NotifyPlayers("Game cancelled by admin. Refunds processing."),
        ],
    )


def _completed(state: GameState, winners: Sequence[str], message: str, tweet: str) -> TransitionResult:
    winners = tuple(winners)
    return TransitionResult(
        replace(state, status=GameStatus.COMPLETE, deadline=None, winners=winners, cancel_reason=None),
        [
            ProcessPayouts(winners),
            NotifyPlayers(message),
            PostTweet(tweet),
        ],
    )


def _final_salvo_casualties(round_number: int, players: Sequence[PlayerState]) -> tuple:
    """Winners when the last salvo sank every remaining ship.

    The pot goes to the players eliminated in *round_number*. The snapshot
    must already reflect that salvo: nobody may still be active and at least
    one player must carry the current round as their elimination round.
    """
    still_active = [p.wallet for p in players if not p.is_eliminated]
    if still_active:
        raise InconsistentSnapshotError(
            f"salvo reported no survivors but {', '.join(still_active)} not eliminated"
        )
    casualties = tuple(p.wallet for p in players if p.eliminated_round == round_number)
    if not casualties:
        raise InconsistentSnapshotError(f"no player eliminated in round {round_number}")
    return casualties
