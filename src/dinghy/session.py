"""In-memory orchestrator for a single Battle Dinghy game.

A :class:`GameSession` owns the player roster, the lifecycle state and the
round history of one game. Every public call follows the same cycle under the
session lock: read the current state, ask :func:`~dinghy.state_machine.transition`
for the next one, store it, then hand the returned side effects to an
:class:`~dinghy.executor.EffectExecutor`.

Timers (fill deadline, reposition window, delayed salvo) are handles kept on
the session itself. They are cancelled when the phase they belong to ends and
when the game reaches a terminal state. A timer that fires after its phase is
over is logged and dropped.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from . import config as _cfg
from .events import (
    AdminCancel,
    AdminForceStart,
    DeadlineReached,
    GameEvent,
    PlayerJoined,
    RepositionSubmitted,
    RepositionTimeout,
    SalvoComplete,
)
from .executor import Announcer, EffectExecutor, Notifier, Settlement, log_announce, log_notify, log_settle
from .fairness import RoundSeeder
from .models import (
    GameConfig,
    GameState,
    GameStatus,
    PlayerState,
    RoundRecord,
    create_game_id,
    parse_game_id,
    parse_wallet_address,
)
from .placement import validate_placement
from .repositioning import RepositionError, can_player_reposition, validate_reposition_move
from .salvo import SalvoResult, process_salvo
from .state_machine import (
    InvalidTransitionError,
    StateMachineContext,
    TransitionResult,
    create_initial_state,
    transition,
)

logger = logging.getLogger(__name__)

Scheduler = Callable[[float, Callable[[], None]], Any]  # (delay_seconds, callback) -> handle
Subscriber = Callable[[GameEvent, TransitionResult], None]

DEADLINE_TIMER = "deadline"
REPOSITION_TIMER = "reposition"
SALVO_TIMER = "salvo"


class GameSessionError(Exception):
    """Raised when the session rejects a request (wrong phase, bad player...)."""


def start_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    """Default scheduler: run *callback* on a daemon thread after *delay* seconds."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GameSession:
    """One game from the waiting room to payout or refund.

    The scheduler must not run callbacks synchronously from inside the call
    that schedules them; it may run them on another thread or later on the
    same thread.
    """

    def __init__(
        self,
        config: GameConfig,
        *,
        game_id: str | None = None,
        seeder: RoundSeeder | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], datetime] | None = None,
        notify: Notifier = log_notify,
        announce: Announcer = log_announce,
        settle: Settlement = log_settle,
        salvo_delay: float = _cfg.SALVO_DELAY,
        platform_fee_percent: int = _cfg.PLATFORM_FEE_PERCENT,
    ):
        if game_id is None:
            game_id = create_game_id()
        try:
            self.game_id = parse_game_id(game_id)
        except ValueError as exc:
            raise GameSessionError(str(exc)) from exc

        self.config = config
        self.seeder = seeder if seeder is not None else RoundSeeder(self.game_id)
        self.salvo_delay = salvo_delay
        self._scheduler: Scheduler = scheduler or start_timer
        self._clock = clock or utc_now

        self._lock = threading.RLock()
        self._players: Dict[str, PlayerState] = {}
        self._rounds: List[RoundRecord] = []
        self._timers: Dict[str, Any] = {}
        # wallets that moved during the current reposition window
        self._repositioned: Set[str] = set()
        self._subs: List[Subscriber] = []

        self._executor = EffectExecutor(
            schedule_timeout=self._schedule_timeout,
            trigger_salvo=self._trigger_salvo,
            notify=notify,
            announce=announce,
            settle=settle,
            platform_fee_percent=platform_fee_percent,
        )

        with self._lock:
            deadline = self._clock() + timedelta(minutes=config.fill_deadline_minutes)
            self._state = create_initial_state(deadline)
            self._schedule(
                DEADLINE_TIMER,
                config.fill_deadline_minutes * 60,
                lambda: self._fire_event(DeadlineReached()),
            )
        logger.info(
            "Game %s created (commitment %s), fill deadline %s",
            self.game_id,
            self.seeder.commitment,
            deadline.isoformat(),
        )

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def state(self) -> GameState:
        return self._state

    @property
    def players(self) -> tuple:
        with self._lock:
            return tuple(self._players.values())

    @property
    def rounds(self) -> tuple:
        with self._lock:
            return tuple(self._rounds)

    @property
    def is_finished(self) -> bool:
        return GameStatus(self._state.status).is_terminal

    def player(self, wallet: str) -> PlayerState:
        with self._lock:
            try:
                return self._players[wallet]
            except KeyError:
                raise GameSessionError(f"Unknown player: {wallet}") from None

    def active_players(self) -> tuple:
        with self._lock:
            return tuple(p for p in self._players.values() if not p.is_eliminated)

    def reveal_secret(self) -> str:
        """Return the fairness secret; refused while the game is running."""
        if not self.is_finished:
            raise GameSessionError("Secret is only revealed once the game is over")
        return self.seeder.reveal()

    def subscribe(self, cb: Subscriber) -> None:
        """Register *cb* to receive ``(event, result)`` after each transition."""
        self._subs.append(cb)

    # ------------------------------------------------------------------
    # Player actions
    # ------------------------------------------------------------------
    def join(self, wallet: str, cells: Sequence[int], twitter_handle: str | None = None) -> PlayerState:
        try:
            wallet = parse_wallet_address(wallet)
        except ValueError as exc:
            raise GameSessionError(str(exc)) from exc
        placement = validate_placement(cells, self.config.ship_size)

        with self._lock:
            self._require(GameStatus.WAITING, "join")
            if wallet in self._players:
                raise GameSessionError(f"{wallet} already joined {self.game_id}")
            if len(self._players) >= self.config.max_players:
                raise GameSessionError(f"Game {self.game_id} is full")

            event = PlayerJoined(wallet, placement.cells)
            # the reducer counts the joining player on top of the snapshot
            result = transition(self._state, event, self._context())
            player = PlayerState(wallet=wallet, position=placement.cells, twitter_handle=twitter_handle)
            self._players[wallet] = player
            logger.info("%s joined %s (%d/%d)", wallet, self.game_id, len(self._players), self.config.max_players)
            self._commit(event, result)
            return player

    def submit_reposition(self, wallet: str, cells: Sequence[int]) -> PlayerState:
        with self._lock:
            self._require(GameStatus.REPOSITIONING, "reposition")
            player = self.player(wallet)
            check = can_player_reposition(player)
            if not check.can_reposition:
                raise RepositionError(check.reason)
            placement = validate_reposition_move(player.position, cells, player.hits, self.config.ship_size)

            event = RepositionSubmitted(wallet, placement.cells)
            result = transition(self._state, event, self._context())
            moved = replace(player, position=placement.cells)
            self._players[wallet] = moved
            self._repositioned.add(wallet)
            logger.info("%s repositioned to %s in %s", wallet, list(placement.cells), self.game_id)
            self._commit(event, result)
            return moved

    # ------------------------------------------------------------------
    # Salvo
    # ------------------------------------------------------------------
    def execute_salvo(self) -> Optional[SalvoResult]:
        """Fire the salvo for the current round.

        Returns None (and logs) when the game is not in the active phase,
        which happens when a delayed salvo timer outlives its round.
        """
        with self._lock:
            if GameStatus(self._state.status) is not GameStatus.ACTIVE:
                logger.warning(
                    "Salvo requested for %s while %s; ignoring", self.game_id, GameStatus(self._state.status).value
                )
                return None
            # a direct call supersedes a pending delayed salvo
            self._cancel_timer(SALVO_TIMER)

            round_number = self._state.round
            seed = self.seeder.seed_for(round_number)
            result = process_salvo(seed, self.config.shots_per_salvo, self._players.values())

            updated: Dict[str, PlayerState] = {}
            for wallet, player in self._players.items():
                new_hits = result.hits.get(wallet, ())
                if wallet in result.eliminations:
                    player = replace(
                        player,
                        hits=player.hits + new_hits,
                        is_eliminated=True,
                        eliminated_round=round_number,
                    )
                elif new_hits:
                    player = replace(player, hits=player.hits + new_hits)
                updated[wallet] = player

            now = self._clock()
            event = SalvoComplete(seed, result.survivors)
            context = StateMachineContext(self.config, tuple(updated.values()), now)
            outcome = transition(self._state, event, context)

            self._players = updated
            self._rounds.append(
                RoundRecord(
                    round_number=round_number,
                    seed=seed,
                    shots=result.shots,
                    eliminations=result.eliminations,
                    timestamp=now,
                    hits=dict(result.hits),
                )
            )
            logger.info(
                "Round %d of %s: shots %s, eliminated %s, %d survivor(s)",
                round_number,
                self.game_id,
                list(result.shots),
                list(result.eliminations) or "nobody",
                len(result.survivors),
            )
            self._commit(event, outcome)
            return result

    # ------------------------------------------------------------------
    # Admin and generic dispatch
    # ------------------------------------------------------------------
    def force_start(self) -> TransitionResult:
        return self.dispatch(AdminForceStart())

    def cancel(self) -> TransitionResult:
        return self.dispatch(AdminCancel())

    def dispatch(self, event: GameEvent) -> TransitionResult:
        """Apply *event* to the current state and run the resulting effects."""
        with self._lock:
            result = transition(self._state, event, self._context())
            self._commit(event, result)
            return result

    def close(self) -> None:
        """Cancel every pending timer. The game state is left as it is."""
        with self._lock:
            for key in list(self._timers):
                self._cancel_timer(key)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _require(self, status: GameStatus, action: str) -> None:
        current = GameStatus(self._state.status)
        if current is not status:
            raise GameSessionError(f"Cannot {action} while game {self.game_id} is {current.value}")

    def _context(self) -> StateMachineContext:
        players = tuple(self._players.values())
        if GameStatus(self._state.status) is GameStatus.REPOSITIONING:
            # survivors that have not moved yet show an empty position
            players = tuple(
                p if p.is_eliminated or p.wallet in self._repositioned else replace(p, position=())
                for p in players
            )
        return StateMachineContext(self.config, players, self._clock())

    def _commit(self, event: GameEvent, result: TransitionResult) -> None:
        old = GameStatus(self._state.status)
        new = GameStatus(result.new_state.status)
        self._state = result.new_state

        if old is not new:
            logger.info("Game %s: %s -> %s on %s", self.game_id, old.value, new.value, event.TYPE)
            if old is GameStatus.WAITING:
                self._cancel_timer(DEADLINE_TIMER)
            if old is GameStatus.REPOSITIONING:
                self._cancel_timer(REPOSITION_TIMER)
            if new is GameStatus.REPOSITIONING:
                self._repositioned.clear()
            if new.is_terminal:
                self.close()

        full = StateMachineContext(self.config, tuple(self._players.values()), self._clock())
        self._executor.run_all(self.game_id, result.side_effects, full)

        for cb in tuple(self._subs):
            try:
                cb(event, result)
            except Exception:  # noqa: BLE001
                logger.exception("Subscriber failed on %s for %s", event.TYPE, self.game_id)

    def _fire_event(self, event: GameEvent) -> None:
        try:
            self.dispatch(event)
        except InvalidTransitionError as exc:
            logger.warning("Stale %s for %s dropped: %s", event.TYPE, self.game_id, exc)

    def _schedule_timeout(self, duration_ms: int, event: GameEvent) -> None:
        key = REPOSITION_TIMER if isinstance(event, RepositionTimeout) else event.TYPE
        self._schedule(key, duration_ms / 1000, lambda: self._fire_event(event))

    def _trigger_salvo(self) -> None:
        self._schedule(SALVO_TIMER, self.salvo_delay, self.execute_salvo)

    def _schedule(self, key: str, delay: float, callback: Callable[[], None]) -> None:
        self._cancel_timer(key)
        holder: Dict[str, Any] = {}

        def fire() -> None:
            # the currency check and the callback share one lock hold
            with self._lock:
                if key not in holder or self._timers.get(key) is not holder[key]:
                    logger.debug("Timer %s for %s was superseded", key, self.game_id)
                    return
                del self._timers[key]
                callback()

        handle = self._scheduler(delay, fire)
        holder[key] = handle
        self._timers[key] = handle
        logger.debug("Scheduled %s for %s in %.3fs", key, self.game_id, delay)

    def _cancel_timer(self, key: str) -> None:
        handle = self._timers.pop(key, None)
        if handle is not None:
            handle.cancel()
