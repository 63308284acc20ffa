"""Run a whole Battle Dinghy game locally with bot players.

Timers go through a :class:`QueueScheduler` that runs callbacks in due order
against a simulated clock, so a game that would take an hour of wall time
finishes instantly. With ``--interactive`` the first seat reads commands from
stdin::

    PLACE B2 B3     place (or move) your ship
    HOLD            keep your ship where it is this window
    QUIT            cancel the game
"""

from __future__ import annotations

import argparse
import heapq
import itertools
import logging
import os
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence

from . import config as _cfg
from .commands import CommandParseError, HoldCommand, PlaceCommand, QuitCommand, parse_command
from .fairness import RoundSeeder, verify_commitment, verify_round_seed
from .models import GameStatus, PlayerState, create_game_id
from .payouts import Transfer, split_pot
from .placement import PlacementError, get_valid_placements
from .render import format_cells, grid_rows
from .repositioning import RepositionError, can_player_reposition
from .session import GameSession, GameSessionError

logger = logging.getLogger(__name__)

BASE58 = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
MAX_STEPS = 10_000


class SimClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now


class _Handle:
    __slots__ = ("due", "callback", "cancelled")

    def __init__(self, due: datetime, callback: Callable[[], None]):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class QueueScheduler:
    """Scheduler that never sleeps: ``run_next`` jumps the clock to the next timer."""

    def __init__(self, clock: SimClock):
        self.clock = clock
        self._queue: list = []
        self._seq = itertools.count()

    def __call__(self, delay: float, callback: Callable[[], None]) -> _Handle:
        handle = _Handle(self.clock.now + timedelta(seconds=delay), callback)
        heapq.heappush(self._queue, (handle.due, next(self._seq), handle))
        return handle

    def run_next(self) -> bool:
        """Run the earliest pending callback. Returns False when nothing is left."""
        while self._queue:
            due, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.clock.now = max(self.clock.now, due)
            handle.callback()
            return True
        return False


def random_wallet(rng: random.Random) -> str:
    return "".join(rng.choices(BASE58, k=44))


def random_placement(rng: random.Random, ship_size: int) -> tuple:
    return rng.choice(get_valid_placements(rng.randrange(_cfg.TOTAL_CELLS), ship_size))


def _read_command(prompt: str):
    while True:
        try:
            return parse_command(input(prompt))
        except EOFError:
            return QuitCommand()
        except CommandParseError as exc:
            print(f"ERR {exc}")


def _human_place(ship_size: int) -> Optional[tuple]:
    while True:
        cmd = _read_command(f"Place your ship ({ship_size} cell(s), e.g. PLACE A1): ")
        if isinstance(cmd, QuitCommand):
            return None
        if isinstance(cmd, PlaceCommand):
            return cmd.cells
        print("ERR Place your ship before the game starts")


def _print_round(record, names: dict) -> None:
    print(f"Round {record.round_number}: shots {format_cells(record.shots)}")
    for wallet, cells in record.hits.items():
        print(f"  {names[wallet]} hit at {format_cells(cells)}")
    for wallet in record.eliminations:
        print(f"  {names[wallet]} sunk")


def _reposition_bots(
    session: GameSession, rng: random.Random, bots: Sequence[str], names: dict
) -> None:
    for wallet in bots:
        if session.state.status != GameStatus.REPOSITIONING:
            return
        player = session.player(wallet)
        if not can_player_reposition(player).can_reposition or rng.random() < 0.5:
            logger.debug("%s holds position", names[wallet])
            continue
        try:
            session.submit_reposition(wallet, random_placement(rng, session.config.ship_size))
        except (RepositionError, PlacementError) as exc:
            logger.debug("%s could not move: %s", names[wallet], exc)


def _reposition_human(session: GameSession, wallet: str) -> bool:
    """Prompt the human seat during a window. Returns False on QUIT."""
    player: PlayerState = session.player(wallet)
    if not can_player_reposition(player).can_reposition:
        return True
    last = session.rounds[-1]
    print("\n".join(grid_rows(player.position, player.hits, last.shots)))
    while True:
        cmd = _read_command("Reposition (PLACE <cells>) or HOLD: ")
        if isinstance(cmd, QuitCommand):
            return False
        if isinstance(cmd, HoldCommand):
            return True
        try:
            session.submit_reposition(wallet, cmd.cells)
            return True
        except (RepositionError, PlacementError, GameSessionError) as exc:
            print(f"ERR {exc}")


@dataclass
class Simulation:
    session: GameSession
    names: dict = field(default_factory=dict)
    transfers: List[Transfer] = field(default_factory=list)


def run_game(
    players: int,
    *,
    ship_size: int,
    shots: int,
    max_rounds: int,
    rng: random.Random,
    interactive: bool = False,
    game_id: str | None = None,
) -> Simulation:
    config = _cfg.default_game_config(
        max_players=players,
        ship_size=ship_size,
        shots_per_salvo=shots,
        max_rounds=max_rounds,
    )
    clock = SimClock()
    scheduler = QueueScheduler(clock)
    transfers: List[Transfer] = []

    game_id = game_id or create_game_id()
    # secret drawn from the bot rng so a seeded run is reproducible
    seeder = RoundSeeder(game_id, secret=bytes(rng.getrandbits(8) for _ in range(32)))
    session = GameSession(
        config,
        game_id=game_id,
        seeder=seeder,
        scheduler=scheduler,
        clock=clock,
        settle=lambda _game_id, transfer: transfers.append(transfer),
    )
    sim = Simulation(session, transfers=transfers)
    names = sim.names
    print(f"Game {session.game_id} (commitment {session.seeder.commitment})")

    human = None
    for seat in range(1, players + 1):
        wallet = random_wallet(rng)
        names[wallet] = f"player{seat}"
        if interactive and seat == 1:
            cells = _human_place(ship_size)
            if cells is None:
                session.cancel()
                return sim
            human = wallet
        else:
            cells = random_placement(rng, ship_size)
        while True:
            try:
                session.join(wallet, cells)
                break
            except PlacementError as exc:
                if wallet != human:
                    raise
                print(f"ERR {exc}")
                cells = _human_place(ship_size)
                if cells is None:
                    session.cancel()
                    return sim
        print(f"{names[wallet]} joined with {format_cells(session.player(wallet).position)}")

    bots = [w for w in names if w != human]
    printed = 0
    handled_window = None
    for _ in range(MAX_STEPS):
        if session.is_finished:
            break
        for record in session.rounds[printed:]:
            _print_round(record, names)
        printed = len(session.rounds)

        state = session.state
        if state.status == GameStatus.REPOSITIONING and handled_window != state.round:
            handled_window = state.round
            if human is not None and not session.player(human).is_eliminated:
                if not _reposition_human(session, human):
                    session.cancel()
                    break
            _reposition_bots(session, rng, bots, names)
            continue
        if not scheduler.run_next():
            break
    else:
        logger.error("Game %s did not finish after %d steps", session.game_id, MAX_STEPS)

    for record in session.rounds[printed:]:
        _print_round(record, names)
    session.close()
    return sim


def _print_summary(sim: Simulation) -> None:
    session, names = sim.session, sim.names
    state = session.state
    if state.status == GameStatus.CANCELLED:
        print(f"Game cancelled ({state.cancel_reason.value if state.cancel_reason else 'unknown'})")
    elif state.status == GameStatus.COMPLETE:
        winners = [names.get(w, w) for w in state.winners]
        print(f"Winners after round {state.round}: {', '.join(winners)}")
        plan = split_pot(
            session.config.entry_fee_lamports,
            len(session.players),
            state.winners,
            _cfg.PLATFORM_FEE_PERCENT,
        )
        print(
            f"Pot {plan.pot} lamports, platform fee {plan.platform_fee}, "
            f"{plan.per_winner} to each winner (dust {plan.dust})"
        )
    else:
        print(f"Game stopped while {GameStatus(state.status).value}")

    for transfer in sim.transfers:
        print(f"  {transfer.kind} {transfer.amount_lamports} -> {names.get(transfer.wallet, transfer.wallet)}")

    if session.is_finished:
        secret = session.reveal_secret()
        print(f"Secret {secret}")
        ok = verify_commitment(secret, session.seeder.commitment) and all(
            verify_round_seed(secret, session.game_id, r.round_number, r.seed) for r in session.rounds
        )
        print(f"Fairness check: {'ok' if ok else 'FAILED'}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Battle Dinghy local simulator")
    parser.add_argument("--players", type=int, default=_cfg.MAX_PLAYERS, help="Number of seats.")
    parser.add_argument("--ship-size", type=int, default=_cfg.SHIP_SIZE, help="Cells per ship (1-3).")
    parser.add_argument("--shots", type=int, default=_cfg.SHOTS_PER_SALVO, help="Shots per salvo.")
    parser.add_argument("--max-rounds", type=int, default=_cfg.MAX_ROUNDS, help="Round limit.")
    parser.add_argument("--seed", type=int, default=None, help="Seed for bot decisions.")
    parser.add_argument(
        "--interactive",
        action="store_true",
        help="Play seat 1 yourself from stdin.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity.",
    )
    parser.add_argument(
        "-s",
        "--silent",
        "-q",
        "--quiet",
        dest="silent",
        action="store_true",
        help="Only log errors.",
    )
    args = parser.parse_args(argv)

    if args.debug:
        os.environ["DINGHY_DEBUG"] = "1"

    if args.silent:
        level = logging.ERROR
    elif args.debug or _cfg.DEBUG:
        level = logging.DEBUG
    elif args.verbose >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    rng = random.Random(args.seed)
    # with a fixed seed the game id is fixed too, so the whole run replays
    game_id = f"BD-SIM{abs(args.seed)}" if args.seed is not None else None
    try:
        sim = run_game(
            args.players,
            ship_size=args.ship_size,
            shots=args.shots,
            max_rounds=args.max_rounds,
            rng=rng,
            interactive=args.interactive,
            game_id=game_id,
        )
    except ValueError as exc:
        parser.error(str(exc))
    _print_summary(sim)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
