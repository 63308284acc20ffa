import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List

import pytest

# Ensure local `src` directory is importable before project is installed.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from dinghy.models import GameConfig, PlayerState  # noqa: E402
from dinghy.session import GameSession  # noqa: E402

# Suppress INFO & DEBUG logs from sessions during tests
logging.basicConfig(level=logging.WARNING)

# Valid base58 addresses (no 0, O, I or l)
WALLETS = [f"Dinghy{i}" + "x" * 30 for i in range(1, 7)]


def seed_hitting(cell: int) -> str:
    """Seed whose first draw is *cell*; with one shot per salvo that is the only shot."""
    return f"{cell:04x}" + "0" * 60


class ScriptedSeeder:
    """Seeder stand-in that hands out pre-chosen seeds per round."""

    commitment = "c" * 64

    def __init__(self, seeds=None):
        self.seeds = dict(seeds or {})

    def seed_for(self, round_number: int) -> str:
        return self.seeds.get(round_number, "0" * 64)

    def reveal(self) -> str:
        return "5" * 64


class FakeHandle:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Captures timers instead of running them; tests fire them explicitly."""

    def __init__(self):
        self.handles: List[FakeHandle] = []

    def __call__(self, delay, callback):
        handle = FakeHandle(delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> List[FakeHandle]:
        return [h for h in self.handles if not h.cancelled and not h.fired]

    def fire_next(self) -> FakeHandle:
        handle = self.pending[0]
        handle.fired = True
        handle.callback()
        return handle


class FakeClock:
    def __init__(self):
        self.now = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@dataclass
class Harness:
    session: GameSession
    scheduler: FakeScheduler
    clock: FakeClock
    settled: list = field(default_factory=list)
    notes: list = field(default_factory=list)
    announcements: list = field(default_factory=list)


@pytest.fixture
def make_config():
    def _factory(**overrides) -> GameConfig:
        values = dict(
            entry_fee_lamports=100_000_000,
            max_players=2,
            ship_size=2,
            shots_per_salvo=5,
            fill_deadline_minutes=30,
            reposition_window_minutes=5,
            max_rounds=10,
        )
        values.update(overrides)
        return GameConfig(**values)

    return _factory


@pytest.fixture
def config(make_config) -> GameConfig:
    return make_config()


@pytest.fixture
def make_player():
    def _factory(wallet, position=(0, 1), hits=(), **kwargs) -> PlayerState:
        return PlayerState(wallet=wallet, position=position, hits=hits, **kwargs)

    return _factory


@pytest.fixture
def wallets():
    return list(WALLETS)


@pytest.fixture
def harness(make_config):
    """Factory building a GameSession wired to fakes that record every call."""

    def _factory(seeds=None, **overrides) -> Harness:
        scheduler = FakeScheduler()
        clock = FakeClock()
        settled, notes, announcements = [], [], []
        session = GameSession(
            make_config(**overrides),
            game_id="BD-TEST1",
            seeder=ScriptedSeeder(seeds),
            scheduler=scheduler,
            clock=clock,
            notify=lambda game_id, wallet, message: notes.append((wallet, message)),
            announce=lambda game_id, content: announcements.append(content),
            settle=lambda game_id, transfer: settled.append(transfer),
            salvo_delay=0,
            platform_fee_percent=5,
        )
        return Harness(session, scheduler, clock, settled, notes, announcements)

    return _factory
