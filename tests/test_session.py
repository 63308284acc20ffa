"""GameSession end to end against fake timers, clock and collaborators."""

from __future__ import annotations

import logging
import threading
import time
from datetime import timedelta

import pytest

from conftest import WALLETS, ScriptedSeeder, seed_hitting
from dinghy.events import DeadlineReached
from dinghy.models import CancelReason, GameStatus
from dinghy.payouts import PAYOUT, REFUND, Transfer
from dinghy.placement import PlacementError
from dinghy.repositioning import RepositionError
from dinghy.session import GameSession, GameSessionError
from dinghy.state_machine import InvalidTransitionError

P1, P2, P3 = WALLETS[:3]


def test_creation_sets_deadline_and_timer(harness) -> None:
    h = harness()
    assert h.session.state.status is GameStatus.WAITING
    assert h.session.state.deadline == h.clock.now + timedelta(minutes=30)
    [deadline] = h.scheduler.pending
    assert deadline.delay == 30 * 60


def test_invalid_game_id_rejected(config) -> None:
    with pytest.raises(GameSessionError):
        GameSession(config, game_id="nope")


def test_join_validates_wallet_and_placement(harness) -> None:
    h = harness()
    with pytest.raises(GameSessionError):
        h.session.join("not-a-wallet", (0, 1))
    with pytest.raises(PlacementError):
        h.session.join(P1, (4, 5))
    assert h.session.players == ()


def test_join_stores_sorted_position(harness) -> None:
    h = harness(max_players=3)
    player = h.session.join(P1, (1, 0), twitter_handle="@p1")
    assert player.position == (0, 1)
    assert h.session.player(P1).twitter_handle == "@p1"
    assert h.notes == [(P1, "Player joined! 1/3")]
    assert h.session.state.status is GameStatus.WAITING


def test_duplicate_join_rejected(harness) -> None:
    h = harness(max_players=3)
    h.session.join(P1, (0, 1))
    with pytest.raises(GameSessionError):
        h.session.join(P1, (5, 6))


def test_filling_the_game_starts_it(harness) -> None:
    h = harness()
    h.session.join(P1, (0, 1))
    h.session.join(P2, (5, 6))

    assert h.session.state.status is GameStatus.ACTIVE
    assert h.session.state.round == 1
    assert h.announcements == ["Game starting! All players joined."]
    # deadline cancelled, salvo queued
    [salvo] = h.scheduler.pending
    assert salvo.delay == 0
    with pytest.raises(GameSessionError):
        h.session.join(P3, (7, 8))


def test_single_winner_is_paid(harness) -> None:
    h = harness(seeds={1: seed_hitting(0)}, ship_size=1, shots_per_salvo=1)
    h.session.join(P1, (0,))
    h.session.join(P2, (24,))
    h.scheduler.fire_next()

    state = h.session.state
    assert state.status is GameStatus.COMPLETE
    assert state.winners == (P2,)
    assert h.settled == [Transfer(P2, 190_000_000, PAYOUT)]
    assert h.session.player(P1).is_eliminated
    assert h.session.player(P1).eliminated_round == 1
    assert h.session.is_finished
    assert h.scheduler.pending == []

    [record] = h.session.rounds
    assert record.round_number == 1
    assert record.shots == (0,)
    assert record.eliminations == (P1,)
    assert record.hits == {P1: (0,)}


def test_everyone_sunk_splits_pot(harness) -> None:
    h = harness(seeds={1: seed_hitting(0)}, ship_size=1, shots_per_salvo=1)
    h.session.join(P1, (0,))
    h.session.join(P2, (0,))
    h.scheduler.fire_next()

    assert h.session.state.winners == (P1, P2)
    assert h.settled == [Transfer(P1, 95_000_000, PAYOUT), Transfer(P2, 95_000_000, PAYOUT)]


def test_max_rounds_splits_among_survivors(harness) -> None:
    h = harness(seeds={1: seed_hitting(12)}, max_rounds=1, shots_per_salvo=1)
    h.session.join(P1, (0, 1))
    h.session.join(P2, (5, 6))
    h.scheduler.fire_next()

    assert h.session.state.status is GameStatus.COMPLETE
    assert h.session.state.winners == (P1, P2)


def test_reposition_round_trip(harness) -> None:
    h = harness(seeds={1: seed_hitting(12), 2: seed_hitting(5)}, shots_per_salvo=1)
    h.session.join(P1, (0, 1))
    h.session.join(P2, (23, 24))
    h.scheduler.fire_next()

    state = h.session.state
    assert state.status is GameStatus.REPOSITIONING
    assert state.deadline == h.clock.now + timedelta(minutes=5)
    [window] = h.scheduler.pending
    assert window.delay == 300

    h.session.submit_reposition(P1, (6, 5))
    assert h.session.state.status is GameStatus.REPOSITIONING
    assert h.session.player(P1).position == (5, 6)
    assert h.session.execute_salvo() is None
    with pytest.raises(GameSessionError):
        h.session.join(P3, (0, 1))

    h.session.submit_reposition(P2, (3, 4))
    assert h.session.state.status is GameStatus.ACTIVE
    assert h.session.state.round == 2
    assert window.cancelled

    h.scheduler.fire_next()
    assert h.session.player(P1).hits == (5,)
    assert not h.session.player(P1).is_eliminated
    assert h.session.state.status is GameStatus.REPOSITIONING

    # nobody moves this time; the window times out
    h.clock.advance(300)
    h.scheduler.fire_next()
    assert h.session.state.status is GameStatus.ACTIVE
    assert h.session.state.round == 3


def test_damaged_ship_may_still_move(harness) -> None:
    h = harness(seeds={1: seed_hitting(0)}, shots_per_salvo=1)
    h.session.join(P1, (0, 1))
    h.session.join(P2, (23, 24))
    h.scheduler.fire_next()

    moved = h.session.submit_reposition(P1, (10, 15))
    assert moved.position == (10, 15)
    assert moved.hits == (0,)


def test_reposition_rejections(harness) -> None:
    h = harness(seeds={1: seed_hitting(0)}, max_players=3, ship_size=1, shots_per_salvo=1)
    h.session.join(P1, (0,))
    with pytest.raises(GameSessionError):
        h.session.submit_reposition(P1, (3,))

    h.session.join(P2, (12,))
    h.session.join(P3, (24,))
    h.scheduler.fire_next()
    assert h.session.state.status is GameStatus.REPOSITIONING

    with pytest.raises(RepositionError):
        h.session.submit_reposition(P1, (3,))
    with pytest.raises(GameSessionError):
        h.session.submit_reposition(WALLETS[5], (3,))
    with pytest.raises(RepositionError):
        h.session.submit_reposition(P2, (3, 4))
    assert h.session.active_players() == (h.session.player(P2), h.session.player(P3))


def test_deadline_cancels_short_game(harness) -> None:
    h = harness(max_players=4)
    h.session.join(P1, (0, 1))
    h.clock.advance(30 * 60)
    h.scheduler.fire_next()

    state = h.session.state
    assert state.status is GameStatus.CANCELLED
    assert state.cancel_reason is CancelReason.INSUFFICIENT_PLAYERS
    assert h.settled == [Transfer(P1, 100_000_000, REFUND)]


def test_deadline_starts_game_with_two(harness) -> None:
    h = harness(max_players=4)
    h.session.join(P1, (0, 1))
    h.session.join(P2, (5, 6))
    h.scheduler.fire_next()
    assert h.session.state.status is GameStatus.ACTIVE


def test_admin_controls(harness) -> None:
    h = harness(max_players=4)
    h.session.join(P1, (0, 1))
    with pytest.raises(InvalidTransitionError):
        h.session.force_start()
    h.session.join(P2, (5, 6))
    h.session.force_start()
    assert h.session.state.status is GameStatus.ACTIVE

    h2 = harness(max_players=4)
    h2.session.join(P1, (0, 1))
    h2.session.cancel()
    assert h2.session.state.cancel_reason is CancelReason.ADMIN_CANCELLED
    assert h2.settled == [Transfer(P1, 100_000_000, REFUND)]
    assert h2.scheduler.pending == []


def test_superseded_timer_is_ignored(harness) -> None:
    h = harness()
    [deadline] = h.scheduler.pending
    h.session.join(P1, (0, 1))
    h.session.join(P2, (5, 6))
    assert deadline.cancelled

    # a timer that fires anyway after being cancelled does nothing
    deadline.callback()
    assert h.session.state.status is GameStatus.ACTIVE


def _lock_free_elsewhere(session: GameSession) -> bool:
    """Whether another thread could take the session lock right now."""
    outcome = []

    def attempt() -> None:
        got = session._lock.acquire(blocking=False)
        if got:
            session._lock.release()
        outcome.append(got)

    worker = threading.Thread(target=attempt)
    worker.start()
    worker.join()
    return outcome[0]


def test_timer_callback_runs_under_session_lock(harness, monkeypatch) -> None:
    h = harness(seeds={1: seed_hitting(12)}, shots_per_salvo=1)
    seen = []
    fire_salvo = h.session.execute_salvo

    def watched_salvo():
        seen.append(_lock_free_elsewhere(h.session))
        return fire_salvo()

    monkeypatch.setattr(h.session, "execute_salvo", watched_salvo)
    h.session.join(P1, (0, 1))
    h.session.join(P2, (23, 24))
    h.scheduler.fire_next()

    assert seen == [False]
    assert h.session.state.status is GameStatus.REPOSITIONING
    assert _lock_free_elsewhere(h.session)


def test_previous_window_timeout_cannot_close_next_window(harness) -> None:
    h = harness(seeds={1: seed_hitting(12), 2: seed_hitting(12)}, shots_per_salvo=1)
    h.session.join(P1, (0, 1))
    h.session.join(P2, (23, 24))
    h.scheduler.fire_next()
    [first_window] = h.scheduler.pending

    h.session.submit_reposition(P1, (5, 6))
    h.session.submit_reposition(P2, (3, 4))
    h.scheduler.fire_next()
    state = h.session.state
    assert state.status is GameStatus.REPOSITIONING
    assert state.round == 2
    [second_window] = h.scheduler.pending
    assert second_window is not first_window

    # round 1's timeout arriving late leaves round 2's window open
    first_window.callback()
    assert h.session.state == state
    assert h.scheduler.pending == [second_window]


def test_salvo_outside_active_phase_is_ignored(harness, caplog) -> None:
    h = harness()
    with caplog.at_level(logging.WARNING, logger="dinghy.session"):
        assert h.session.execute_salvo() is None
    assert "ignoring" in caplog.text


def test_stale_timeout_event_is_logged(harness, caplog) -> None:
    h = harness()
    h.session.cancel()
    with pytest.raises(InvalidTransitionError):
        h.session.dispatch(DeadlineReached())
    with caplog.at_level(logging.WARNING, logger="dinghy.session"):
        h.session._fire_event(DeadlineReached())
    assert "Stale DEADLINE_REACHED" in caplog.text


def test_secret_revealed_only_when_finished(harness) -> None:
    h = harness()
    with pytest.raises(GameSessionError):
        h.session.reveal_secret()
    h.session.cancel()
    assert h.session.reveal_secret() == "5" * 64


def test_subscribers_see_transitions(harness, caplog) -> None:
    h = harness()
    seen = []

    def broken(event, result):
        raise RuntimeError("boom")

    h.session.subscribe(broken)
    h.session.subscribe(lambda event, result: seen.append((event.TYPE, result.new_state.status)))
    with caplog.at_level(logging.ERROR, logger="dinghy.session"):
        h.session.join(P1, (0, 1))
    assert seen == [("PLAYER_JOINED", GameStatus.WAITING)]
    assert "Subscriber failed" in caplog.text


def test_close_cancels_timers(harness) -> None:
    h = harness()
    h.session.close()
    assert h.scheduler.pending == []


@pytest.mark.timeout(10)  # type: ignore[arg-type]
def test_default_threading_timers(config) -> None:
    session = GameSession(config, seeder=ScriptedSeeder({1: seed_hitting(0)}), salvo_delay=0)
    session.join(P1, (0, 1))
    session.join(P2, (5, 6))
    # the salvo runs on a timer thread; wait for the round to be recorded
    for _ in range(200):
        if session.is_finished:
            break
        time.sleep(0.01)
    session.close()
    assert session.rounds[0].round_number == 1
    assert session.state.winners == (P2,)
