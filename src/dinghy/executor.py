"""Translate side effects returned by the state machine into collaborator calls.

The executor lives *outside* the state machine so that the reducer stays pure
and every I/O rule is declared in a single place. Collaborators are plain
callables, which makes the executor straight-forward to unit-test by feeding it
synthetic effects.
"""

from __future__ import annotations

import logging
from typing import Callable

from . import config as _cfg
from .events import (
    GameEvent,
    NotifyPlayers,
    PostTweet,
    ProcessPayouts,
    ProcessRefunds,
    ScheduleTimeout,
    SideEffect,
    TriggerSalvo,
)
from .payouts import Transfer, refund_transfers, split_pot
from .state_machine import StateMachineContext

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str, str], None]  # (game_id, wallet, message)
Announcer = Callable[[str, str], None]  # (game_id, content)
Settlement = Callable[[str, Transfer], None]  # (game_id, transfer)
TimeoutScheduler = Callable[[int, GameEvent], None]  # (duration_ms, event)


def log_notify(game_id: str, wallet: str, message: str) -> None:
    logger.info("[%s] -> %s: %s", game_id, wallet, message)


def log_announce(game_id: str, content: str) -> None:
    logger.info("[%s] announce: %s", game_id, content)


def log_settle(game_id: str, transfer: Transfer) -> None:
    logger.info(
        "[%s] %s of %d lamports to %s", game_id, transfer.kind, transfer.amount_lamports, transfer.wallet
    )


class EffectExecutor:
    """Game-scoped helper that converts side effects into collaborator calls."""

    def __init__(
        self,
        *,
        schedule_timeout: TimeoutScheduler,
        trigger_salvo: Callable[[], None],
        notify: Notifier = log_notify,
        announce: Announcer = log_announce,
        settle: Settlement = log_settle,
        platform_fee_percent: int = _cfg.PLATFORM_FEE_PERCENT,
    ) -> None:
        self._schedule_timeout = schedule_timeout
        self._trigger_salvo = trigger_salvo
        self._notify = notify
        self._announce = announce
        self._settle = settle
        self.platform_fee_percent = platform_fee_percent

    # ------------------------------------------------------------------
    # Public dispatch entry
    # ------------------------------------------------------------------
    def __call__(self, game_id: str, effect: SideEffect, context: StateMachineContext) -> None:
        try:
            self.execute(game_id, effect, context)
        except Exception:  # noqa: BLE001
            logger.exception("Effect %s failed for %s", effect.TYPE, game_id)

    def run_all(self, game_id: str, effects, context: StateMachineContext) -> None:
        """Execute *effects* in order; one failing effect does not stop the rest."""
        for effect in effects:
            self(game_id, effect, context)

    # ------------------------------------------------------------------
    # Internal dispatch
    # ------------------------------------------------------------------
    def execute(self, game_id: str, effect: SideEffect, context: StateMachineContext) -> None:
        logger.debug("Executing %s for %s", effect, game_id)
        if isinstance(effect, NotifyPlayers):
            targets = effect.wallets if effect.wallets is not None else [p.wallet for p in context.players]
            for wallet in targets:
                self._notify(game_id, wallet, effect.message)
        elif isinstance(effect, ProcessPayouts):
            plan = split_pot(
                context.config.entry_fee_lamports,
                len(context.players),
                effect.winners,
                self.platform_fee_percent,
            )
            self._settle_each(game_id, plan.transfers)
        elif isinstance(effect, ProcessRefunds):
            self._settle_each(game_id, refund_transfers(context.config.entry_fee_lamports, effect.wallets))
        elif isinstance(effect, ScheduleTimeout):
            self._schedule_timeout(effect.duration_ms, effect.event)
        elif isinstance(effect, PostTweet):
            self._announce(game_id, effect.content)
        elif isinstance(effect, TriggerSalvo):
            self._trigger_salvo()
        else:  # pragma: no cover – unknown effect
            logger.debug("Ignoring effect %s", effect)

    def _settle_each(self, game_id: str, transfers) -> None:
        # a failed transfer must not block the remaining wallets
        for transfer in transfers:
            try:
                self._settle(game_id, transfer)
            except Exception:  # noqa: BLE001
                logger.exception("%s to %s failed for %s", transfer.kind, transfer.wallet, game_id)
