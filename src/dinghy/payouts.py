"""Pot arithmetic for payouts and refunds (amounts in lamports)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence, Tuple

PAYOUT = "payout"
REFUND = "refund"


@dataclass(frozen=True, slots=True)
class Transfer:
    wallet: str
    amount_lamports: int
    kind: str


@dataclass(frozen=True, slots=True)
class PayoutPlan:
    pot: int
    platform_fee: int
    per_winner: int
    transfers: Tuple[Transfer, ...]

    @property
    def dust(self) -> int:
        """Lamports left in escrow by integer division."""
        return self.pot - self.platform_fee - self.per_winner * len(self.transfers)


def split_pot(
    entry_fee_lamports: int,
    player_count: int,
    winners: Sequence[str],
    platform_fee_percent: int,
) -> PayoutPlan:
    if not winners:
        raise ValueError("cannot split a pot without winners")
    if not 0 <= platform_fee_percent <= 100:
        raise ValueError(f"platform fee must be 0-100 percent, got {platform_fee_percent}")
    pot = entry_fee_lamports * player_count
    fee = pot * platform_fee_percent // 100
    per_winner = (pot - fee) // len(winners)
    return PayoutPlan(
        pot=pot,
        platform_fee=fee,
        per_winner=per_winner,
        transfers=tuple(Transfer(w, per_winner, PAYOUT) for w in winners),
    )


def refund_transfers(entry_fee_lamports: int, wallets: Iterable[str]) -> Tuple[Transfer, ...]:
    return tuple(Transfer(w, entry_fee_lamports, REFUND) for w in wallets)
