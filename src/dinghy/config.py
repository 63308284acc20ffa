"""Central configuration for runtime-tunable parameters.

All constants can be overridden via environment variables so that a deployed
orchestrator and the local simulator share the same defaults, while the
automated test-suite can shrink windows or delays where necessary.
"""

from __future__ import annotations

import os

# ===========================================================================
# Grid Constants
# ===========================================================================
# The board is a fixed 5x5 grid addressed row-major by cell index 0..24.
# Not overridable: labels (A1..E5) and shot generation depend on it.
GRID_SIZE: int = 5
TOTAL_CELLS: int = GRID_SIZE * GRID_SIZE


# ===========================================================================
# Game Defaults
# ===========================================================================
# DINGHY_ENTRY_FEE_LAMPORTS: Entry fee charged per player, in lamports.
#   Defaults to 100000000 (0.1 SOL).
#   Example: export DINGHY_ENTRY_FEE_LAMPORTS=50000000
ENTRY_FEE_LAMPORTS: int = int(os.getenv("DINGHY_ENTRY_FEE_LAMPORTS", "100000000"))

# DINGHY_MAX_PLAYERS: Seats per game; the game starts as soon as they fill.
#   Defaults to 4.
MAX_PLAYERS: int = int(os.getenv("DINGHY_MAX_PLAYERS", "4"))

# DINGHY_SHIP_SIZE: Cells per ship (1, 2 or 3). Defaults to 2.
SHIP_SIZE: int = int(os.getenv("DINGHY_SHIP_SIZE", "2"))

# DINGHY_SHOTS_PER_SALVO: Distinct cells fired on each round. Defaults to 5.
SHOTS_PER_SALVO: int = int(os.getenv("DINGHY_SHOTS_PER_SALVO", "5"))

# DINGHY_FILL_DEADLINE_MINUTES: How long a game waits for players before it
#   either starts with the players it has or is cancelled.
#   Defaults to 30 minutes.
FILL_DEADLINE_MINUTES: float = float(os.getenv("DINGHY_FILL_DEADLINE_MINUTES", "30"))

# DINGHY_REPOSITION_WINDOW_MINUTES: Length of the window in which survivors may
#   move their ship between salvos. Defaults to 5 minutes.
REPOSITION_WINDOW_MINUTES: float = float(os.getenv("DINGHY_REPOSITION_WINDOW_MINUTES", "5"))

# DINGHY_MAX_ROUNDS: After this many salvos the remaining survivors split the pot.
#   Defaults to 10.
MAX_ROUNDS: int = int(os.getenv("DINGHY_MAX_ROUNDS", "10"))


# ===========================================================================
# Settlement
# ===========================================================================
# DINGHY_PLATFORM_FEE_PERCENT: Share of the pot withheld before payouts.
#   Defaults to 5 (percent). Refunds are always paid in full.
PLATFORM_FEE_PERCENT: int = int(os.getenv("DINGHY_PLATFORM_FEE_PERCENT", "5"))


# ===========================================================================
# Orchestrator Timing Controls
# ===========================================================================
# DINGHY_SALVO_DELAY: Seconds between a TRIGGER_SALVO effect and the salvo
#   actually being fired, giving notifications time to go out first.
#   Defaults to 1.0.
#   Example: export DINGHY_SALVO_DELAY=0
SALVO_DELAY: float = float(os.getenv("DINGHY_SALVO_DELAY", "1.0"))


# ===========================================================================
# Debugging and Logging
# ===========================================================================
# DINGHY_DEBUG: If "1", enables detailed debug logging in the simulator.
#   Defaults to "0" (disabled).
#   Example: export DINGHY_DEBUG=1
DEBUG: bool = os.getenv("DINGHY_DEBUG", "0") == "1"


def default_game_config(**overrides):
    """Build a :class:`~dinghy.models.GameConfig` from the defaults above.

    Keyword arguments override individual fields, e.g.
    ``default_game_config(max_players=2)``.
    """
    from .models import GameConfig

    values = {
        "entry_fee_lamports": ENTRY_FEE_LAMPORTS,
        "max_players": MAX_PLAYERS,
        "ship_size": SHIP_SIZE,
        "shots_per_salvo": SHOTS_PER_SALVO,
        "fill_deadline_minutes": FILL_DEADLINE_MINUTES,
        "reposition_window_minutes": REPOSITION_WINDOW_MINUTES,
        "max_rounds": MAX_ROUNDS,
    }
    values.update(overrides)
    return GameConfig(**values)
