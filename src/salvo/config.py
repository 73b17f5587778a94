"""Central configuration for runtime-tunable parameters.

All constants can be overridden via environment variables so that the
production server runs with the observed defaults while the automated
test-suite can shorten timers or switch on stricter checks.
"""

from __future__ import annotations

import os


# ===========================================================================
# Network Defaults
# ===========================================================================
# SALVO_HOST: Default host address for the server to bind to.
#   Defaults to "127.0.0.1".
#   Example: export SALVO_HOST=0.0.0.0
DEFAULT_HOST: str = os.getenv("SALVO_HOST", "127.0.0.1")

# SALVO_PORT: Default port for the server to listen on.
#   Defaults to 61420.
#   Example: export SALVO_PORT=5001
DEFAULT_PORT: int = int(os.getenv("SALVO_PORT", "61420"))


# ===========================================================================
# Reconnect Grace Period
# ===========================================================================
# SALVO_GRACE_PERIOD: seconds a disconnected player keeps their seat before
#   being removed from the session. A joinGame with the same playerId inside
#   this window resumes the match.
#   Defaults to 30 seconds. Example: export SALVO_GRACE_PERIOD=5
GRACE_PERIOD: float = float(os.getenv("SALVO_GRACE_PERIOD", "30"))


# ===========================================================================
# Game Constants
# ===========================================================================
# SALVO_BOARD_SIZE: width and height of each player's grid.
#   Defaults to 10 (for a 10x10 grid).
BOARD_SIZE: int = int(os.getenv("SALVO_BOARD_SIZE", "10"))

# Maximum number of seats in one session. Turn math assumes exactly two.
MAX_PLAYERS: int = 2

# SALVO_STRICT_PLACEMENT: If "1", submitted fleets are re-validated on the
#   server and the stored grid is rebuilt from the fleet. Defaults to "0",
#   which stores the client's grid and fleet verbatim.
STRICT_PLACEMENT: bool = os.getenv("SALVO_STRICT_PLACEMENT", "0") == "1"

# SALVO_STATE_DUMP: Optional path of a JSON file that receives every
#   player's grid and fleet once both fleets have been submitted.
#   Empty by default (no file written).
#   Example: export SALVO_STATE_DUMP=fleet_state_debug.json
STATE_DUMP: str | None = os.getenv("SALVO_STATE_DUMP") or None


# ===========================================================================
# Debugging and Logging
# ===========================================================================
# SALVO_DEBUG: If "1", enables detailed debug logging across modules.
#   Defaults to "0" (disabled).
DEBUG: bool = os.getenv("SALVO_DEBUG", "0") == "1"


# ===========================================================================
# Cryptography Defaults
# ===========================================================================
# SALVO_KEY: AES-GCM key as a hex string, used when the server runs with
#   --secure and no explicit key.
DEFAULT_KEY_HEX: str = os.getenv("SALVO_KEY", "00112233445566778899AABBCCDDEEFF")
DEFAULT_KEY: bytes = bytes.fromhex(DEFAULT_KEY_HEX)
