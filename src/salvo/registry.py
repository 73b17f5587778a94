"""PlayerRegistry: the authoritative seat list of one session.

Holds at most two players plus the index of the player whose turn it is.
Knows nothing about networking; all access goes through the owning
:class:`~salvo.session.GameSession`, which serialises calls with its lock.
"""

from __future__ import annotations

import logging
import random

from . import config as _cfg
from .models import Grid, Player, PlayerState

logger = logging.getLogger(__name__)


class RegistryFullError(RuntimeError):
    """Raised by add_player() when every seat is already taken."""


class PlayerRegistry:
    def __init__(self, *, grid_size: int = _cfg.BOARD_SIZE, rng: random.Random | None = None) -> None:
        self.grid_size = grid_size
        self.players: list[Player] = []
        self.current_turn_index = 0
        self._rng = rng or random.Random()

    # -------------------- seats --------------------
    def is_full(self) -> bool:
        return len(self.players) == _cfg.MAX_PLAYERS

    def add_player(self, player_id: str, connection_id: str) -> Player:
        """Seat a new player with an empty grid and fleet in placement state."""
        if self.is_full():
            raise RegistryFullError(f"cannot seat {player_id}: session already has {_cfg.MAX_PLAYERS} players")
        player = Player(player_id=player_id, connection_id=connection_id, grid=Grid.empty(self.grid_size))
        self.players.append(player)
        logger.debug("Player added: %s (connection %s)", player_id, connection_id)
        return player

    def find_by_player_id(self, player_id: str) -> Player | None:
        return next((p for p in self.players if p.player_id == player_id), None)

    def find_by_connection_id(self, connection_id: str) -> Player | None:
        return next((p for p in self.players if p.connection_id == connection_id), None)

    def rebind_connection(self, player_id: str, connection_id: str) -> Player | None:
        """Point an existing player at a new connection; grid, fleet and state are kept."""
        player = self.find_by_player_id(player_id)
        if player is None:
            return None
        player.connection_id = connection_id
        return player

    def remove_by_connection_id(self, connection_id: str) -> bool:
        player = self.find_by_connection_id(connection_id)
        if player is None:
            return False
        self.players.remove(player)
        logger.debug("Player removed: %s", player.player_id)
        return True

    # -------------------- readiness & turns --------------------
    def all_ready(self) -> bool:
        return all(p.state is not PlayerState.PLACEMENT for p in self.players)

    def set_all_in_turn(self) -> None:
        for p in self.players:
            p.state = PlayerState.IN_TURN

    def pick_random_first_turn(self) -> int:
        self.current_turn_index = self._rng.randrange(len(self.players))
        return self.current_turn_index

    def advance_turn(self) -> int:
        # two seats only
        self.current_turn_index = 1 - self.current_turn_index
        return self.current_turn_index

    def current_player(self) -> Player | None:
        if self.current_turn_index >= len(self.players):
            return None
        return self.players[self.current_turn_index]

    def opponent_of(self, player_id: str) -> Player | None:
        return next((p for p in self.players if p.player_id != player_id), None)

    # -------------------- fleet status --------------------
    @staticmethod
    def is_ship_sunk(grid: Grid, footprint: list[tuple[int, int]]) -> bool:
        for x, y in footprint:
            cell = grid.cell(x, y)
            if cell is None or not cell.hit:
                return False
        return True

    def all_ships_sunk(self, player: Player) -> bool:
        """True once every cell of every ship in *player*'s fleet has been hit."""
        sunk = all(self.is_ship_sunk(player.grid, ship.footprint()) for ship in player.fleet)
        logger.debug("All ships sunk for %s: %s", player.player_id, sunk)
        return sunk
