"""Two-player game session logic for the SALVO server.

The class in this module manages a *single* match between exactly two
players.  It never touches the network: every operation takes the request
and returns the list of :class:`~salvo.events.Emission` objects the
transport has to deliver.

Requests (see :mod:`salvo.commands`)
-----------------------------------
joinGame{playerId}                 Take a seat, or resume one after a reconnect.
placeFleet{playerId, grid, fleet}  Submit the complete fleet.
attack{playerId, coords}           Fire at one cell of the opponent's grid.
disconnect                         Raised by the transport for a dropped connection.

Events (see :class:`~salvo.events.EventType`)
-------------------------------------------
joined, reconnectPlayer, gameReady, fleetPlaced, gameStart, attackResult,
attacked, turnChange, gameOver, error.

Match phases run ``awaiting-players → placement → in-progress → finished``.
A dropped player keeps their seat for ``config.GRACE_PERIOD`` seconds; a
joinGame with the same playerId inside that window resumes the match.
Once the window closes on a match in progress, the match is over with no
winner.

Every public operation runs under one re-entrant lock, as does the
grace-period expiry, so turn advance, the sunk check and the game-over
broadcast are one atomic step as seen by both players.
"""

from __future__ import annotations

import enum
import json
import logging
import random
import threading
from pathlib import Path
from typing import Any, Sequence

from . import config as _cfg
from .commands import Attack, Command, Disconnect, JoinGame, PlaceFleet
from .events import Audience, Emission, EventType, StatusCode
from .models import FLEET_SIZE, Grid, Player, PlayerState, ShipPlacement, fleet_summary
from .placement import PlacementError, build_grid
from .registry import PlayerRegistry
from .timers import GraceTimers, TimerFactory

logger = logging.getLogger(__name__)


class MatchPhase(str, enum.Enum):
    AWAITING_PLAYERS = "awaiting-players"
    PLACEMENT = "placement"
    IN_PROGRESS = "in-progress"
    FINISHED = "finished"


class GameSession:
    """Session coordinator for one match."""

    def __init__(
        self,
        *,
        grid_size: int = _cfg.BOARD_SIZE,
        grace_period: float = _cfg.GRACE_PERIOD,
        strict_placement: bool = _cfg.STRICT_PLACEMENT,
        state_dump: str | Path | None = _cfg.STATE_DUMP,
        rng: random.Random | None = None,
        timer_factory: TimerFactory | None = None,
    ) -> None:
        self.registry = PlayerRegistry(grid_size=grid_size, rng=rng)
        self.timers = GraceTimers(grace_period, timer_factory)
        self.strict_placement = strict_placement
        self.state_dump = Path(state_dump) if state_dump else None
        self.phase = MatchPhase.AWAITING_PLAYERS
        self.winner: str | None = None
        self._lock = threading.RLock()

    # -------------------- dispatch --------------------
    def handle(self, cmd: Command) -> list[Emission]:
        """Run one command and return the emissions it produced."""
        if isinstance(cmd, JoinGame):
            return self.join(cmd.player_id, cmd.connection_id)
        if isinstance(cmd, PlaceFleet):
            return self.place_fleet(cmd.player_id, cmd.grid, cmd.fleet, connection_id=cmd.connection_id)
        if isinstance(cmd, Attack):
            return self.attack(cmd.player_id, cmd.x, cmd.y, connection_id=cmd.connection_id)
        if isinstance(cmd, Disconnect):
            return self.disconnect(cmd.connection_id)
        raise TypeError(f"unsupported command: {cmd!r}")

    @property
    def finished(self) -> bool:
        return self.phase is MatchPhase.FINISHED

    def connection_ids(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(p.connection_id for p in self.registry.players)

    def close(self) -> None:
        """Drop pending grace-period tasks; call once the session is discarded."""
        self.timers.close()

    # -------------------- emission helpers --------------------
    def _to_requester(
        self,
        connection_id: str | None,
        event: EventType,
        message: str,
        data: dict[str, Any] | None = None,
        *,
        player_id: str | None = None,
        status: StatusCode = StatusCode.OK,
    ) -> Emission:
        return Emission(
            Audience.REQUESTER,
            event,
            message,
            data or {},
            status,
            player_id,
            (connection_id,) if connection_id else (),
        )

    def _error(
        self,
        connection_id: str | None,
        message: str,
        status: StatusCode,
        *,
        player_id: str | None = None,
    ) -> list[Emission]:
        logger.debug("Rejected request from %s (%s): %s", player_id, connection_id, message)
        return [
            self._to_requester(
                connection_id, EventType.ERROR, message, {"message": message}, player_id=player_id, status=status
            )
        ]

    def _broadcast(self, event: EventType, message: str, data: dict[str, Any] | None = None) -> Emission:
        return Emission(
            Audience.BROADCAST,
            event,
            message,
            data or {},
            StatusCode.OK,
            None,
            tuple(p.connection_id for p in self.registry.players),
        )

    def _to_opponent(self, opponent: Player, event: EventType, message: str, data: dict[str, Any]) -> Emission:
        return Emission(
            Audience.OPPONENT, event, message, data, StatusCode.OK, opponent.player_id, (opponent.connection_id,)
        )

    # -------------------- join --------------------
    def join(self, player_id: str, connection_id: str) -> list[Emission]:
        with self._lock:
            logger.debug("Join request: playerId=%s connection=%s", player_id, connection_id)
            player = self.registry.rebind_connection(player_id, connection_id)
            if player is not None:
                logger.info("Player reconnected: %s", player_id)
                current = self.registry.current_player() if self.phase is MatchPhase.IN_PROGRESS else None
                data = {
                    "grid": player.grid.to_dict(),
                    "fleet": [s.to_dict() for s in player.fleet],
                    "state": player.state.value,
                    "turn": current.player_id if current else None,
                }
                return [
                    self._to_requester(
                        connection_id,
                        EventType.RECONNECT_PLAYER,
                        "Reconnected to the game",
                        data,
                        player_id=player_id,
                    )
                ]

            if self.phase is MatchPhase.FINISHED:
                return self._error(connection_id, "game over", StatusCode.CONFLICT, player_id=player_id)
            if self.registry.is_full():
                logger.debug("Game is already full; rejecting %s", player_id)
                return self._error(connection_id, "game full", StatusCode.SERVICE_UNAVAILABLE, player_id=player_id)

            self.registry.add_player(player_id, connection_id)
            logger.info("Player joined: %s", player_id)
            out = [
                self._to_requester(
                    connection_id,
                    EventType.JOINED,
                    "Joined the game",
                    {"playerId": player_id},
                    player_id=player_id,
                    status=StatusCode.CREATED,
                )
            ]
            if self.registry.is_full():
                if self.phase is MatchPhase.AWAITING_PLAYERS:
                    self.phase = MatchPhase.PLACEMENT
                logger.info("Both players have joined the game")
                out.append(self._broadcast(EventType.GAME_READY, "Both players have joined. Place your fleets!"))
            return out

    # -------------------- placement --------------------
    def place_fleet(
        self,
        player_id: str,
        grid: Grid,
        fleet: Sequence[ShipPlacement],
        *,
        connection_id: str | None = None,
    ) -> list[Emission]:
        with self._lock:
            logger.debug("Fleet placement received from playerId: %s", player_id)
            player = self.registry.find_by_player_id(player_id)
            # a connection may only place the fleet of the seat bound to it
            if player is None or (connection_id is not None and connection_id != player.connection_id):
                return self._error(connection_id, "player not found", StatusCode.NOT_FOUND, player_id=player_id)
            reply_to = connection_id or player.connection_id
            if player.state is not PlayerState.PLACEMENT:
                return self._error(
                    reply_to, "fleet placement not allowed", StatusCode.CONFLICT, player_id=player_id
                )
            if len(fleet) != FLEET_SIZE or grid.size != self.registry.grid_size:
                return self._error(reply_to, "invalid fleet", StatusCode.BAD_REQUEST, player_id=player_id)
            if self.strict_placement:
                try:
                    grid = build_grid(fleet, self.registry.grid_size)
                except PlacementError as e:
                    return self._error(reply_to, f"invalid fleet: {e}", StatusCode.BAD_REQUEST, player_id=player_id)

            player.grid = grid
            player.fleet = list(fleet)
            player.state = PlayerState.READY
            logger.debug(
                "Grid with fleet for %s:\n%s\n%s", player_id, "\n".join(grid.rows()), fleet_summary(player.fleet)
            )
            out = [
                self._to_requester(
                    reply_to, EventType.FLEET_PLACED, "Fleet placement complete!", player_id=player_id
                )
            ]
            out.extend(self._check_game_ready())
            return out

    def _check_game_ready(self) -> list[Emission]:
        if self.phase is MatchPhase.FINISHED:
            return []
        if not self.registry.is_full():
            logger.warning("Not enough players to start the game")
            return []
        self._dump_state()
        if not self.registry.all_ready():
            logger.info("Not all players are ready yet")
            return []
        self.registry.set_all_in_turn()
        first = self.registry.players[self.registry.pick_random_first_turn()]
        self.phase = MatchPhase.IN_PROGRESS
        logger.info("Game started. First turn: %s", first.player_id)
        return [
            self._broadcast(
                EventType.GAME_START,
                "All players have placed their fleets. Game starts!",
                {"firstTurn": first.player_id},
            )
        ]

    # -------------------- attack --------------------
    def attack(self, player_id: str, x: int, y: int, *, connection_id: str | None = None) -> list[Emission]:
        with self._lock:
            logger.debug("Attack received from %s at (%s, %s)", player_id, x, y)
            requester = self.registry.find_by_player_id(player_id)
            reply_to = connection_id or (requester.connection_id if requester else None)

            if self.phase is MatchPhase.FINISHED:
                return self._error(reply_to, "game over", StatusCode.CONFLICT, player_id=player_id)
            if self.phase is not MatchPhase.IN_PROGRESS:
                return self._error(reply_to, "game not in progress", StatusCode.CONFLICT, player_id=player_id)

            current = self.registry.current_player()
            opponent = self.registry.opponent_of(current.player_id) if current else None
            if current is None or opponent is None:
                return self._error(reply_to, "opponent not found", StatusCode.NOT_FOUND, player_id=player_id)

            # a client may only act for the seat bound to its own connection
            if player_id != current.player_id or (
                connection_id is not None and connection_id != current.connection_id
            ):
                return self._error(reply_to, "not your turn", StatusCode.FORBIDDEN, player_id=player_id)

            target = opponent.grid.cell(x, y)
            if target is None:
                return self._error(reply_to, "invalid target", StatusCode.BAD_REQUEST, player_id=player_id)
            if target.hit:
                return self._error(reply_to, "already targeted", StatusCode.CONFLICT, player_id=player_id)

            target.hit = True
            result = "hit" if target.occupied else "miss"
            logger.debug("Attack result: %s at (%s, %s) by %s", result, x, y, player_id)
            shot = {"x": x, "y": y, "result": result}
            out = [
                self._to_requester(
                    reply_to, EventType.ATTACK_RESULT, f"Attack {result}", dict(shot), player_id=player_id
                ),
                self._to_opponent(opponent, EventType.ATTACKED, f"You were attacked: {result}", dict(shot)),
            ]

            if result == "hit" and self.registry.all_ships_sunk(opponent):
                self.phase = MatchPhase.FINISHED
                self.winner = current.player_id
                logger.info("Game over. Winner: %s", current.player_id)
                out.append(self._broadcast(EventType.GAME_OVER, "Game over", {"winner": current.player_id}))
                return out

            self.registry.advance_turn()
            logger.debug("Turn changed. Next player: %s", opponent.player_id)
            out.append(self._broadcast(EventType.TURN_CHANGE, "Turn changed", {"nextPlayerId": opponent.player_id}))
            return out

    # -------------------- disconnect --------------------
    def disconnect(self, connection_id: str) -> list[Emission]:
        with self._lock:
            player = self.registry.find_by_connection_id(connection_id)
            if player is None:
                return []
            logger.info(
                "Player disconnected: %s – holding seat for %ss", player.player_id, self.timers.delay
            )
            self.timers.schedule(connection_id, self._expire)
            return []

    def _expire(self, connection_id: str) -> None:
        """Grace period over: remove the player unless they reconnected meanwhile."""
        with self._lock:
            player = self.registry.find_by_connection_id(connection_id)
            if player is None:
                logger.debug("Grace period for %s ended after reconnect", connection_id)
                return
            self.registry.remove_by_connection_id(connection_id)
            logger.info("Player removed after grace period: %s", player.player_id)
            if self.phase is MatchPhase.IN_PROGRESS:
                # boards already carry shots; the next match needs a fresh session
                self.phase = MatchPhase.FINISHED
                logger.info("Match abandoned by %s", player.player_id)
            elif self.phase is MatchPhase.PLACEMENT:
                # no shots fired yet; the next joinGame fills the seat
                self.phase = MatchPhase.AWAITING_PLAYERS

    # -------------------- debug state --------------------
    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            current = self.registry.current_player() if self.phase is MatchPhase.IN_PROGRESS else None
            return {
                "phase": self.phase.value,
                "turn": current.player_id if current else None,
                "winner": self.winner,
                "players": [p.snapshot() for p in self.registry.players],
            }

    def _dump_state(self) -> None:
        if self.state_dump is None:
            return
        try:
            self.state_dump.write_text(json.dumps(self.snapshot(), indent=2))
        except OSError:
            logger.warning("Could not write state dump to %s", self.state_dump, exc_info=True)
        else:
            logger.debug("State dump written to %s", self.state_dump)
