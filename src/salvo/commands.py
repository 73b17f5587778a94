from dataclasses import dataclass
from typing import Any, Union

from .models import Grid, ModelError, ShipPlacement, fleet_from_list


class CommandParseError(Exception):
    """Raised when an inbound message cannot be parsed as a valid command."""


@dataclass(frozen=True)
class JoinGame:
    player_id: str
    connection_id: str


@dataclass(frozen=True)
class PlaceFleet:
    player_id: str
    connection_id: str
    grid: Grid
    fleet: list[ShipPlacement]


@dataclass(frozen=True)
class Attack:
    player_id: str
    connection_id: str
    x: int
    y: int


@dataclass(frozen=True)
class Disconnect:
    """Produced by the transport when a connection drops; never sent by clients."""

    connection_id: str


Command = Union[JoinGame, PlaceFleet, Attack, Disconnect]


def _player_id(data: dict) -> str:
    pid = data.get("playerId")
    if not isinstance(pid, str) or not pid.strip():
        raise CommandParseError("playerId must be a non-empty string")
    return pid


def _coord(raw: Any, name: str) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise CommandParseError(f"coords.{name} must be an integer")
    return raw


def parse_message(obj: Any, connection_id: str) -> Command:
    """Turn one decoded wire message into a command issued by *connection_id*.

    Expected shape: ``{"event": <name>, "data": {...}}``.
    """
    if not isinstance(obj, dict):
        raise CommandParseError("message must be an object")
    event = obj.get("event")
    data = obj.get("data") or {}
    if not isinstance(data, dict):
        raise CommandParseError("data must be an object")

    if event == "joinGame":
        return JoinGame(player_id=_player_id(data), connection_id=connection_id)
    elif event == "placeFleet":
        pid = _player_id(data)
        try:
            grid = Grid.from_dict(data.get("grid"))
            fleet = fleet_from_list(data.get("fleet"))
        except ModelError as e:
            raise CommandParseError(f"invalid fleet: {e}") from e
        return PlaceFleet(player_id=pid, connection_id=connection_id, grid=grid, fleet=fleet)
    elif event == "attack":
        pid = _player_id(data)
        coords = data.get("coords")
        if not isinstance(coords, dict):
            raise CommandParseError("attack requires coords {x, y}")
        return Attack(
            player_id=pid,
            connection_id=connection_id,
            x=_coord(coords.get("x"), "x"),
            y=_coord(coords.get("y"), "y"),
        )
    elif event == "disconnect":
        raise CommandParseError("disconnect is reserved for the transport")
    else:
        raise CommandParseError(f"Unknown event: {event!r}")
