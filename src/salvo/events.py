"""Outbound event model used by GameSession to decouple game logic from transport.

The session never writes to a socket.  Each operation returns a list of
:class:`Emission` objects naming the event, who should receive it and the
connection ids it resolves to at the time it was produced.  The router
turns each one into the uniform envelope::

    {status, event, ids: {playerId, socketId}, message, data, timestamp}
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Dict


class EventType(str, enum.Enum):
    """Every event name the server can send; values are the wire names."""

    JOINED = "joined"
    RECONNECT_PLAYER = "reconnectPlayer"
    GAME_READY = "gameReady"
    FLEET_PLACED = "fleetPlaced"
    GAME_START = "gameStart"
    ATTACK_RESULT = "attackResult"
    ATTACKED = "attacked"
    TURN_CHANGE = "turnChange"
    GAME_OVER = "gameOver"
    ERROR = "error"


class Audience(enum.Enum):
    REQUESTER = enum.auto()  # the connection that sent the request
    OPPONENT = enum.auto()  # the other seat only
    BROADCAST = enum.auto()  # every seat of the session


class StatusCode(enum.IntEnum):
    OK = 200
    CREATED = 201
    BAD_REQUEST = 400
    FORBIDDEN = 403
    NOT_FOUND = 404
    CONFLICT = 409
    SERVICE_UNAVAILABLE = 503


@dataclass(frozen=True, slots=True)
class Emission:
    """One outbound event produced by a session operation."""

    audience: Audience
    event: EventType
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    status: StatusCode = StatusCode.OK
    # player the event is about (requester or opponent), if known
    player_id: str | None = None
    # connection ids resolved when the emission was created
    recipients: tuple[str, ...] = ()

    @property
    def is_error(self) -> bool:
        return self.event is EventType.ERROR


def envelope(em: Emission, socket_id: str | None, *, timestamp: int | None = None) -> Dict[str, Any]:
    """Build the wire payload of *em* as delivered to *socket_id*."""
    return {
        "status": int(em.status),
        "event": em.event.value,
        "ids": {"playerId": em.player_id, "socketId": socket_id},
        "message": em.message,
        "data": em.data,
        "timestamp": timestamp if timestamp is not None else int(time.time() * 1000),
    }
