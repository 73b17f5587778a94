import logging
import random
import socket
import sys
from pathlib import Path
from typing import Any, Callable

import pytest

# Ensure local `src` directory is importable before project is installed.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from salvo.events import Emission, EventType
from salvo.fleet_builder import FleetBuilder, random_fleet
from salvo.protocol import FrameCodec, PacketType
from salvo.session import GameSession

# Suppress INFO & DEBUG logs from server threads during tests
logging.basicConfig(level=logging.WARNING)


class FakeTimer:
    """Stand-in for threading.Timer that only fires when told to."""

    def __init__(self, delay: float, fn: Callable[[], None]) -> None:
        self.delay = delay
        self.fn = fn
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.started and not self.cancelled:
            self.fn()


@pytest.fixture
def fake_timers() -> list[FakeTimer]:
    """Every FakeTimer created by the factory returned from make_session()."""
    return []


@pytest.fixture
def make_session(fake_timers) -> Callable[..., GameSession]:
    def _factory(**kwargs: Any) -> GameSession:
        def _timer(delay, fn):
            t = FakeTimer(delay, fn)
            fake_timers.append(t)
            return t

        kwargs.setdefault("rng", random.Random(1234))
        kwargs.setdefault("timer_factory", _timer)
        kwargs.setdefault("state_dump", None)
        kwargs.setdefault("strict_placement", False)
        return GameSession(**kwargs)

    return _factory


def known_fleet() -> FleetBuilder:
    """Five ships laid out on even rows, all horizontal; (0, 0) and (0, 1) are water.

    Frigate (0,2)-(0,3), Destroyer (2,0)-(2,2), Submarine (4,0)-(4,2),
    Battleship (6,0)-(6,3), Carrier (8,0)-(8,4).
    """
    builder = FleetBuilder()
    for x, y in [(0, 2), (2, 0), (4, 0), (6, 0), (8, 0)]:
        assert builder.place_at(x, y), f"could not place ship at {(x, y)}"
    return builder


def seeded_fleet(seed: int) -> FleetBuilder:
    return random_fleet(rng=random.Random(seed))


def events(emissions: list[Emission], connection_id: str | None = None) -> list[EventType]:
    """Event types in *emissions*, optionally only those delivered to *connection_id*."""
    return [e.event for e in emissions if connection_id is None or connection_id in e.recipients]


def only(emissions: list[Emission], event: EventType) -> Emission:
    found = [e for e in emissions if e.event is event]
    assert len(found) == 1, f"expected exactly one {event}, got {found}"
    return found[0]


@pytest.fixture
def started_session(make_session):
    """Session with players A (conn-a) and B (conn-b) who have both placed known_fleet().

    Returns ``(session, first_player_id, other_player_id)``.
    """
    session = make_session()
    session.join("A", "conn-a")
    session.join("B", "conn-b")
    for pid, cid in (("A", "conn-a"), ("B", "conn-b")):
        fleet = known_fleet()
        out = session.place_fleet(pid, fleet.grid, fleet.fleet, connection_id=cid)
    first = only(out, EventType.GAME_START).data["firstTurn"]
    other = "B" if first == "A" else "A"
    return session, first, other


def conn_of(player_id: str) -> str:
    return f"conn-{player_id.lower()}"


class TestClient:
    """Simple client wrapper for integration tests over the framed protocol."""

    __test__ = False

    def __init__(self, sock: socket.socket, codec: FrameCodec | None = None) -> None:
        self.sock = sock
        self.codec = codec or FrameCodec()
        self.rfile = sock.makefile("rb")
        self.wfile = sock.makefile("wb")
        self.seq = 0

    def send(self, event: str, data: dict[str, Any]) -> None:
        self.codec.send_pkt(self.wfile, PacketType.GAME, self.seq, {"event": event, "data": data})
        self.seq += 1

    def recv(self) -> tuple[PacketType, dict[str, Any]]:
        ptype, _seq, obj = self.codec.recv_pkt(self.rfile)
        return ptype, obj

    def recv_until(self, event: str, limit: int = 20) -> dict[str, Any]:
        """Read envelopes until one with *event* arrives; returns it."""
        for _ in range(limit):
            _ptype, obj = self.recv()
            if obj.get("event") == event:
                return obj
        raise AssertionError(f"no {event!r} within {limit} packets")

    def close(self) -> None:
        for f in (self.rfile, self.wfile):
            f.close()
        self.sock.close()
