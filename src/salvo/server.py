"""SALVO TCP server.

Accepts any number of connections.  Each connection gets its own reader
thread that decodes frames into commands and hands them to the current
:class:`~salvo.session.GameSession`; the emissions that come back are
delivered by the :class:`~salvo.router.EventRouter`.  Once a match is
finished the next ``joinGame`` from an unbound connection opens a fresh
session.
"""

from __future__ import annotations

import argparse
import contextlib
import functools
import itertools
import logging
import signal
import socket
import sys
import threading
from dataclasses import dataclass, field
from io import BufferedReader, BufferedWriter
from typing import Any, Callable

from . import config as _cfg
from .commands import CommandParseError, Disconnect, JoinGame, parse_message
from .events import Audience, Emission, EventType, StatusCode
from .protocol import FrameCodec, FrameError, PacketType
from .router import EventRouter
from .session import GameSession

HOST = _cfg.DEFAULT_HOST
PORT = _cfg.DEFAULT_PORT

logger = logging.getLogger(__name__)


@dataclass
class _Connection:
    connection_id: str
    sock: socket.socket
    rfile: BufferedReader
    wfile: BufferedWriter
    seq: int = 0
    wlock: threading.Lock = field(default_factory=threading.Lock)


class SalvoServer:
    """Owns the live connections and the session they play in."""

    def __init__(
        self,
        *,
        codec: FrameCodec | None = None,
        session_factory: Callable[[], GameSession] = GameSession,
    ) -> None:
        self.codec = codec or FrameCodec()
        self._session_factory = session_factory
        self._lock = threading.Lock()
        self._connections: dict[str, _Connection] = {}
        self._bound: dict[str, GameSession] = {}
        self._current: GameSession | None = None
        self._ids = itertools.count(1)
        self._listener: socket.socket | None = None
        self.router = EventRouter(self._send)

    # -------------------- sessions --------------------
    @property
    def current_session(self) -> GameSession | None:
        return self._current

    def _session_for(self, connection_id: str, *, bind: bool) -> GameSession:
        with self._lock:
            session = self._bound.get(connection_id)
            if session is not None and not (bind and session.finished):
                return session
            if self._current is None or self._current.finished:
                if self._current is not None:
                    logger.info("Match finished – opening a new session")
                    self._current.close()
                self._current = self._session_factory()
            if bind:
                self._bound[connection_id] = self._current
            return self._current

    # -------------------- connections --------------------
    def attach(self, sock: socket.socket) -> str:
        """Start serving an accepted socket; returns its connection id."""
        conn_id = f"conn-{next(self._ids)}"
        conn = _Connection(conn_id, sock, sock.makefile("rb"), sock.makefile("wb"))
        with self._lock:
            self._connections[conn_id] = conn
        threading.Thread(target=self._serve, args=(conn,), name=conn_id, daemon=True).start()
        logger.debug("Connection attached: %s", conn_id)
        return conn_id

    def _send(self, connection_id: str, ptype: PacketType, obj: Any) -> bool:
        with self._lock:
            conn = self._connections.get(connection_id)
        if conn is None:
            return False
        with conn.wlock:
            try:
                self.codec.send_pkt(conn.wfile, ptype, conn.seq, obj)
            except (OSError, ValueError):
                logger.debug("Send to %s failed", connection_id, exc_info=True)
                return False
            conn.seq += 1
        return True

    def _reject(self, connection_id: str, message: str) -> None:
        self.router(
            [
                Emission(
                    Audience.REQUESTER,
                    EventType.ERROR,
                    message,
                    {"message": message},
                    StatusCode.BAD_REQUEST,
                    None,
                    (connection_id,),
                )
            ]
        )

    def _serve(self, conn: _Connection) -> None:
        """Reader loop for one connection, run in its own thread."""
        try:
            while True:
                try:
                    _ptype, _seq, obj = self.codec.recv_pkt(conn.rfile)
                except (FrameError, OSError) as e:
                    logger.debug("Connection %s closed: %s", conn.connection_id, e)
                    break
                try:
                    cmd = parse_message(obj, conn.connection_id)
                except CommandParseError as e:
                    self._reject(conn.connection_id, str(e))
                    continue
                session = self._session_for(conn.connection_id, bind=isinstance(cmd, JoinGame))
                self.router(session.handle(cmd))
        finally:
            self._drop(conn)

    def _drop(self, conn: _Connection) -> None:
        with self._lock:
            self._connections.pop(conn.connection_id, None)
            session = self._bound.pop(conn.connection_id, None)
        with conn.wlock:
            for f in (conn.rfile, conn.wfile, conn.sock):
                with contextlib.suppress(OSError):
                    f.close()
        if session is not None:
            self.router(session.handle(Disconnect(conn.connection_id)))

    # -------------------- lifecycle --------------------
    def serve_forever(self, host: str = HOST, port: int = PORT) -> None:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server_sock:
            server_sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            server_sock.bind((host, port))
            server_sock.listen()
            self._listener = server_sock
            logger.info("SALVO server listening on %s:%s", host, port)
            try:
                while True:
                    try:
                        conn, addr = server_sock.accept()
                    except OSError:
                        break  # listener closed by shutdown()
                    logger.info("Connection from %s", addr)
                    self.attach(conn)
            finally:
                self.shutdown()

    def shutdown(self) -> None:
        with self._lock:
            conns = list(self._connections.values())
            sessions = {id(s): s for s in self._bound.values()}
            if self._current is not None:
                sessions[id(self._current)] = self._current
        if self._listener is not None:
            with contextlib.suppress(OSError):
                self._listener.close()
        for c in conns:
            with contextlib.suppress(OSError):
                c.sock.shutdown(socket.SHUT_RDWR)
            with contextlib.suppress(OSError):
                c.sock.close()
        for s in sessions.values():
            s.close()


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="SALVO battleship server")
    parser.add_argument("--host", default=HOST, help="Address to bind to.")
    parser.add_argument("--port", type=int, default=PORT, help="Port to listen on.")
    parser.add_argument(
        "--secure",
        nargs="?",
        const=_cfg.DEFAULT_KEY_HEX,
        default=None,
        metavar="HEX",
        help="Encrypt frames with AES-GCM (optionally give the key as hex).",
    )
    parser.add_argument(
        "--grace-period",
        type=float,
        default=_cfg.GRACE_PERIOD,
        help="Seconds a disconnected player keeps their seat.",
    )
    parser.add_argument(
        "--strict-placement",
        action="store_true",
        default=_cfg.STRICT_PLACEMENT,
        help="Re-validate submitted fleets on the server.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity.")
    parser.add_argument(
        "-s",
        "--silent",
        "-q",
        "--quiet",
        dest="silent",
        action="store_true",
        help="Suppress all output.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:  # pragma: no cover – side-effect entrypoint
    args = _parse_args(argv)

    # Determine log level from CLI flags:
    if args.silent:
        level = logging.ERROR
    elif args.debug or _cfg.DEBUG:
        level = logging.DEBUG
    elif args.verbose >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    codec = FrameCodec(bytes.fromhex(args.secure)) if args.secure else FrameCodec()
    if codec.encrypted:
        logger.info("AES-GCM encryption ENABLED")
    factory = functools.partial(
        GameSession, grace_period=args.grace_period, strict_placement=args.strict_placement
    )
    server = SalvoServer(codec=codec, session_factory=factory)

    # install graceful shutdown handler
    def _shutdown(signum, frame):
        sys.stderr.write("\n")
        logger.info("Received signal %s, shutting down", signum)
        server.shutdown()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    server.serve_forever(args.host, args.port)


if __name__ == "__main__":  # pragma: no cover
    main()
