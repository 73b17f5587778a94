"""Translate session emissions into wire-protocol packets.

The router lives *outside* GameSession so that delivery rules are declared
in a single place and the session stays free of I/O.  It is also
straight-forward to unit-test by feeding synthetic Emission objects and a
recording send function.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterable

from .events import Emission, envelope
from .protocol import PacketType

logger = logging.getLogger(__name__)

# send(connection_id, ptype, payload) -> delivered?
SendFn = Callable[[str, PacketType, Any], bool]


class EventRouter:
    """Server-scoped helper that converts ``Emission`` → ``send()`` calls."""

    def __init__(self, send: SendFn, *, clock: Callable[[], float] = time.time) -> None:
        self._send = send
        self._clock = clock

    def __call__(self, emissions: Iterable[Emission]) -> int:
        """Deliver every emission; returns the number of packets sent."""
        sent = 0
        for em in emissions:
            try:
                sent += self.dispatch(em)
            except Exception:  # noqa: BLE001
                logger.exception("Event routing failed for %s", em)
        return sent

    def dispatch(self, em: Emission) -> int:
        ptype = PacketType.ERROR if em.is_error else PacketType.GAME
        timestamp = int(self._clock() * 1000)
        if not em.recipients:
            logger.debug("Dropping %s: no recipient connection", em.event.value)
            return 0
        sent = 0
        for conn_id in em.recipients:
            payload = envelope(em, conn_id, timestamp=timestamp)
            if self._send(conn_id, ptype, payload):
                sent += 1
            else:
                logger.debug("%s not delivered to %s", em.event.value, conn_id)
        logger.debug(
            "%s (%s): %s for player %s", em.event.value, em.audience.name.lower(), em.message, em.player_id
        )
        return sent
