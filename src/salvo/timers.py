"""GraceTimers: delayed tasks keyed by connection id.

A session schedules one task per dropped connection.  The task does not
get cancelled when the player comes back; the callback itself re-checks
whether the connection is still the one bound to the player.  Scheduling
the same key twice replaces the earlier task.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Protocol

logger = logging.getLogger(__name__)


class _Timer(Protocol):
    daemon: bool

    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], _Timer]


class GraceTimers:
    """
    Owns the pending grace-period tasks of a single session.

    *timer_factory* defaults to :class:`threading.Timer`; tests pass a fake
    that lets them fire tasks by hand.
    """

    def __init__(self, delay: float, timer_factory: TimerFactory | None = None) -> None:
        self.delay = delay
        self._factory: TimerFactory = timer_factory or threading.Timer
        self._lock = threading.Lock()
        self._pending: Dict[str, _Timer] = {}
        self._closed = False

    def schedule(self, key: str, callback: Callable[[str], None]) -> None:
        """Run ``callback(key)`` once *delay* seconds have passed."""

        def _fire() -> None:
            with self._lock:
                if self._pending.get(key) is not timer:
                    return
                del self._pending[key]
            callback(key)

        timer = self._factory(self.delay, _fire)
        timer.daemon = True
        with self._lock:
            if self._closed:
                logger.debug("Timers closed; not scheduling %s", key)
                return
            previous = self._pending.pop(key, None)
            self._pending[key] = timer
        if previous is not None:
            previous.cancel()
        logger.debug("Grace period of %ss started for %s", self.delay, key)
        timer.start()

    def pending(self) -> list[str]:
        with self._lock:
            return list(self._pending)

    def close(self) -> None:
        """Cancel every outstanding task; later schedule() calls are ignored."""
        with self._lock:
            self._closed = True
            timers = list(self._pending.values())
            self._pending.clear()
        for t in timers:
            t.cancel()
