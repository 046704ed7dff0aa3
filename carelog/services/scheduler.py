"""Per-key debounced callbacks."""

from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING

from PySide6.QtCore import QObject, QTimer

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable

logger = logging.getLogger(__name__)


class DebounceScheduler(QObject):
    """
    Trailing-edge debouncer keeping one timer per key.

    Scheduling a key that already has a pending timer restarts the timer and
    replaces its callback, so a burst of calls for the same key results in a
    single callback ``delay_ms`` after the last one.  Keys are independent.

    Timers run on the Qt event loop of the thread that owns the scheduler.

    Args:
        delay_ms: Default debounce delay in milliseconds
        parent: Parent object

    """

    def __init__(self, delay_ms: int = 500, parent: QObject | None = None) -> None:
        super().__init__(parent)
        #: The default debounce delay in milliseconds.
        self.delay_ms = delay_ms
        #: The timer of each key.
        self._timers: dict[Hashable, QTimer] = {}
        #: The callback each pending key will fire.
        self._callbacks: dict[Hashable, Callable[[], None]] = {}

    def schedule(
        self,
        key: Hashable,
        callback: Callable[[], None],
        delay_ms: int | None = None,
    ) -> None:
        """
        Schedule ``callback`` to run after the delay, restarting any pending
        timer for ``key``.

        Args:
            key: The key to debounce on
            callback: Function to call when the timer fires
            delay_ms: Delay in milliseconds; defaults to :attr:`delay_ms`

        """
        timer = self._timers.get(key)
        if timer is None:
            timer = QTimer(self)
            timer.setSingleShot(True)
            timer.timeout.connect(partial(self._fire, key))
            self._timers[key] = timer
        self._callbacks[key] = callback
        # start() on an active timer restarts it
        timer.start(self.delay_ms if delay_ms is None else delay_ms)
        logger.debug(f"Scheduled {key!s} in {timer.interval()} ms")

    def _fire(self, key: Hashable) -> None:
        callback = self._callbacks.pop(key, None)
        if callback is not None:
            callback()

    def cancel(self, key: Hashable) -> bool:
        """
        Cancel the pending timer for ``key`` without firing it.

        Args:
            key: The key

        Returns:
            True if a timer was pending

        """
        timer = self._timers.get(key)
        if timer is not None:
            timer.stop()
        return self._callbacks.pop(key, None) is not None

    def cancel_all(self) -> None:
        """Cancel every pending timer."""
        for timer in self._timers.values():
            timer.stop()
        self._callbacks.clear()

    def is_pending(self, key: Hashable) -> bool:
        """Whether a timer for ``key`` is waiting to fire."""
        return key in self._callbacks

    def pending_keys(self) -> list[Hashable]:
        """The keys with a timer waiting to fire."""
        return list(self._callbacks)
