"""Execution of blocking backend requests off the event loop."""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING, Any

from PySide6.QtCore import QObject, QRunnable, Qt, QThreadPool, Signal, Slot

if TYPE_CHECKING:
    from collections.abc import Callable


class _RequestSignals(QObject):
    """Carries a request's completion back to the runner's thread."""

    succeeded = Signal(int, object)
    failed = Signal(int, object)


class _Request(QRunnable):
    """A blocking call run on a pool thread."""

    def __init__(
        self, request_id: int, func: Callable[[], Any], signals: _RequestSignals
    ) -> None:
        super().__init__()
        self.request_id = request_id
        self.func = func
        self.signals = signals

    def run(self) -> None:
        try:
            result = self.func()
        except Exception as e:  # noqa: BLE001
            # Handed to the submitter's on_failure on the runner's thread
            self.signals.failed.emit(self.request_id, e)
        else:
            self.signals.succeeded.emit(self.request_id, result)


class ThreadPoolRunner(QObject):
    """
    Runs blocking requests on a :class:`QThreadPool`.

    ``on_success`` and ``on_failure`` are always called on the thread that
    owns the runner (normally the UI thread), from its event loop, so the
    code handling completions never runs concurrently with itself.

    Args:
        pool: Thread pool to use; defaults to the global pool
        parent: Parent object

    """

    def __init__(
        self, pool: QThreadPool | None = None, parent: QObject | None = None
    ) -> None:
        super().__init__(parent)
        #: The thread pool requests run on.
        self.pool = pool if pool is not None else QThreadPool.globalInstance()
        self._ids = itertools.count(1)
        self._callbacks: dict[
            int, tuple[Callable[[Any], None], Callable[[Exception], None]]
        ] = {}
        self._signals = _RequestSignals(self)
        self._signals.succeeded.connect(
            self._on_succeeded, Qt.ConnectionType.QueuedConnection
        )
        self._signals.failed.connect(
            self._on_failed, Qt.ConnectionType.QueuedConnection
        )

    def submit(
        self,
        func: Callable[[], Any],
        on_success: Callable[[Any], None],
        on_failure: Callable[[Exception], None],
    ) -> None:
        """
        Run ``func`` on the pool.

        Args:
            func: The blocking call
            on_success: Called with the result
            on_failure: Called with the exception ``func`` raised

        """
        request_id = next(self._ids)
        self._callbacks[request_id] = (on_success, on_failure)
        self.pool.start(_Request(request_id, func, self._signals))

    @property
    def in_flight(self) -> int:
        """How many submitted requests have not completed yet."""
        return len(self._callbacks)

    @Slot(int, object)
    def _on_succeeded(self, request_id: int, result: Any) -> None:
        callbacks = self._callbacks.pop(request_id, None)
        if callbacks is not None:
            callbacks[0](result)

    @Slot(int, object)
    def _on_failed(self, request_id: int, error: Exception) -> None:
        callbacks = self._callbacks.pop(request_id, None)
        if callbacks is not None:
            callbacks[1](error)


class InlineRunner:
    """
    Runs requests synchronously on the calling thread.

    Suitable when the backend is local and fast, and for scripts.  Errors
    raised by the request are passed to ``on_failure`` exactly as
    :class:`ThreadPoolRunner` would.
    """

    def submit(
        self,
        func: Callable[[], Any],
        on_success: Callable[[Any], None],
        on_failure: Callable[[Exception], None],
    ) -> None:
        """
        Run ``func`` now.

        Args:
            func: The blocking call
            on_success: Called with the result
            on_failure: Called with the exception ``func`` raised

        """
        try:
            result = func()
        except Exception as e:  # noqa: BLE001
            on_failure(e)
            return
        on_success(result)
