"""Coordinated shutdown of a service and the worker threads it attaches."""

from __future__ import annotations

import threading
from collections.abc import Callable


class SafeClose:
    """Lets close_wait return only after the service and all attached workers exit.

    The main service thread waits on receive_close_signal() and calls done()
    when it returns. Workers are started with attach() and also watch the close
    signal. Any of them may call send_close_signal() on a fatal error; any
    outside caller may call close_wait() to stop the service.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending_cond = threading.Condition(self._lock)
        self._pending = 0
        self._close_signal = threading.Event()
        self._done = threading.Event()
        self._close_err: BaseException | None = None

    def close_wait(self) -> None:
        """Send the close signal and block until done() and all workers finish."""
        with self._pending_cond:
            self._close_signal.set()
            self._pending_cond.wait_for(lambda: self._pending == 0)
        self._done.wait()

    def send_close_signal(self, err: BaseException | None) -> None:
        """Send the close signal, remembering err if it is the first one."""
        with self._lock:
            if not self._close_signal.is_set():
                self._close_err = err
                self._close_signal.set()

    def error(self) -> BaseException | None:
        """Return the error given to the first send_close_signal call."""
        with self._lock:
            return self._close_err

    def receive_close_signal(self) -> threading.Event:
        """Return the event that is set once closing has begun."""
        return self._close_signal

    def attach(
        self, f: Callable[[Callable[[], None], threading.Event], None]
    ) -> None:
        """Run f(done, close_signal) in a new thread, unless already closed.

        f must call done when it finishes.
        """
        with self._lock:
            if self._close_signal.is_set():
                return
            self._pending += 1
            threading.Thread(
                target=f, args=(self._attach_done, self._close_signal), daemon=True
            ).start()

    def _attach_done(self) -> None:
        with self._pending_cond:
            self._pending -= 1
            self._pending_cond.notify_all()

    def done(self) -> None:
        """Tell close_wait that the main service has finished. Idempotent."""
        with self._lock:
            self._done.set()