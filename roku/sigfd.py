"""Delivery of process signals through a descriptor that can be selected on."""

import signal
import socket


def _ignore(signum, frame):
    """Handler that leaves the work to the wakeup descriptor."""


class SignalWatcher:
    """Routes the given signals to a socket readable through select().

    Handlers and the wakeup descriptor in place before are restored on close.
    """

    def __init__(self, *signals):
        self._signals = signals or (signal.SIGTERM, signal.SIGINT)
        self._reader, self._writer = socket.socketpair()
        self._writer.setblocking(False)
        self._previous_handlers = {}
        self._previous_wakeup = None
        self._closed = False
        try:
            self._previous_wakeup = signal.set_wakeup_fd(
                self._writer.fileno(), warn_on_full_buffer=False)
            for signum in self._signals:
                self._previous_handlers[signum] = signal.signal(signum, _ignore)
        except BaseException:
            self.close()
            raise

    def fileno(self) -> int:
        """Return the descriptor that becomes readable when a signal arrives."""
        if self._closed:
            raise ValueError("signal watcher is closed")
        return self._reader.fileno()

    def read(self) -> int:
        """Block until a signal arrives and return its number."""
        if self._closed:
            raise ValueError("signal watcher is closed")
        data = self._reader.recv(1)
        if not data:
            raise OSError("signal socket was closed")
        return data[0]

    def close(self) -> None:
        """Restore previous signal handling and release the sockets."""
        if self._closed:
            return
        self._closed = True
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, signal.SIG_DFL if handler is None else handler)
        self._previous_handlers.clear()
        if self._previous_wakeup is not None:
            signal.set_wakeup_fd(self._previous_wakeup)
            self._previous_wakeup = None
        self._reader.close()
        self._writer.close()

    def __enter__(self) -> "SignalWatcher":
        return self

    def __exit__(self, *args) -> None:
        self.close()