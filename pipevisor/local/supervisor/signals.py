"""
Bridges asynchronous signal delivery into the poll-driven event loop.

Handlers only set a flag on PendingEvents. The wake-up byte is written by
the interpreter itself (signal.set_wakeup_fd) at the moment the OS delivers
the signal, so a signal that lands between checking the flags and entering
poll() still leaves the bridge's read end readable.
"""
import os
import signal
import logging
from typing import Dict, Optional

log = logging.getLogger(__name__)

TERMINATION_SIGNALS = (signal.SIGTERM, signal.SIGINT)
HANDLED_SIGNALS = TERMINATION_SIGNALS + (signal.SIGUSR1, signal.SIGUSR2, signal.SIGCHLD, signal.SIGALRM)


class PendingEvents:
    """Single-word flags set from signal handlers and consumed by the event loop."""

    __slots__ = ("termination", "sigusr1", "sigusr2", "alarm", "child_exited")

    def __init__(self) -> None:
        self.termination = False
        self.sigusr1 = False
        self.sigusr2 = False
        self.alarm = False
        self.child_exited = False

    def consume(self, name: str) -> bool:
        """Returns the flag's value and clears it."""
        value = getattr(self, name)
        if value:
            setattr(self, name, False)
        return value


class SignalBridge:
    """
    Owns the signal handlers and the private wake-up pipe.

    Must be installed from the main thread.
    """

    def __init__(self, events: PendingEvents):
        self.events = events
        self._read_fd: Optional[int] = None
        self._write_fd: Optional[int] = None
        self._previous_handlers: Dict[int, object] = {}
        self._previous_wakeup_fd = -1

    def _handle(self, signum, frame) -> None:
        if signum in TERMINATION_SIGNALS:
            self.events.termination = True
        elif signum == signal.SIGUSR1:
            self.events.sigusr1 = True
        elif signum == signal.SIGUSR2:
            self.events.sigusr2 = True
        elif signum == signal.SIGALRM:
            self.events.alarm = True
        elif signum == signal.SIGCHLD:
            self.events.child_exited = True

    def install(self) -> None:
        """Creates the wake-up pipe and installs handlers for every bridged signal."""
        if self._read_fd is not None:
            return

        self._read_fd, self._write_fd = os.pipe()
        os.set_blocking(self._read_fd, False)
        os.set_blocking(self._write_fd, False)

        self._previous_wakeup_fd = signal.set_wakeup_fd(self._write_fd, warn_on_full_buffer=False)
        for signum in HANDLED_SIGNALS:
            self._previous_handlers[signum] = signal.signal(signum, self._handle)
        log.debug(f"Signal bridge installed on fd {self._read_fd}")

    def fileno(self) -> int:
        if self._read_fd is None:
            raise RuntimeError("Signal bridge is not installed")
        return self._read_fd

    def drain(self) -> None:
        """Discards every pending wake-up byte."""
        while True:
            try:
                if not os.read(self.fileno(), 512):
                    return
            except BlockingIOError:
                return

    def restore(self) -> None:
        """Reinstates the previous handlers and wake-up fd, then closes the pipe."""
        if self._read_fd is None:
            return

        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
        self._previous_handlers.clear()
        signal.set_wakeup_fd(self._previous_wakeup_fd)

        os.close(self._read_fd)
        os.close(self._write_fd)
        self._read_fd = self._write_fd = None
        log.debug("Signal bridge removed")
