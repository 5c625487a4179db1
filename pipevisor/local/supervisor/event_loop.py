"""
The single coordinating loop of the supervisor.

Each iteration waits for readiness on the signal bridge and every live child
stream, pumps output, handles pending signal flags, reaps exited children,
and reports whether anything is still running. Flags are handled before
reaping, and reaping before the liveness check.
"""
import select
import signal
import logging
from typing import TYPE_CHECKING, Dict, Tuple

from pipevisor import settings
from pipevisor.log import get_proc_logger
from pipevisor.local.supervisor.process_utils import ExitOutcome

if TYPE_CHECKING:
    from .multiplexer import LineMultiplexer
    from .process_utils import ChildState, ProcessTable
    from .shutdown import Teardown
    from .signals import PendingEvents, SignalBridge

log = logging.getLogger(__name__)
status = get_proc_logger(settings.SYSTEM_TAG)

READABLE = select.POLLIN | select.POLLHUP | select.POLLERR | select.POLLNVAL

# (pending flag, signal, ChildDefinition opt-in attribute)
FORWARDED_SIGNALS = (
    ("sigusr1", signal.SIGUSR1, "receives_sigusr1"),
    ("sigusr2", signal.SIGUSR2, "receives_sigusr2"),
)


class EventLoop:
    def __init__(self, table: "ProcessTable", teardown: "Teardown", bridge: "SignalBridge", events: "PendingEvents"):
        self.table = table
        self.teardown = teardown
        self.bridge = bridge
        self.events = events

    def _build_wait_set(self):
        poller = select.poll()
        poller.register(self.bridge.fileno(), select.POLLIN)

        targets: Dict[int, Tuple["ChildState", str, "LineMultiplexer"]] = {}
        for state in self.table.running_states():
            for kind, stream, mux in state.streams():
                fd = stream.fileno()
                poller.register(fd, select.POLLIN)
                targets[fd] = (state, kind, mux)
        return poller, targets

    def wait_and_pump(self) -> None:
        """Blocks until something is readable, then pumps child output and drains the bridge."""
        poller, targets = self._build_wait_set()

        # EINTR is retried by the interpreter after the handlers ran;
        # the wake-up byte then makes poll() return.
        try:
            ready = poller.poll()
        except OSError as e:
            log.error(f"Waiting for events failed: {e}")
            self.teardown.begin("Waiting for events failed.")
            return

        bridge_fd = self.bridge.fileno()
        for fd, revents in ready:
            if not revents & READABLE:
                continue
            if fd == bridge_fd:
                self.bridge.drain()
                continue

            state, kind, mux = targets[fd]
            if not mux.pump(fd):
                log.debug(f"{kind} of {state.name} closed")
                state.close_stream(kind)

    def forward(self, sig: signal.Signals, opt_in: str) -> int:
        """
        Relays `sig` to every running child whose definition opts in.

        :return: The number of children signalled.
        """
        forwarded = 0
        for state in self.table.running_states():
            if not getattr(state.definition, opt_in):
                continue
            status.info(f"Passing {sig.name} to child {state.name} ({state.pid}).")
            if state.send_signal(sig):
                forwarded += 1
        return forwarded

    def process_events(self) -> None:
        """Consumes every pending flag exactly once."""
        if self.events.consume("termination"):
            status.info("Received request to terminate.")
            if self.teardown.in_progress:
                self.teardown.escalate("Shutdown already in progress.")
            self.teardown.begin("Performing soft shutdown.")

        for flag, sig, opt_in in FORWARDED_SIGNALS:
            if self.events.consume(flag):
                status.info(f"Received {sig.name}.")
                self.forward(sig, opt_in)

        # Reaping happens on every iteration; the flag only woke us up.
        self.events.consume("child_exited")

        if self.events.consume("alarm"):
            self.teardown.escalate("Shutdown timeout has arrived.")

    def reap(self) -> None:
        """Reaps exited children and starts teardown on a failed check or any normal-run exit."""
        for state, outcome in self.table.reap():
            if outcome is ExitOutcome.FAILURE:
                self.teardown.begin(f"Startup check {state.name} failed.")
            elif outcome is ExitOutcome.EXITED:
                self.teardown.begin(f"{state.name} exited.")

    def iterate(self) -> bool:
        """
        Runs one loop iteration.

        :return: True while any child is still running.
        """
        self.wait_and_pump()
        self.process_events()
        self.reap()
        return self.table.any_running()

    def run(self) -> None:
        """Iterates until no child of the active phase is running."""
        while self.table.any_running():
            self.iterate()
