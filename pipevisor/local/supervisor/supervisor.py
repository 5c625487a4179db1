import time
import logging

from pipevisor import settings
from pipevisor.log import get_proc_logger
from pipevisor.local.config import SupervisorConfig
from pipevisor.local.supervisor import startup
from pipevisor.local.supervisor.event_loop import EventLoop
from pipevisor.local.supervisor.process_utils import ProcessTable
from pipevisor.local.supervisor.shutdown import Teardown
from pipevisor.local.supervisor.signals import PendingEvents, SignalBridge

log = logging.getLogger(__name__)
status = get_proc_logger(settings.SYSTEM_TAG)

# Supervision ending is always reported to the parent as a failure.
EXIT_CHECK_FAILED = 1
EXIT_DRAINED = 1


class Supervisor:
    """
    Owns the whole supervision context: the process table, the pending
    signal flags, the signal bridge, the teardown state machine and the
    event loop that ties them together.
    """

    def __init__(self, config: SupervisorConfig) -> None:
        """Initializes the Supervisor state from an immutable configuration."""
        self.config = config
        self.table = ProcessTable(config)
        self.events = PendingEvents()
        self.bridge = SignalBridge(self.events)
        self.teardown = Teardown(self.table, config.shutdown_timeout)
        self.loop = EventLoop(self.table, self.teardown, self.bridge, self.events)

    def run(self) -> int:
        """
        Runs the startup-check phase, then the normal-run phase.

        Returns only once every child has exited; a forced shutdown exits
        the process from inside the event loop instead.

        :return: The process exit status, always non-zero.
        """
        log.debug(f"Supervising {len(self.table)} configured processes.")
        start_time = time.monotonic()
        self.bridge.install()
        try:
            startup.startup_check(self)
            if self.teardown.in_progress:
                status.info("Startup check failed, shutting down.")
                return EXIT_CHECK_FAILED

            startup.start_all_processes(self)
            return EXIT_DRAINED
        finally:
            self.teardown.disarm()
            self.bridge.restore()
            log.debug(f"Supervision ended after {time.monotonic() - start_time:.2f} seconds.")
