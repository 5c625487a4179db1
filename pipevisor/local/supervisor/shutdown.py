import os
import signal
import logging
from enum import Enum
from typing import TYPE_CHECKING

from pipevisor import settings
from pipevisor.log import get_proc_logger, flush_logging

if TYPE_CHECKING:
    from .process_utils import ProcessTable

log = logging.getLogger(__name__)
status = get_proc_logger(settings.SYSTEM_TAG)

EXIT_FORCED = 1


class TeardownState(Enum):
    RUNNING = "running"
    SOFT_TEARDOWN = "soft_teardown"
    HARD_TEARDOWN = "hard_teardown"


def _terminate_processes(table: "ProcessTable") -> int:
    """Sends each running child its configured graceful termination signal."""
    sent = 0
    for state in table.running_states():
        sig = state.definition.termination_signal
        log.debug(f"Sending {signal.Signals(sig).name} to {state.name} (PID {state.pid})")
        if state.send_signal(sig):
            sent += 1
    return sent


def _forceful_kill(table: "ProcessTable") -> None:
    """Sends SIGKILL to every child that is still running."""
    for state in table.running_states():
        log.warning(f"Killing stubborn process {state.name} (PID {state.pid}).")
        state.send_signal(signal.SIGKILL)


class Teardown:
    """
    Two-stage shutdown: ask every child to exit, and if they have not all
    been reaped when the escalation alarm fires, kill them and exit.
    """

    def __init__(self, table: "ProcessTable", timeout: int):
        """
        :param table: The process table whose children are torn down.
        :param timeout: Seconds between the graceful request and the forced kill.
        """
        self.table = table
        self.timeout = timeout
        self.state = TeardownState.RUNNING

    @property
    def in_progress(self) -> bool:
        return self.state is not TeardownState.RUNNING

    def begin(self, reason: str) -> bool:
        """
        RUNNING -> SOFT_TEARDOWN. A no-op if teardown already started.

        :param reason: Short description included in the status line.
        :return: True if this call started the teardown.
        """
        if self.in_progress:
            log.debug(f"Teardown already in progress, ignoring: {reason}")
            return False

        status.info(f"{reason} Asking all processes to exit.")
        self.state = TeardownState.SOFT_TEARDOWN
        _terminate_processes(self.table)
        signal.alarm(self.timeout)
        return True

    def escalate(self, reason: str) -> None:
        """
        SOFT_TEARDOWN (or RUNNING) -> HARD_TEARDOWN. Does not return.

        :param reason: Short description included in the status line.
        """
        status.info(f"{reason} Performing hard shutdown.")
        self.state = TeardownState.HARD_TEARDOWN
        _forceful_kill(self.table)
        flush_logging()
        os._exit(EXIT_FORCED)

    def disarm(self) -> None:
        """Cancels a pending escalation alarm once every child is gone."""
        if self.state is TeardownState.SOFT_TEARDOWN:
            signal.alarm(0)
