import logging
from typing import TYPE_CHECKING

from pipevisor import settings
from pipevisor.log import get_proc_logger
from pipevisor.local.supervisor.process_utils import Phase, SpawnError

if TYPE_CHECKING:
    from .supervisor import Supervisor

log = logging.getLogger(__name__)
status = get_proc_logger(settings.SYSTEM_TAG)


def spawn_phase(supervisor: "Supervisor", phase: Phase) -> int:
    """
    Spawns the children of `phase`, beginning teardown if any of them fails to start.

    :param supervisor: The Supervisor instance.
    :param phase: The phase to spawn.
    :return: The number of children that were started.
    """
    try:
        return supervisor.table.spawn(phase)
    except SpawnError as e:
        label = "check commands" if phase is Phase.CHECK else "children"
        log.error(f"Spawn failed: {e}")
        supervisor.teardown.begin(f"Not all {label} could be spawned.")
        return e.spawned


def startup_check(supervisor: "Supervisor") -> None:
    """
    Runs the startup-check phase to completion.
    Every check must exit with status 0; anything else leaves teardown in progress.

    :param supervisor: The Supervisor instance.
    """
    if spawn_phase(supervisor, Phase.CHECK) == 0 and not supervisor.teardown.in_progress:
        log.debug("No startup checks configured.")
        return

    supervisor.loop.run()

    if not supervisor.teardown.in_progress:
        status.info("All startup checks have passed.")


def start_all_processes(supervisor: "Supervisor") -> None:
    """
    Spawns the normal-run children and supervises them until all have exited.

    :param supervisor: The Supervisor instance.
    """
    spawned = spawn_phase(supervisor, Phase.NORMAL)
    if spawned == 0 and not supervisor.teardown.in_progress:
        log.debug("No normal-run processes configured.")
        return

    if not supervisor.teardown.in_progress:
        status.info("All processes have been spawned.")

    supervisor.loop.run()
    status.info("All child processes have exited.")
