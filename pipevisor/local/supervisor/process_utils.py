import select
import signal
import psutil
import logging
import functools
import subprocess
from enum import Enum
from typing import TYPE_CHECKING, BinaryIO, Iterator, List, Optional, Tuple

from pipevisor import settings
from pipevisor.log import get_proc_logger
from pipevisor.local.supervisor.multiplexer import LineMultiplexer

if TYPE_CHECKING:
    from pipevisor.local.config import ChildDefinition, SupervisorConfig

log = logging.getLogger(__name__)
status = get_proc_logger(settings.SYSTEM_TAG)

# Upper bound on bytes drained from each pipe of a reaped child.
MAX_DRAIN_BYTES = 1024 * 1024


class Phase(Enum):
    """The two sequential supervision stages."""
    CHECK = "check"
    NORMAL = "normal"

    def includes(self, definition: "ChildDefinition") -> bool:
        return definition.is_startup_check == (self is Phase.CHECK)


class ExitOutcome(Enum):
    """How a reaped child's exit is classified."""
    SUCCESS = "success"   # startup check, status 0
    FAILURE = "failure"   # startup check, anything else
    EXITED = "exited"     # normal-run child, always unexpected


class SpawnError(RuntimeError):
    """Raised when a child of the requested phase could not be started."""

    def __init__(self, message: str, spawned: int):
        super().__init__(message)
        self.spawned = spawned


def describe_returncode(returncode: int) -> str:
    """Renders a Popen returncode as 'status N' or 'signal SIGXXX'."""
    if returncode < 0:
        try:
            return f"signal {signal.Signals(-returncode).name}"
        except ValueError:
            return f"signal {-returncode}"
    return f"status {returncode}"


def _readable_now(fd: int) -> bool:
    poller = select.poll()
    poller.register(fd, select.POLLIN)
    return any(revents & (select.POLLIN | select.POLLHUP) for _, revents in poller.poll(0))


class ChildState:
    """Live state of one configured child: pid, running flag, pipes and line buffers."""

    def __init__(self, definition: "ChildDefinition", max_line_length: int):
        self.definition = definition
        self.pid: Optional[int] = None
        self.running = False
        self.process: Optional[subprocess.Popen] = None
        self.handle: Optional[psutil.Process] = None
        self.stdin: Optional[BinaryIO] = None
        self.stdout: Optional[BinaryIO] = None
        self.stderr: Optional[BinaryIO] = None

        proc_logger = get_proc_logger(definition.name)
        self.out = LineMultiplexer(definition.name, max_line_length, functools.partial(proc_logger.log, logging.INFO))
        self.err = LineMultiplexer(definition.name, max_line_length, functools.partial(proc_logger.log, logging.ERROR))

    @property
    def name(self) -> str:
        return self.definition.name

    def streams(self) -> Iterator[Tuple[str, BinaryIO, LineMultiplexer]]:
        """Yields ('stdout'|'stderr', stream, multiplexer) for every still-valid stream."""
        if self.stdout is not None:
            yield "stdout", self.stdout, self.out
        if self.stderr is not None:
            yield "stderr", self.stderr, self.err

    def close_stream(self, kind: str) -> None:
        """Invalidates one output stream for good."""
        stream = getattr(self, kind)
        if stream is None:
            return
        try:
            stream.close()
        except OSError as e:
            log.debug(f"Closing {kind} of {self.name} failed: {e}")
        setattr(self, kind, None)

    def release_streams(self) -> None:
        """Pumps whatever output is already buffered in the pipes, flushes partial lines, closes everything."""
        for kind, stream, mux in list(self.streams()):
            fd = stream.fileno()
            max_reads = max(1, MAX_DRAIN_BYTES // mux.buffer.capacity)
            for _ in range(max_reads):
                if not _readable_now(fd) or not mux.pump(fd):
                    break
            else:
                if _readable_now(fd):
                    log.debug(f"Discarding unread {kind} of {self.name} after draining {MAX_DRAIN_BYTES} bytes.")
            mux.flush_partial()
            self.close_stream(kind)

        if self.stdin is not None:
            try:
                self.stdin.close()
            except OSError:
                pass
            self.stdin = None

    def send_signal(self, sig: int) -> bool:
        """
        Sends a signal to the running child.

        :return: True if the signal was delivered, False if the process is gone.
        """
        if not self.running or self.handle is None:
            return False
        try:
            self.handle.send_signal(sig)
            return True
        except psutil.NoSuchProcess:
            log.debug(f"Process {self.name} ({self.pid}) no longer exists, skipping signal {sig}.")
            return False
        except psutil.AccessDenied as e:
            log.warning(f"Not allowed to signal {self.name} ({self.pid}): {e}")
            return False


class ProcessTable:
    """
    The fixed, ordered set of children. Created once from configuration;
    entries are only ever marked not-running, never removed.
    """

    def __init__(self, config: "SupervisorConfig"):
        self.states: List[ChildState] = [
            ChildState(definition, config.max_line_length) for definition in config.children
        ]

    def __iter__(self) -> Iterator[ChildState]:
        return iter(self.states)

    def __len__(self) -> int:
        return len(self.states)

    def running_states(self) -> List[ChildState]:
        return [state for state in self.states if state.running]

    def any_running(self) -> bool:
        return any(state.running for state in self.states)

    def find(self, pid: int) -> Optional[ChildState]:
        for state in self.states:
            if state.running and state.pid == pid:
                return state
        return None

    #* --- Process Creation ---
    def launch(self, state: ChildState) -> None:
        """Starts one child with all three standard streams connected to pipes."""
        p = subprocess.Popen(
            list(state.definition.command),
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            bufsize=0,
            close_fds=True,
            start_new_session=True,
        )
        state.process = p
        state.pid = p.pid
        state.stdin, state.stdout, state.stderr = p.stdin, p.stdout, p.stderr
        try:
            state.handle = psutil.Process(p.pid)
        except psutil.NoSuchProcess:
            state.handle = None
        state.running = True
        status.info(f"Started {state.name} ({state.pid}).")

    def spawn(self, phase: Phase) -> int:
        """
        Spawns every child belonging to `phase`.

        :param phase: The phase whose children should be started.
        :return: The number of children spawned.
        :raises SpawnError: If any child could not be started. Children spawned
            before the failure keep running; the caller must tear them down.
        """
        spawned = 0
        for state in self.states:
            if not phase.includes(state.definition):
                continue
            try:
                self.launch(state)
            except (OSError, ValueError, subprocess.SubprocessError) as e:
                log.error(f"Failed to start process '{state.name}': {e}")
                raise SpawnError(f"Could not start '{state.name}': {e}", spawned) from e
            spawned += 1
        return spawned

    #* --- Reaping ---
    def mark_exited(self, pid: int, returncode: int) -> Optional[ExitOutcome]:
        """
        Records the exit of `pid` and classifies it.

        :param pid: The process identifier that exited.
        :param returncode: Popen-style return code (negative for a signal).
        :return: The ExitOutcome, or None if the pid is unknown or already reaped.
        """
        state = self.find(pid)
        if state is None:
            return None

        state.running = False
        state.pid = None
        state.release_streams()
        how = describe_returncode(returncode)

        if state.definition.is_startup_check:
            if returncode == 0:
                status.info(f"Process for {state.name} ({pid}) has indicated success.")
                return ExitOutcome.SUCCESS
            status.info(f"Process for {state.name} ({pid}) has indicated failure ({how}).")
            return ExitOutcome.FAILURE

        status.info(f"Process for {state.name} ({pid}) has exited ({how}).")
        return ExitOutcome.EXITED

    def reap(self) -> List[Tuple[ChildState, ExitOutcome]]:
        """Collects every child that has exited, without blocking."""
        reaped = []
        for state in self.running_states():
            pid = state.pid
            returncode = state.process.poll()
            if returncode is None:
                continue
            outcome = self.mark_exited(pid, returncode)
            if outcome is not None:
                reaped.append((state, outcome))
        return reaped
