"""Helpers shared by the pipevisor tests."""

from __future__ import annotations

import sys

from pipevisor.local.config import ChildDefinition
from pipevisor.local.supervisor.process_utils import ChildState


def python_child(name: str, code: str, **flags) -> ChildDefinition:
    """A child that runs a short Python snippet with the test interpreter."""
    return ChildDefinition(command=(sys.executable, "-c", code), name=name, **flags)


def mark_running(state: ChildState, pid: int) -> ChildState:
    """Pretends `state` was spawned as `pid` without starting anything."""
    state.running = True
    state.pid = pid
    return state


class ExitCalled(Exception):
    """Raised by the patched os._exit in place of terminating the test run."""

    def __init__(self, code: int):
        super().__init__(code)
        self.code = code
