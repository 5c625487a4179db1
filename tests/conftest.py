"""Shared fixtures for pipevisor tests."""

from __future__ import annotations

import logging
import signal

import pytest

from pipevisor.local.config import ChildDefinition, SupervisorConfig
from pipevisor.local.supervisor.process_utils import ChildState
from tests.helpers import ExitCalled


@pytest.fixture
def make_config():
    def _make(*children: ChildDefinition, shutdown_timeout: int = 10, max_line_length: int = 120) -> SupervisorConfig:
        return SupervisorConfig(
            children=tuple(children),
            shutdown_timeout=shutdown_timeout,
            max_line_length=max_line_length,
        )
    return _make


@pytest.fixture
def sent_signals(monkeypatch) -> list:
    """Records ChildState.send_signal calls instead of signalling real processes."""
    sent: list = []

    def fake_send(self, sig):
        if not self.running:
            return False
        sent.append((self.name, sig))
        return True

    monkeypatch.setattr(ChildState, "send_signal", fake_send)
    return sent


@pytest.fixture
def no_alarm(monkeypatch) -> list:
    """Records signal.alarm calls without arming a real timer."""
    calls: list = []
    monkeypatch.setattr(signal, "alarm", lambda seconds: calls.append(seconds) or 0)
    return calls


@pytest.fixture
def fake_exit(monkeypatch):
    """Turns os._exit into an exception so the forced shutdown path can be observed."""
    from pipevisor.local.supervisor import shutdown

    def _exit(code):
        raise ExitCalled(code)

    monkeypatch.setattr(shutdown.os, "_exit", _exit)
    return ExitCalled


@pytest.fixture
def restore_logging():
    """Puts the root logger back the way pytest configured it."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
