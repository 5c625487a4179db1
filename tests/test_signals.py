"""Unit tests for the signal bridge and the pending-event flags."""

from __future__ import annotations

import select
import signal

import pytest

from pipevisor.local.supervisor.signals import HANDLED_SIGNALS, PendingEvents, SignalBridge


def readable(fd: int) -> bool:
    poller = select.poll()
    poller.register(fd, select.POLLIN)
    return bool(poller.poll(0))


@pytest.fixture
def bridge():
    events = PendingEvents()
    b = SignalBridge(events)
    b.install()
    yield b
    b.restore()


class TestPendingEvents:
    def test_consume_clears_flag(self):
        events = PendingEvents()
        events.sigusr1 = True
        assert events.consume("sigusr1") is True
        assert events.consume("sigusr1") is False

    def test_all_flags_start_cleared(self):
        events = PendingEvents()
        for name in ("termination", "sigusr1", "sigusr2", "alarm", "child_exited"):
            assert getattr(events, name) is False


class TestSignalBridge:
    @pytest.mark.parametrize(
        "signum, flag",
        [
            (signal.SIGTERM, "termination"),
            (signal.SIGINT, "termination"),
            (signal.SIGUSR1, "sigusr1"),
            (signal.SIGUSR2, "sigusr2"),
            (signal.SIGALRM, "alarm"),
            (signal.SIGCHLD, "child_exited"),
        ],
    )
    def test_signal_sets_flag_and_wakes_fd(self, bridge: SignalBridge, signum, flag):
        bridge.drain()
        signal.raise_signal(signum)

        assert getattr(bridge.events, flag) is True
        assert readable(bridge.fileno())

    def test_drain_empties_pipe(self, bridge: SignalBridge):
        signal.raise_signal(signal.SIGUSR2)
        signal.raise_signal(signal.SIGUSR2)
        bridge.drain()
        assert not readable(bridge.fileno())

    def test_forwarding_signals_are_independent(self, bridge: SignalBridge):
        signal.raise_signal(signal.SIGUSR1)
        assert bridge.events.sigusr1 is True
        assert bridge.events.sigusr2 is False

    def test_restore_reinstates_previous_handlers(self):
        before = {signum: signal.getsignal(signum) for signum in HANDLED_SIGNALS}
        b = SignalBridge(PendingEvents())
        b.install()
        assert signal.getsignal(signal.SIGUSR1) == b._handle
        b.restore()

        for signum, handler in before.items():
            assert signal.getsignal(signum) == handler
        with pytest.raises(RuntimeError):
            b.fileno()

    def test_install_is_idempotent(self, bridge: SignalBridge):
        fd = bridge.fileno()
        bridge.install()
        assert bridge.fileno() == fd
