import subprocess
from pathlib import Path

from spillover.monitor import TmuxMonitor


class Tmux:
    """Fake tmux: tracks which sessions exist."""

    def __init__(self, sessions=()):
        self.sessions = set(sessions)
        self.calls = []

    def __call__(self, cmd, **kw):
        self.calls.append(cmd[1:])
        action, name = cmd[1], cmd[3]
        rc = 0
        if action == "has-session":
            rc = 0 if name in self.sessions else 1
        elif action == "kill-session":
            self.sessions.discard(name)
        elif action == "new-session":
            name = cmd[4]
            self.sessions.add(name)
        return subprocess.CompletedProcess(cmd, rc)


def with_tmux(name):
    return "/usr/bin/tmux" if name == "tmux" else None


def test_start_and_stop():
    tmux = Tmux()
    mon = TmuxMonitor("spillover", runner=tmux, which=with_tmux)

    mon.start(Path("/var/log/spillover.log"))
    assert "spillover" in tmux.sessions
    assert ["new-session", "-d", "-s", "spillover", "tail -f '/var/log/spillover.log'"] in tmux.calls
    assert mon.started

    mon.stop()
    assert tmux.sessions == set()
    assert not mon.started


def test_existing_session_is_replaced():
    tmux = Tmux(sessions={"spillover"})
    TmuxMonitor("spillover", runner=tmux, which=with_tmux).start(Path("/x.log"))
    actions = [c[0] for c in tmux.calls]
    assert actions == ["has-session", "kill-session", "new-session"]


def test_without_tmux_nothing_runs():
    tmux = Tmux()
    mon = TmuxMonitor("spillover", runner=tmux, which=lambda name: None)
    mon.start(Path("/x.log"))
    mon.stop()
    assert tmux.calls == []


def test_failures_are_swallowed():
    def runner(cmd, **kw):
        raise OSError("no such file")

    mon = TmuxMonitor("spillover", runner=runner, which=with_tmux)
    mon.start(Path("/x.log"))
    mon.stop()
    assert not mon.started
