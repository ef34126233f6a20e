import logging
import shutil
import subprocess
from pathlib import Path

log = logging.getLogger(__name__)


class TmuxMonitor:
    """Detached tmux session tailing the log so a run can be watched live. Best-effort."""

    def __init__(self, session: str, runner=subprocess.run, which=shutil.which):
        self.session = session
        self.runner = runner
        self.which = which
        self.started = False

    def available(self) -> bool:
        return bool(self.session) and self.which("tmux") is not None

    def start(self, log_file: Path) -> None:
        if not self.available():
            log.debug("tmux not available, skipping session creation")
            return
        if self._has_session():
            log.warning("tmux session '%s' already exists, killing it", self.session)
            self._tmux("kill-session", "-t", self.session)
        cmd = f"tail -f '{log_file}'"
        if self._tmux("new-session", "-d", "-s", self.session, cmd):
            self.started = True
            log.info("Created tmux session: %s", self.session)
            log.info("Monitor progress with: tmux attach-session -t %s", self.session)

    def stop(self) -> None:
        if not self.available():
            return
        if self._has_session():
            self._tmux("kill-session", "-t", self.session)
            log.info("Cleaned up tmux session: %s", self.session)
        self.started = False

    def _has_session(self) -> bool:
        return self._tmux("has-session", "-t", self.session, quiet=True)

    def _tmux(self, *args: str, quiet: bool = False) -> bool:
        try:
            proc = self.runner(
                ["tmux", *args],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        except OSError as e:
            log.warning("tmux %s failed: %s", args[0], e)
            return False
        if proc.returncode != 0 and not quiet:
            log.warning("tmux %s exited with status %d", args[0], proc.returncode)
        return proc.returncode == 0
