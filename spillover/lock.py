import json
import logging
import os
import signal
import time
from pathlib import Path
from typing import Callable

from .defaults import DEFAULT_STALE_LOCK_SECONDS
from .errors import AlreadyRunning, LockError
from .models import LockState

log = logging.getLogger(__name__)


def pid_alive(pid: int) -> bool:
    """Liveness probe: signal 0 checks existence without touching the process."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by someone else
        return True
    except OSError:
        return False
    return True


class TerminateStalePolicy:
    """Stale lock held by a live process: send SIGTERM and take the lock."""

    def __init__(self, send_signal: Callable[[int, int], None] = os.kill):
        self.send_signal = send_signal

    def handle(self, state: LockState, age: float) -> None:
        log.warning(
            "Lock held by PID %d for %ds exceeds the stale timeout, terminating it",
            state.pid, int(age),
        )
        try:
            self.send_signal(state.pid, signal.SIGTERM)
        except ProcessLookupError:
            log.info("PID %d exited before it could be signalled", state.pid)
        except OSError as e:
            log.warning("Could not signal PID %d: %s", state.pid, e)


class RefuseStalePolicy:
    """Stale lock held by a live process: leave it alone and fail."""

    def handle(self, state: LockState, age: float) -> None:
        raise LockError(
            f"Lock held by live PID {state.pid} for {int(age)}s looks hung; "
            "refusing to take over (stale_lock_policy=refuse)"
        )


STALE_POLICY_CLASSES = {
    "terminate": TerminateStalePolicy,
    "refuse": RefuseStalePolicy,
}


class LockGuard:
    """
    Single-instance lock backed by a small JSON file holding the owner's pid
    and acquisition time. Use as a context manager so the file is removed on
    every exit path.
    """

    def __init__(
        self,
        path: Path,
        stale_seconds: int = DEFAULT_STALE_LOCK_SECONDS,
        policy=None,
        probe: Callable[[int], bool] = pid_alive,
        clock: Callable[[], float] = time.time,
    ):
        self.path = path
        self.stale_seconds = stale_seconds
        self.policy = policy if policy is not None else TerminateStalePolicy()
        self.probe = probe
        self.clock = clock
        self.held = False

    def read(self) -> LockState | None:
        """Return the current record, or None if there is none. Garbage reads as pid 0."""
        try:
            raw = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise LockError(f"Cannot read lock file {self.path}: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            data = raw
        if isinstance(data, dict):
            try:
                return LockState(int(data["pid"]), float(data["acquired_at"]))
            except (KeyError, TypeError, ValueError):
                return LockState(0, 0.0)
        # bare pid, as written by older versions
        try:
            pid = int(data)
        except (TypeError, ValueError):
            return LockState(0, 0.0)
        try:
            acquired_at = self.path.stat().st_mtime
        except OSError:
            acquired_at = 0.0
        return LockState(pid, acquired_at)

    def acquire(self) -> LockState:
        state = self.read()
        if state is not None:
            if state.pid and self.probe(state.pid):
                age = max(0.0, self.clock() - state.acquired_at)
                if age < self.stale_seconds:
                    raise AlreadyRunning(state.pid, age, self.path)
                self.policy.handle(state, age)
            else:
                log.warning("Removing stale lock file (PID: %s)", state.pid or "unknown")
                self._remove()

        mine = LockState(os.getpid(), self.clock())
        self._write(mine)
        self.held = True
        log.info("Acquired process lock: %s", self.path)
        return mine

    def release(self) -> None:
        if not self.held:
            return
        self.held = False
        state = None
        try:
            state = self.read()
        except LockError as e:
            log.warning("%s", e)
        if state is not None and state.pid not in (0, os.getpid()):
            log.warning("Lock file now belongs to PID %d, leaving it", state.pid)
            return
        if self._remove():
            log.info("Removed lock file")

    def _write(self, state: LockState) -> None:
        tmp = self.path.with_name(f"{self.path.name}.{os.getpid()}.tmp")
        payload = json.dumps({"pid": state.pid, "acquired_at": state.acquired_at})
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(payload + "\n", encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            try:
                tmp.unlink()
            except OSError:
                pass
            raise LockError(f"Cannot create lock file {self.path}: {e}") from e

    def _remove(self) -> bool:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            log.warning("Could not remove lock file %s: %s", self.path, e)
            return False
        return True

    def __enter__(self) -> "LockGuard":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
