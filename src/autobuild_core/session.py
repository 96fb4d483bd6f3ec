"""Cross-process session bookkeeping: single-instance lock and status file.

The lock file holds the PID of the process running the watch session. A lock
whose owner is no longer alive is stale and may be taken over. The status
file is rewritten on every state transition so that separate `status` and
`stop` invocations can observe the running session.
"""

import json
import logging
import os
import time
from pathlib import Path

import psutil

from autobuild_core.errors import AlreadyRunningError
from autobuild_core.models import SessionStatus

logger = logging.getLogger(__name__)

LOCK_FILE = "session.lock"
STATUS_FILE = "status.json"

# Seconds an empty or unparsable lock is honoured before it counts as stale
UNREADABLE_LOCK_GRACE = 10.0


def is_process_alive(pid: int) -> bool:
    """Check if a process is alive and not a zombie."""
    if pid <= 0:
        return False
    try:
        process = psutil.Process(pid)
        return process.is_running() and process.status() not in (psutil.STATUS_ZOMBIE, psutil.STATUS_DEAD)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return False


class SessionStore:
    """Lock + status files under the project's state directory."""

    # Lock files held by stores in this process
    _held: set[Path] = set()

    def __init__(self, state_dir: str | Path):
        self.state_dir = Path(state_dir)
        self.lock_path = self.state_dir / LOCK_FILE
        self._lock_key = self.lock_path.resolve()
        self.status_path = self.state_dir / STATUS_FILE
        self._owned = False

    def read_pid(self) -> int | None:
        try:
            return int(self.lock_path.read_text().strip())
        except (OSError, ValueError):
            return None

    def active_pid(self) -> int | None:
        """PID of a live session owner, or None."""
        pid = self.read_pid()
        if pid is not None and is_process_alive(pid):
            return pid
        return None

    def acquire(self, pid: int | None = None) -> None:
        """Take the single-instance lock.

        Raises:
            AlreadyRunningError: Another live process, or another store in this
                process, holds the lock
        """
        pid = pid or os.getpid()
        if self._owned:
            return
        self.state_dir.mkdir(parents=True, exist_ok=True)

        for _ in range(2):
            try:
                fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                owner = self.read_pid()
                if owner is None:
                    # Created but PID not written yet, or left unreadable
                    if not self._lock_is_old():
                        raise AlreadyRunningError(f"Session lock {self.lock_path} is being acquired")
                elif self._held_by(owner):
                    raise AlreadyRunningError(f"A watch session is already running (PID {owner})")
                logger.info(f"Removing stale session lock (PID {owner})")
                self.lock_path.unlink(missing_ok=True)
                continue
            with os.fdopen(fd, "w") as f:
                f.write(str(pid))
            self._owned = True
            SessionStore._held.add(self._lock_key)
            return

        raise AlreadyRunningError(f"Could not acquire session lock {self.lock_path}")

    def _held_by(self, owner: int) -> bool:
        """Whether the recorded owner still holds the lock."""
        if owner == os.getpid():
            return self._lock_key in SessionStore._held
        return is_process_alive(owner)

    def _lock_is_old(self) -> bool:
        try:
            age = time.time() - self.lock_path.stat().st_mtime
        except FileNotFoundError:
            return True
        return age > UNREADABLE_LOCK_GRACE

    def release(self) -> None:
        if not self._owned:
            return
        self.lock_path.unlink(missing_ok=True)
        self._owned = False
        SessionStore._held.discard(self._lock_key)

    def write_status(self, status: SessionStatus) -> None:
        """Atomically replace the status file."""
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
            tmp = self.status_path.with_suffix(".tmp")
            tmp.write_text(json.dumps(status.to_dict(), indent=2))
            os.replace(tmp, self.status_path)
        except OSError as e:
            logger.warning(f"Failed to write session status: {e}")

    def read_status(self) -> SessionStatus | None:
        try:
            data = json.loads(self.status_path.read_text())
        except (OSError, ValueError):
            return None
        try:
            return SessionStatus.from_dict(data)
        except (ValueError, TypeError) as e:
            logger.warning(f"Ignoring unreadable session status: {e}")
            return None

    def request_stop(self) -> int | None:
        """Ask the live session owner to terminate.

        Returns:
            The signalled PID, or None if no session is running
        """
        pid = self.active_pid()
        if pid is None:
            return None
        try:
            psutil.Process(pid).terminate()
        except psutil.NoSuchProcess:
            return None
        except psutil.AccessDenied:
            logger.warning(f"Access denied stopping session (PID {pid})")
            return None
        return pid
