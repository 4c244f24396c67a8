"""Single orchestrator per coordination directory."""

import fcntl
import logging
import os
import signal
import time
from pathlib import Path

logger = logging.getLogger(__name__)

LOCK_FILENAME = "orchestrator.lock"


class ProcessLock:
    """Exclusive lock on a coordination directory, plus owner discovery."""

    def __init__(self, coordination_dir: Path) -> None:
        self.lock_file = coordination_dir / LOCK_FILENAME
        self.lock_fd: int | None = None

    def acquire(self) -> bool:
        """Try to acquire exclusive lock. Returns True if successful."""
        try:
            self.lock_file.parent.mkdir(parents=True, exist_ok=True)
            self.lock_fd = os.open(str(self.lock_file), os.O_CREAT | os.O_WRONLY)
            fcntl.flock(self.lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            # Write our PID to the lock file for informational purposes
            os.ftruncate(self.lock_fd, 0)
            os.write(self.lock_fd, str(os.getpid()).encode())
            os.fsync(self.lock_fd)
            return True
        except OSError:
            if self.lock_fd is not None:
                os.close(self.lock_fd)
                self.lock_fd = None
            return False

    def release(self) -> None:
        """Release the lock."""
        if self.lock_fd is not None:
            try:
                fcntl.flock(self.lock_fd, fcntl.LOCK_UN)
                os.close(self.lock_fd)
            except OSError as e:
                logger.debug(f"Error releasing {self.lock_file}: {e}")
            finally:
                self.lock_fd = None

    def read_owner(self) -> int | None:
        """PID of the orchestrator holding the lock, or None if it is free."""
        try:
            fd = os.open(str(self.lock_file), os.O_RDONLY)
        except FileNotFoundError:
            return None

        try:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                content = os.read(fd, 32).decode(errors="ignore").strip()
                return int(content) if content.isdigit() else None
            fcntl.flock(fd, fcntl.LOCK_UN)
            return None
        finally:
            os.close(fd)

    @staticmethod
    def is_process_running(pid: int) -> bool:
        """Check if a process with given PID is running."""
        try:
            os.kill(pid, 0)
            return True
        except (OSError, ProcessLookupError):
            return False

    @staticmethod
    def stop_process(pid: int, timeout: int = 10) -> bool:
        """Ask an orchestrator to stop and wait for it to exit.

        Only SIGTERM is sent: the orchestrator must run its own shutdown so
        that it terminates its stage process.
        """
        try:
            os.kill(pid, signal.SIGTERM)

            for _ in range(timeout):
                if not ProcessLock.is_process_running(pid):
                    return True
                time.sleep(1)

            logger.warning(f"Process {pid} still running after {timeout}s")
            return not ProcessLock.is_process_running(pid)

        except (OSError, ProcessLookupError):
            return True  # Process already stopped
