import asyncio
import os
import json
import logging
import tempfile
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class JobLock:
    """
    Lock file that keeps two runs of the same job from overlapping.
    Uses PID-based detection to handle stale locks left by crashed runs.
    """

    def __init__(self, job_name: str, lock_file_path: Optional[str] = None):
        """
        Initialize the JobLock.

        Args:
            job_name: Job identifier (refresh, evict, dedup, admin).
            lock_file_path: Optional custom path for the lock file.
                           If not provided, it tries /var/run/matchcache-<job>.lock,
                           falling back to the system temp directory.
        """
        self.job_name = job_name
        if lock_file_path:
            self.lock_path = Path(lock_file_path)
        else:
            filename = f"matchcache-{job_name}.lock"
            if os.access("/var/run", os.W_OK):
                self.lock_path = Path("/var/run") / filename
            else:
                self.lock_path = Path(tempfile.gettempdir()) / filename

        self.acquired = False

    @staticmethod
    def is_pid_running(pid: int) -> bool:
        """Check if a process with the given PID is still running."""
        if pid <= 0:
            return False
        try:
            # Signal 0 does not kill the process but checks if it exists
            os.kill(pid, 0)
        except PermissionError:
            # Exists but owned by another user
            return True
        except OSError:
            return False
        else:
            return True

    def acquire(self) -> bool:
        """
        Acquire the lock.

        Returns:
            True if the lock was successfully acquired, False otherwise.
        """
        if self.lock_path.exists():
            try:
                with open(self.lock_path, 'r') as f:
                    data = json.load(f)
                old_pid = data.get('pid')
                if old_pid and old_pid != os.getpid() and self.is_pid_running(old_pid):
                    logger.error(f"❌ Lock conflict: {self.job_name} already running as PID {old_pid}.")
                    return False
                logger.warning(f"⚠️ Stale lock found (PID {old_pid} not running). Overwriting...")
            except (json.JSONDecodeError, KeyError, PermissionError) as e:
                logger.warning(f"⚠️ Could not read existing lock file ({e}). Overwriting...")

        lock_data = {
            "pid": os.getpid(),
            "job": self.job_name,
            "created_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }

        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.lock_path, 'w') as f:
                json.dump(lock_data, f, indent=2)

            self.acquired = True
            logger.info(f"✅ Lock acquired at {self.lock_path} (PID: {os.getpid()})")
            return True
        except PermissionError:
            logger.error(f"❌ Permission denied: Cannot write lock file to {self.lock_path}")
            return False
        except OSError as e:
            logger.error(f"❌ Failed to create lock file: {e}")
            return False

    def release(self) -> None:
        """Release the lock by deleting the lock file."""
        if not self.acquired:
            return

        try:
            if self.lock_path.exists():
                # Verify it's still our lock before deleting
                with open(self.lock_path, 'r') as f:
                    data = json.load(f)
                if data.get('pid') == os.getpid():
                    self.lock_path.unlink()
                    logger.info(f"🔓 Lock released: {self.lock_path}")
                else:
                    logger.warning("⚠️ Not releasing lock: PID in file does not match current PID.")
            self.acquired = False
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"❌ Error releasing lock: {e}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()


class KeyedLockRegistry:
    """One asyncio.Lock per entry id, so writers to the same entry run one at a time."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                # nobody waiting: drop the lock so the registry does not grow unbounded
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
