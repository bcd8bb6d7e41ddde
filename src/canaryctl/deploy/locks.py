"""Per-deployment mutual exclusion."""

import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generator

from filelock import FileLock, Timeout

from canaryctl.core.exceptions import LockTimeoutError


class DeploymentLocks:
    """Registry handing out one re-entrant lock per deployment id.

    Every state-mutating operation on a deployment runs inside
    ``hold(deployment_id)``. Locks are re-entrant so a progress cycle can
    initiate a rollback without deadlocking on itself.

    When ``lock_path`` maps a deployment to a lock file, the outermost
    ``hold`` also takes an OS file lock on it, so engines in other
    processes sharing the same state directory are serialized too.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        lock_path: Callable[[str], Path | None] | None = None,
    ):
        """Initialize the registry.

        Args:
            timeout: Default seconds to wait for a lock
            lock_path: Returns the lock file of a deployment, or None when
                the store needs no cross-process lock
        """
        self._timeout = timeout
        self._lock_path = lock_path
        self._locks: dict[str, threading.RLock] = {}
        self._depth: dict[str, int] = {}
        self._registry_lock = threading.Lock()

    @property
    def timeout(self) -> float:
        return self._timeout

    def _lock_for(self, deployment_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(deployment_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[deployment_id] = lock
            return lock

    def _file_lock_for(self, deployment_id: str) -> FileLock | None:
        if self._lock_path is None:
            return None
        path = self._lock_path(deployment_id)
        if path is None:
            return None
        return FileLock(str(path))

    @contextmanager
    def hold(self, deployment_id: str, timeout: float | None = None) -> Generator[None, None, None]:
        """Hold the deployment's lock for the duration of the block.

        Raises:
            LockTimeoutError: If the lock is not acquired in time
        """
        wait = self._timeout if timeout is None else timeout
        lock = self._lock_for(deployment_id)

        if not lock.acquire(timeout=wait):
            raise LockTimeoutError(
                f"Timed out waiting for lock on deployment {deployment_id}",
                timeout_seconds=wait,
            )
        try:
            # Only the owning thread touches its deployment's depth
            depth = self._depth.get(deployment_id, 0)
            file_lock = self._file_lock_for(deployment_id) if depth == 0 else None
            if file_lock is not None:
                try:
                    file_lock.acquire(timeout=wait)
                except Timeout:
                    raise LockTimeoutError(
                        f"Timed out waiting for lock on deployment {deployment_id}",
                        timeout_seconds=wait,
                    )

            self._depth[deployment_id] = depth + 1
            try:
                yield
            finally:
                self._depth[deployment_id] = depth
                if file_lock is not None:
                    file_lock.release()
        finally:
            lock.release()

    def forget(self, deployment_id: str) -> None:
        """Drop the lock of a deleted deployment."""
        with self._registry_lock:
            self._locks.pop(deployment_id, None)
            self._depth.pop(deployment_id, None)
