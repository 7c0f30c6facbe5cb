"""
Per-repository lock files.

The lock unit is the repository UUID, so two runs reaching the same
repository through different paths still serialize. A held lock is reported
immediately as a retryable failure; there is no waiting.
"""

import logging
import os
from pathlib import Path
from typing import Optional

import psutil

from .errors import (
    BackupIOError,
    InternalError,
    LockHeld,
    LockOwnershipMismatch,
    SvnBackupError,
)

logger = logging.getLogger('svnbackup')


class ProcessTable:
    """Answers whether a process id belongs to a running process."""

    def is_running(self, pid: int) -> bool:
        if pid <= 0:
            return False
        try:
            return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            # AccessDenied still means the pid exists
            return psutil.pid_exists(pid)

    def describe(self, pid: int) -> str:
        """Return 'user pid ppid cmd' for diagnostics, or an empty string."""
        try:
            process = psutil.Process(pid)
            with process.oneshot():
                command = " ".join(process.cmdline()) or process.name()
                return f"{process.username()} {pid} {process.ppid()} {command}"
        except psutil.Error:
            return ""


def read_owner(lock_file: Path) -> Optional[int]:
    """Return the pid on the first line of a lock file, or None if there is none."""
    try:
        with open(lock_file, "r") as f:
            first_line = f.readline().strip()
    except OSError:
        return None
    try:
        return int(first_line)
    except ValueError:
        return None


class LockGuard:
    """
    Scope of an acquired lock.

    Leaving the scope always attempts the release. A release failure is
    raised only when the protected block succeeded; otherwise it is kept in
    `release_error` and the block's own exception keeps propagating.
    """

    def __init__(self, manager: 'LockManager', identity: str):
        self.manager = manager
        self.identity = identity
        self.released = False
        self.release_error: Optional[SvnBackupError] = None

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        self.manager.release(self.identity)

    def __enter__(self) -> 'LockGuard':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        try:
            self.release()
        except SvnBackupError as e:
            self.release_error = e
            if exc_type is None:
                raise
            logger.debug(f"lock release failed after an earlier error: {e.message}")
        return False


class LockManager:
    """Creates and removes `<backup_dir>/<identity>.pid` lock files."""

    def __init__(self, backup_dir: Path, process_table: Optional[ProcessTable] = None,
                 pid: Optional[int] = None):
        """
        Args:
            backup_dir (Path): Directory holding lock files
            process_table (ProcessTable, optional): Process liveness check. Defaults to a psutil one.
            pid (int, optional): Pid written into lock files. Defaults to os.getpid().
        """
        self.backup_dir = Path(backup_dir)
        self.process_table = process_table or ProcessTable()
        self.pid = pid if pid is not None else os.getpid()

    def lock_file(self, identity: str) -> Path:
        return self.backup_dir / f"{identity}.pid"

    def acquire(self, identity: str) -> LockGuard:
        """
        Take the lock for a repository identity.

        Args:
            identity (str): Repository UUID

        Returns:
            LockGuard: Context manager releasing the lock on exit

        Raises:
            BackupIOError: If the backup directory cannot be created
            LockHeld: If a live process owns the lock or won a concurrent write
            InternalError: If a stale lock cannot be removed or the lock cannot be written
        """
        ensure_directory(self.backup_dir)
        lock_file = self.lock_file(identity)

        if lock_file.exists():
            other_pid = read_owner(lock_file)
            if other_pid is not None and self.process_table.is_running(other_pid):
                other_process = self.process_table.describe(other_pid)
                raise LockHeld(
                    f"backup locked by another session pid={other_pid} "
                    f"otherproc={other_process}, please retry later",
                    owner_pid=other_pid,
                    owner_command=other_process,
                )
            logger.info(f"removing stale lock {lock_file} (pid={other_pid})")
            try:
                lock_file.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise InternalError(
                    f"can't remove {lock_file} file written by another session"
                ) from e

        # Append so that a concurrent writer's pid lands on its own line;
        # whoever wrote the first line owns the lock.
        try:
            with open(lock_file, "a") as f:
                f.write(f"{self.pid}\n")
        except OSError as e:
            raise InternalError(f"can't write {lock_file}") from e

        owner = read_owner(lock_file)
        if owner != self.pid:
            raise LockHeld(
                f"can't get lock on {lock_file} owned by process pid={owner}, please retry later",
                owner_pid=owner,
            )

        logger.debug(f"lock {lock_file} acquired by pid={self.pid}")
        return LockGuard(self, identity)

    def release(self, identity: str) -> None:
        """
        Remove the lock file if, and only if, this process owns it.

        Raises:
            LockOwnershipMismatch: If the lock is missing or owned by another pid
            InternalError: If the lock file cannot be removed
        """
        lock_file = self.lock_file(identity)
        owner = read_owner(lock_file)
        if owner != self.pid:
            raise LockOwnershipMismatch(
                f"can't remove {lock_file} owned by process pid={owner}",
                owner_pid=owner,
            )
        try:
            lock_file.unlink()
        except OSError as e:
            raise InternalError(f"can't remove {lock_file}: {e}") from e
        logger.debug(f"lock {lock_file} released")


def ensure_directory(directory: Path) -> None:
    """Create a directory and its parents if needed."""
    if directory.is_dir():
        return
    logger.info(f"creating backup directory {directory}")
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise BackupIOError(f"can't create backup directory {directory}: {e}") from e
