"""
Domain exceptions for svnbackup.

Every expected failure of a backup run maps to one of the classes below,
and each class carries the process exit code reported by the command line.
The retryable classes (LockError and its subclasses) are advisory: nothing
in svnbackup retries on its own.
"""

from typing import Optional

EX_OK = 0
EX_USAGE = 64
EX_DATAERR = 65
EX_SOFTWARE = 70
EX_CANTCREAT = 73
EX_IOERR = 74
EX_TEMPFAIL = 75


class SvnBackupError(RuntimeError):
    """Base exception for all svnbackup failures."""

    exit_code = EX_SOFTWARE
    retryable = False

    def __init__(self, message: str, diagnostic: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.diagnostic = diagnostic


class UsageError(SvnBackupError):
    """Raised for a bad invocation before any state is touched."""

    exit_code = EX_USAGE


class DataFormatError(SvnBackupError):
    """Raised when a repository or a control file is malformed."""

    exit_code = EX_DATAERR


class InternalError(SvnBackupError):
    """Raised when an invariant is violated."""


class ToolNotFoundError(InternalError):
    """Raised when a Subversion executable cannot be located."""


class RepositoryQueryError(SvnBackupError):
    """Raised when a single repository query fails."""

    query = "repository"


class IdentityQueryError(RepositoryQueryError):
    query = "uuid"


class TimestampQueryError(RepositoryQueryError):
    query = "date"


class HeadRevisionQueryError(RepositoryQueryError):
    query = "youngest"


class NothingToDoError(SvnBackupError):
    """Raised when a run has no work to do; not a crash."""

    exit_code = EX_CANTCREAT


class ArtifactExists(NothingToDoError):
    """Raised when the target dump file is already on disk."""

    def __init__(self, message: str, path: str):
        super().__init__(message)
        self.path = path


class AlreadySaved(NothingToDoError):
    """Raised when no revision newer than the last saved one exists."""

    def __init__(self, message: str, revision: int):
        super().__init__(message)
        self.revision = revision


class BackupIOError(SvnBackupError):
    """Raised for filesystem, export and compression failures."""

    exit_code = EX_IOERR


class LockError(SvnBackupError):
    """Base class for retryable lock failures."""

    exit_code = EX_TEMPFAIL
    retryable = True

    def __init__(self, message: str, owner_pid: Optional[int] = None):
        super().__init__(message)
        self.owner_pid = owner_pid


class LockHeld(LockError):
    """Raised when another live process owns the lock."""

    def __init__(self, message: str, owner_pid: Optional[int] = None,
                 owner_command: Optional[str] = None):
        super().__init__(message, owner_pid)
        self.owner_command = owner_command


class LockOwnershipMismatch(LockError):
    """Raised when releasing a lock that belongs to another process."""
