"""
svnbackup - versioned, incremental Subversion repository backups.

This package dumps a repository with svnadmin, either in full or as the
revisions committed since the last recorded backup, tracks progress in a
per-repository control file and keeps concurrent runs apart with a lock
file.
"""

__version__ = "2.5.0"

# Export public API
from .operations import BackupOperations
from .control import ControlStore
from .lock import LockManager

__all__ = ["BackupOperations", "ControlStore", "LockManager"]
