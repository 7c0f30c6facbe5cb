import logging
from pathlib import Path
from typing import Optional

from .control import ControlStore
from .dump import DIFF, FULL, DumpProducer
from .errors import InternalError
from .lock import LockManager, ProcessTable
from .models import BackupOutcome
from .repository import RepositoryInspector


# Get logger instance (configuration is handled in cli.py)
logger = logging.getLogger('svnbackup')

BUILD_CONTROL_ONLY = "build-control-only"
MODES = (FULL, DIFF, BUILD_CONTROL_ONLY)


class BackupOperations:
    """Runs full, differential and control-file-only backups of one repository."""

    def __init__(self, repository: str, backup_dir: str, tools,
                 process_table: Optional[ProcessTable] = None,
                 pid: Optional[int] = None, clock=None):
        """
        Initialize BackupOperations for a repository.

        Args:
            repository (str): Path to the Subversion repository
            backup_dir (str): Directory receiving lock, control and dump files
            tools: Subversion tool wrapper (see svn.SvnTools)
            process_table (ProcessTable, optional): Liveness check used for stale locks
            pid (int, optional): Pid recorded in the lock file. Defaults to os.getpid().
            clock (callable, optional): Returns the run timestamp
        """
        self.repository = Path(repository)
        self.backup_dir = Path(backup_dir)
        self.inspector = RepositoryInspector(tools, clock=clock)
        self.locks = LockManager(self.backup_dir, process_table=process_table, pid=pid)
        self.control = ControlStore(self.backup_dir)
        self.producer = DumpProducer(tools)
        logger.debug(f"Initialized BackupOperations for {self.repository} in {self.backup_dir}")

    def run(self, mode: str) -> BackupOutcome:
        """
        Run one backup.

        The repository is inspected before the lock is taken; any failure up
        to and including lock acquisition ends the run with nothing to clean
        up. Once the lock is held it is always released, and a release
        failure is only raised when everything before it succeeded.

        Args:
            mode (str): 'full', 'diff' or 'build-control-only'

        Returns:
            BackupOutcome: The record written and the dump produced, if any

        Raises:
            SvnBackupError: The first failure of the run
        """
        if mode not in MODES:
            raise InternalError(f"internal error: unknown mode '{mode}'")

        session = self.inspector.open_session(self.repository, self.backup_dir)
        with self.locks.acquire(session.identity):
            record = None
            if mode == DIFF:
                record = self.control.read(session.identity)

            dump = None
            if mode in (FULL, DIFF):
                dump = self.producer.produce(mode, session, record)

            written = self.control.write(session, dump)

        if dump is not None:
            logger.info(f"{mode} backup of r{dump.revisions} written to {dump.path}")
        return BackupOutcome(mode=mode, session=session, record=written, dump=dump)

    def full(self) -> BackupOutcome:
        """Dump revisions 0..HEAD and record HEAD as saved."""
        return self.run(FULL)

    def diff(self) -> BackupOutcome:
        """Dump the revisions committed since the last recorded backup."""
        return self.run(DIFF)

    def build_control(self) -> BackupOutcome:
        """Record the current HEAD as saved without dumping anything."""
        return self.run(BUILD_CONTROL_ONLY)
