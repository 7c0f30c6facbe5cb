import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Type

from .errors import (
    DataFormatError,
    HeadRevisionQueryError,
    IdentityQueryError,
    RepositoryQueryError,
    TimestampQueryError,
)
from .models import BackupSession, RepositoryState
from .svn import SvnCommandResult

logger = logging.getLogger('svnbackup')

# Same layout svnlook uses for `svnlook date`
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S %z (%a, %d %b %Y)"


def current_timestamp() -> str:
    """Return the local wall-clock time in svn's date format."""
    return datetime.now().astimezone().strftime(TIMESTAMP_FORMAT)


class RepositoryInspector:
    """Verifies a Subversion repository and reads its identity and HEAD revision."""

    def __init__(self, tools, clock: Optional[Callable[[], str]] = None):
        """
        Args:
            tools: Object exposing verify/uuid/date/youngest (see svn.SvnTools)
            clock (callable, optional): Returns the run timestamp. Defaults to current_timestamp.
        """
        self.tools = tools
        self.clock = clock or current_timestamp

    def inspect(self, repository: Path) -> RepositoryState:
        """
        Verify a repository and capture its state.

        Args:
            repository (Path): Path believed to be a Subversion repository

        Returns:
            RepositoryState: Identity, timestamps and HEAD revision

        Raises:
            DataFormatError: If the path is not a repository or fails verification
            RepositoryQueryError: If one of the uuid/date/youngest queries fails
        """
        repository = Path(repository)
        marker = repository / "format"
        if not marker.is_file() or not os.access(marker, os.R_OK):
            raise DataFormatError(f"{repository} not a SVN repository")

        verification = self._query(self.tools.verify, repository, DataFormatError)
        if not verification.ok:
            raise DataFormatError(
                f"{repository} invalid SVN repository {verification.diagnostic}",
                diagnostic=verification.diagnostic,
            )

        logger.info("reading repository statistics")
        timestamp = self.clock()
        identity = self._require(self.tools.uuid, repository, IdentityQueryError)
        repository_timestamp = self._require(self.tools.date, repository, TimestampQueryError)
        youngest = self._require(self.tools.youngest, repository, HeadRevisionQueryError)
        try:
            head_revision = int(youngest)
        except ValueError:
            raise HeadRevisionQueryError(
                f"unexpected youngest revision '{youngest}' for {repository}"
            ) from None
        if head_revision < 0:
            raise HeadRevisionQueryError(f"negative youngest revision {head_revision}")

        logger.debug(
            f"repouuid={identity}, repodate={repository_timestamp}, repohead={head_revision}"
        )
        return RepositoryState(
            identity=identity,
            current_timestamp=timestamp,
            repository_timestamp=repository_timestamp,
            head_revision=head_revision,
        )

    def open_session(self, repository: Path, backup_dir: Path) -> BackupSession:
        """Inspect the repository and bind the result to a backup directory."""
        state = self.inspect(repository)
        session = BackupSession(repository=Path(repository), backup_dir=Path(backup_dir), state=state)
        logger.debug(f"controlfile is {session.control_file}")
        return session

    def _require(self, query, repository: Path, error: Type[RepositoryQueryError]) -> str:
        result = self._query(query, repository, error)
        if not result.ok or not result.output:
            raise error(f"svnlook {error.query} failed: {result.diagnostic}",
                        diagnostic=result.diagnostic)
        return result.output

    @staticmethod
    def _query(query, repository: Path, error) -> SvnCommandResult:
        try:
            return query(repository)
        except OSError as e:
            raise error(f"cannot run svn tool on {repository}: {e}") from e
