"""
Dump production.

A dump is streamed from `svnadmin dump` through gzip into
`<backup_dir>/<mode>/<identity>.<revisions>.dump.gz`. The export tool's
diagnostic stream goes to a `.err` sentinel next to it: a non-empty sentinel
fails the dump. The compressed file is read back before the dump counts as
durable.
"""

import gzip
import logging
import zlib
from pathlib import Path
from typing import Optional

from .errors import AlreadySaved, ArtifactExists, BackupIOError, InternalError
from .lock import ensure_directory
from .models import BackupSession, ControlRecord, DumpArtifact, RevisionRange

logger = logging.getLogger('svnbackup')

FULL = "full"
DIFF = "diff"

_READ_CHUNK = 1024 * 1024


def _with_suffix(base_path: Path, suffix: str) -> Path:
    # identities and ranges contain dots, so Path.with_suffix would cut them
    return base_path.with_name(base_path.name + suffix)


def plan_dump(mode: str, session: BackupSession,
              record: Optional[ControlRecord] = None) -> DumpArtifact:
    """
    Compute the revision range and target path of the next dump.

    Args:
        mode (str): 'full' or 'diff'
        session (BackupSession): Current run
        record (ControlRecord, optional): Newest control record, required for 'diff'

    Returns:
        DumpArtifact: Target (not yet produced) of the dump

    Raises:
        InternalError: On an unknown mode, a missing record or an identity mismatch
        ArtifactExists: If a .dump or .dump.gz file already exists for the target
        AlreadySaved: If no revision newer than the last saved one exists
    """
    head = session.state.head_revision
    target_dir = session.backup_dir / mode

    if mode == FULL:
        revisions = RevisionRange(0, head)
        base_path = target_dir / f"{session.identity}.{head}"
    elif mode == DIFF:
        if record is None or not record.has_saved_revision:
            raise InternalError("internal error: no saved revision to continue from")
        if record.repository_identity != session.identity:
            raise InternalError(
                f"internal error: control file belongs to repository "
                f"{record.repository_identity}, not {session.identity}"
            )
        revisions = RevisionRange(record.last_saved_revision + 1, head)
        base_path = target_dir / f"{session.identity}.{revisions.start}-{head}"
    else:
        raise InternalError(f"internal error: unknown dump mode '{mode}'")

    for suffix in (".dump", ".dump.gz"):
        if _with_suffix(base_path, suffix).exists():
            raise ArtifactExists(f"file {base_path} already exist", path=str(base_path))
    if revisions.start > head:
        raise AlreadySaved(f"revision {head} already saved", revision=head)

    return DumpArtifact(base_path=base_path, revisions=revisions)


def verify_gzip(path: Path) -> None:
    """Read a gzip file to the end. Raises BackupIOError if it is damaged."""
    try:
        with gzip.open(path, "rb") as f:
            while f.read(_READ_CHUNK):
                pass
    except (OSError, EOFError, zlib.error) as e:
        raise BackupIOError(f"{path}: {e}") from e


class DumpProducer:
    """Produces verified, compressed repository dumps."""

    def __init__(self, tools, compresslevel: int = 9):
        self.tools = tools
        self.compresslevel = compresslevel

    def produce(self, mode: str, session: BackupSession,
                record: Optional[ControlRecord] = None) -> DumpArtifact:
        """
        Produce the next dump for a session.

        Returns:
            DumpArtifact: The verified dump

        Raises:
            InternalError, ArtifactExists, AlreadySaved: See plan_dump
            BackupIOError: If export, compression or verification fails
        """
        artifact = plan_dump(mode, session, record)
        ensure_directory(artifact.base_path.parent)

        target = artifact.path
        sentinel = _with_suffix(artifact.base_path, ".err")
        logger.info(f"writing repository dump r{artifact.revisions}")

        try:
            with open(sentinel, "wb") as errors, \
                    gzip.open(target, "wb", compresslevel=self.compresslevel) as output:
                returncode = self.tools.dump(
                    session.repository,
                    artifact.revisions,
                    incremental=(mode == DIFF),
                    output=output,
                    errors=errors,
                )
        except OSError as e:
            self._discard(target, sentinel)
            raise BackupIOError(f"error compressing {target}: {e}") from e

        try:
            diagnostic = sentinel.read_text(encoding="utf-8", errors="replace").strip()
            sentinel.unlink()
        except OSError as e:
            self._discard(target, sentinel)
            raise BackupIOError(f"can't check {sentinel}: {e}") from e

        if diagnostic or returncode != 0:
            self._discard(target)
            message = diagnostic or f"svnadmin dump exited with status {returncode}"
            raise BackupIOError(message, diagnostic=diagnostic or None)

        verify_gzip(target)
        logger.debug(f"{target} created")
        return artifact

    @staticmethod
    def _discard(*paths: Path) -> None:
        for path in paths:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"can't remove {path}: {e}")
