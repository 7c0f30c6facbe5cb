import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Iterator, List, Optional

from .errors import BackupIOError, DataFormatError
from .lock import ensure_directory
from .models import BackupSession, ControlRecord, DumpArtifact, RevisionRange

logger = logging.getLogger('svnbackup')

# The newest record is at the top; a header further down means corruption.
MAX_HEADER_LINES = 15

HEADER_PATTERN = re.compile(r"^\[(?P<identity>[0-9a-fA-F-]+):(?P<revision>[0-9]+)\]$")
FIELD_PATTERN = re.compile(r"^(?P<key>[a-z]+)=(?P<value>.*)$")


def parse_header(line: str) -> Optional[ControlRecord]:
    """Parse a `[identity:revision]` line into a bare record, or return None."""
    match = HEADER_PATTERN.match(line.strip())
    if not match:
        return None
    return ControlRecord(
        repository_identity=match.group("identity"),
        last_saved_revision=int(match.group("revision")),
    )


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == "'":
        return value[1:-1]
    return value


def _apply_field(record: ControlRecord, line: str) -> None:
    match = FIELD_PATTERN.match(line.strip())
    if not match:
        return
    key, value = match.group("key"), _unquote(match.group("value"))
    if key == "repodir":
        record.repository_path = value
    elif key == "sysdate":
        record.creation_timestamp = value
    elif key == "repodate":
        record.repository_snapshot_timestamp = value
    elif key == "svndumpfile":
        record.last_dump_artifact_path = value
    elif key == "revision":
        try:
            record.dump_revision_range = RevisionRange.parse(value)
        except ValueError:
            logger.warning(f"ignoring malformed revision range '{value}'")


def parse_records(lines: List[str]) -> Iterator[ControlRecord]:
    """Yield every record found in control file lines, newest first."""
    record = None
    for line in lines:
        header = parse_header(line)
        if header is not None:
            if record is not None:
                yield record
            record = header
        elif record is not None:
            _apply_field(record, line)
    if record is not None:
        yield record


def format_record(session: BackupSession, dump: Optional[DumpArtifact] = None) -> str:
    """Render the control file block for the current session."""
    state = session.state
    lines = [
        f"[{state.identity}:{state.head_revision}]",
        f"repodir='{session.repository}'",
        f"sysdate='{state.current_timestamp}'",
        f"repodate='{state.repository_timestamp}'",
    ]
    if dump is not None:
        lines.append(f"svndumpfile='{dump.base_path}'")
        lines.append(f"revision={dump.revisions}")
    return "\n".join(lines) + "\n\n"


class ControlStore:
    """Reads and prepends records in `<backup_dir>/<identity>.cf`."""

    def __init__(self, backup_dir: Path):
        self.backup_dir = Path(backup_dir)

    def control_file(self, identity: str) -> Path:
        return self.backup_dir / f"{identity}.cf"

    def read(self, identity: str) -> ControlRecord:
        """
        Read the most recent record of a control file.

        Only the first MAX_HEADER_LINES lines are searched for a header.

        Args:
            identity (str): Repository UUID naming the control file

        Returns:
            ControlRecord: The newest record, with its metadata lines

        Raises:
            DataFormatError: If the file is missing, unreadable or malformed
        """
        control_file = self.control_file(identity)
        if not control_file.is_file() or not os.access(control_file, os.R_OK):
            raise DataFormatError(f"{control_file} not found")

        logger.info("reading control file")
        record = None
        try:
            with open(control_file, "r", encoding="utf-8") as f:
                for line_number, line in enumerate(f, 1):
                    if record is None:
                        record = parse_header(line)
                        if record is None and line_number >= MAX_HEADER_LINES:
                            raise DataFormatError(f"{control_file} bad format")
                        continue
                    if not line.strip() or parse_header(line) is not None:
                        break
                    _apply_field(record, line)
        except (OSError, UnicodeDecodeError) as e:
            raise DataFormatError(f"{control_file} unreadable: {e}") from e

        if record is None:
            raise DataFormatError(f"{control_file} read past EOF")

        logger.debug(
            f"cf_repouuid={record.repository_identity}, cf_lastsave={record.last_saved_revision}"
        )
        return record

    def history(self, identity: str) -> List[ControlRecord]:
        """Return every record of a control file, newest first. Missing file means no history."""
        control_file = self.control_file(identity)
        try:
            with open(control_file, "r", encoding="utf-8") as f:
                return list(parse_records(f.readlines()))
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as e:
            raise DataFormatError(f"{control_file} unreadable: {e}") from e

    def write(self, session: BackupSession, dump: Optional[DumpArtifact] = None) -> ControlRecord:
        """
        Prepend a record for the session to the control file.

        The new content is written to a temporary file in the same directory
        and renamed over the control file, so an interrupted write leaves the
        previous content untouched.

        Args:
            session (BackupSession): Current run
            dump (DumpArtifact, optional): Dump produced during this run

        Returns:
            ControlRecord: The record that was written

        Raises:
            BackupIOError: If the control file cannot be written
        """
        ensure_directory(self.backup_dir)
        control_file = self.control_file(session.identity)
        section = format_record(session, dump)

        logger.info("writing control file")
        try:
            with open(control_file, "r", encoding="utf-8") as f:
                existing = f.read()
        except FileNotFoundError:
            existing = ""
        except (OSError, UnicodeDecodeError) as e:
            raise BackupIOError(f"can't read {control_file}: {e}") from e

        try:
            fd, tmp_path = tempfile.mkstemp(
                prefix=f"{control_file.name}.", suffix=".tmp", dir=str(self.backup_dir)
            )
        except OSError as e:
            raise BackupIOError(f"can't create temporary file for {control_file}: {e}") from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(section)
                f.write(existing)
                f.flush()
                os.fsync(f.fileno())
            if control_file.exists():
                os.chmod(tmp_path, control_file.stat().st_mode & 0o7777)
            else:
                os.chmod(tmp_path, 0o644)
            os.replace(tmp_path, control_file)
        except OSError as e:
            try:
                os.unlink(tmp_path)
            except OSError:
                logger.warning(f"can't remove temporary file {tmp_path}")
            raise BackupIOError(f"can't write {control_file}: {e}") from e

        logger.debug(f"section={section!r}")
        record = parse_header(section.splitlines()[0])
        for line in section.splitlines()[1:]:
            _apply_field(record, line)
        return record
