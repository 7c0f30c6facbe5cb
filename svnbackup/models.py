from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class RepositoryState:
    """Repository facts captured at the start of a run. Never persisted."""

    identity: str
    current_timestamp: str
    repository_timestamp: str
    head_revision: int


@dataclass(frozen=True)
class RevisionRange:
    """Inclusive span of revisions covered by a dump."""

    start: int
    end: int

    def __str__(self) -> str:
        return f"{self.start}:{self.end}"

    @classmethod
    def parse(cls, text: str) -> 'RevisionRange':
        start, _, end = text.partition(":")
        return cls(int(start), int(end))


@dataclass(frozen=True)
class DumpArtifact:
    """A verified, compressed dump file."""

    base_path: Path
    revisions: RevisionRange

    @property
    def path(self) -> Path:
        return self.base_path.with_name(self.base_path.name + ".dump.gz")


@dataclass
class ControlRecord:
    """One entry of a control file."""

    repository_identity: str
    last_saved_revision: Optional[int]
    repository_path: Optional[str] = None
    creation_timestamp: Optional[str] = None
    repository_snapshot_timestamp: Optional[str] = None
    last_dump_artifact_path: Optional[str] = None
    dump_revision_range: Optional[RevisionRange] = None

    @property
    def has_saved_revision(self) -> bool:
        return self.last_saved_revision is not None


@dataclass
class BackupSession:
    """Context threaded through every step of a single backup run."""

    repository: Path
    backup_dir: Path
    state: RepositoryState

    @property
    def identity(self) -> str:
        return self.state.identity

    @property
    def lock_file(self) -> Path:
        return self.backup_dir / f"{self.identity}.pid"

    @property
    def control_file(self) -> Path:
        return self.backup_dir / f"{self.identity}.cf"


@dataclass
class BackupOutcome:
    """What a successful run produced."""

    mode: str
    session: BackupSession
    record: ControlRecord
    dump: Optional[DumpArtifact] = None
