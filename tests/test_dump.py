import gzip
import os
import pytest
from pathlib import Path

from svnbackup.dump import DIFF, FULL, DumpProducer, plan_dump, verify_gzip
from svnbackup.errors import AlreadySaved, ArtifactExists, BackupIOError, InternalError
from svnbackup.models import BackupSession, ControlRecord, RepositoryState, RevisionRange
from tests.conftest import OTHER_UUID, REPO_DATE, REPO_UUID, RUN_DATE, FakeSvnTools


def make_session(repository, backup_dir, head):
    state = RepositoryState(REPO_UUID, RUN_DATE, REPO_DATE, head)
    return BackupSession(repository=Path(repository), backup_dir=Path(backup_dir), state=state)


def saved_at(revision, identity=REPO_UUID):
    return ControlRecord(repository_identity=identity, last_saved_revision=revision)


class CorruptingSvnTools(FakeSvnTools):
    """Writes bytes that are not a deflate stream ahead of the dump data."""

    def dump(self, repository, revisions, incremental, output, errors):
        output.fileobj.write(b"\xff" * 16)
        return super().dump(repository, revisions, incremental, output, errors)


class TestPlanDump:
    """Revision ranges and target paths."""

    def test_full_range_and_path(self, repository, backup_dir):
        artifact = plan_dump(FULL, make_session(repository, backup_dir, 12))

        assert artifact.revisions == RevisionRange(0, 12)
        assert artifact.path == backup_dir / "full" / f"{REPO_UUID}.12.dump.gz"

    def test_diff_starts_after_last_saved(self, repository, backup_dir):
        artifact = plan_dump(DIFF, make_session(repository, backup_dir, 12), saved_at(7))

        assert artifact.revisions == RevisionRange(8, 12)
        assert artifact.path == backup_dir / "diff" / f"{REPO_UUID}.8-12.dump.gz"

    def test_diff_with_nothing_new(self, repository, backup_dir):
        with pytest.raises(AlreadySaved) as excinfo:
            plan_dump(DIFF, make_session(repository, backup_dir, 7), saved_at(7))
        assert excinfo.value.exit_code == 73

    def test_diff_identity_mismatch(self, repository, backup_dir):
        with pytest.raises(InternalError):
            plan_dump(DIFF, make_session(repository, backup_dir, 9), saved_at(3, OTHER_UUID))

    def test_diff_requires_saved_revision(self, repository, backup_dir):
        with pytest.raises(InternalError):
            plan_dump(DIFF, make_session(repository, backup_dir, 9), saved_at(None))
        with pytest.raises(InternalError):
            plan_dump(DIFF, make_session(repository, backup_dir, 9), None)

    def test_unknown_mode(self, repository, backup_dir):
        with pytest.raises(InternalError):
            plan_dump("partial", make_session(repository, backup_dir, 9))

    @pytest.mark.parametrize("suffix", [".dump", ".dump.gz"])
    def test_existing_artifact(self, repository, backup_dir, suffix):
        os.makedirs(backup_dir / "full")
        existing = backup_dir / "full" / f"{REPO_UUID}.4{suffix}"
        existing.write_bytes(b"previous dump")

        with pytest.raises(ArtifactExists):
            plan_dump(FULL, make_session(repository, backup_dir, 4))
        assert existing.read_bytes() == b"previous dump"


class TestDumpProducer:
    """Streaming, sentinel handling and verification."""

    def test_full_dump_is_compressed_and_verified(self, repository, backup_dir, svn_tools):
        artifact = DumpProducer(svn_tools).produce(FULL, make_session(repository, backup_dir, 2))

        with gzip.open(artifact.path, "rb") as f:
            content = f.read()
        assert content.startswith(b"SVN-fs-dump-format-version: 2")
        assert b"Revision-number: 2" in content
        assert svn_tools.dumps() == [("dump", "0:2", False)]
        assert not (backup_dir / "full" / f"{REPO_UUID}.2.err").exists()

    def test_diff_dump_is_incremental(self, repository, backup_dir, svn_tools):
        session = make_session(repository, backup_dir, 5)
        DumpProducer(svn_tools).produce(DIFF, session, saved_at(0))
        assert svn_tools.dumps() == [("dump", "1:5", True)]

    def test_diagnostic_output_fails_the_dump(self, repository, backup_dir, svn_tools):
        svn_tools.dump_stderr = "svnadmin: E200002: Serialized hash missing terminator"

        with pytest.raises(BackupIOError, match="E200002"):
            DumpProducer(svn_tools).produce(FULL, make_session(repository, backup_dir, 1))

        assert list((backup_dir / "full").iterdir()) == []

    def test_non_zero_exit_fails_the_dump(self, repository, backup_dir, svn_tools):
        svn_tools.dump_returncode = 1

        with pytest.raises(BackupIOError, match="status 1"):
            DumpProducer(svn_tools).produce(FULL, make_session(repository, backup_dir, 1))

    def test_damaged_output_fails_verification(self, repository, backup_dir):
        session = make_session(repository, backup_dir, 3)
        target = backup_dir / "full" / f"{REPO_UUID}.3.dump.gz"

        with pytest.raises(BackupIOError) as excinfo:
            DumpProducer(CorruptingSvnTools()).produce(FULL, session)

        assert str(target) in excinfo.value.message
        assert target.exists()
        assert not (backup_dir / "full" / f"{REPO_UUID}.3.err").exists()

    def test_unreadable_error_output_discards_the_dump(self, repository, backup_dir, svn_tools,
                                                       monkeypatch):
        def refuse(self, *args, **kwargs):
            raise PermissionError(13, "Permission denied", str(self))

        monkeypatch.setattr("pathlib.Path.read_text", refuse)
        with pytest.raises(BackupIOError, match="can't check"):
            DumpProducer(svn_tools).produce(FULL, make_session(repository, backup_dir, 1))

        assert list((backup_dir / "full").iterdir()) == []

    def test_verify_gzip_detects_damage(self, temp_dir):
        damaged = temp_dir / "damaged.dump.gz"
        with gzip.open(damaged, "wb") as f:
            f.write(b"Revision-number: 0\n" * 1000)
        damaged.write_bytes(damaged.read_bytes()[:-20])

        with pytest.raises(BackupIOError):
            verify_gzip(damaged)

    def test_verify_gzip_rejects_plain_file(self, temp_dir):
        plain = temp_dir / "plain.dump.gz"
        plain.write_bytes(b"SVN-fs-dump-format-version: 2\n")

        with pytest.raises(BackupIOError):
            verify_gzip(plain)
