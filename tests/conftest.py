import os
import pytest
import tempfile
import time
from pathlib import Path

from svnbackup.operations import BackupOperations
from svnbackup.svn import SvnCommandResult


REPO_UUID = "6fa1b7f0-1c2d-4e3f-9a8b-0c1d2e3f4a5b"
OTHER_UUID = "0b9c8d7e-6f5a-4b3c-2d1e-0f9a8b7c6d5e"
REPO_DATE = "2015-01-15 10:00:00 +0100 (Thu, 15 Jan 2015)"
RUN_DATE = "2026-10-19 12:00:00 +0000 (Mon, 19 Oct 2026)"


def fixed_clock():
    return RUN_DATE


# ---- Test doubles for external collaborators ----

class FakeSvnTools:
    """Test double that simulates svnadmin/svnlook on a repository."""

    def __init__(self, uuid=REPO_UUID, youngest=0, date=REPO_DATE):
        self.uuid_value = uuid
        self.youngest_value = youngest
        self.date_value = date
        self.verify_error = None
        self.failing_query = None
        self.dump_stderr = ""
        self.dump_returncode = 0
        self.invocations = []

    def commit(self, count=1):
        """Pretend `count` new revisions were committed."""
        self.youngest_value += count

    def verify(self, repository):
        self.invocations.append(("verify", str(repository)))
        if self.verify_error:
            return SvnCommandResult(("svnadmin", "verify"), 1, "", self.verify_error)
        return SvnCommandResult(("svnadmin", "verify"), 0, "", "")

    def uuid(self, repository):
        return self._look("uuid", self.uuid_value)

    def date(self, repository):
        return self._look("date", self.date_value)

    def youngest(self, repository):
        return self._look("youngest", str(self.youngest_value))

    def dump(self, repository, revisions, incremental, output, errors):
        self.invocations.append(("dump", str(revisions), incremental))
        output.write(b"SVN-fs-dump-format-version: 2\n\n")
        output.write(f"UUID: {self.uuid_value}\n\n".encode())
        for revision in range(revisions.start, revisions.end + 1):
            output.write(f"Revision-number: {revision}\n\n".encode())
        if self.dump_stderr:
            errors.write(self.dump_stderr.encode())
        return self.dump_returncode

    def dumps(self):
        return [call for call in self.invocations if call[0] == "dump"]

    def _look(self, query, value):
        self.invocations.append((query,))
        if self.failing_query == query:
            return SvnCommandResult(("svnlook", query), 1, "", f"svnlook: E160000: {query} failed")
        return SvnCommandResult(("svnlook", query), 0, f"{value}\n", "")


class FakeProcessTable:
    """Test double for the process table."""

    def __init__(self, running=None):
        self.running = dict(running or {})

    def is_running(self, pid):
        return pid in self.running

    def describe(self, pid):
        return self.running.get(pid, "")


# ---- Individual fixtures for flexible test composition ----

@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def repository(temp_dir):
    """Create a directory that passes the repository marker check."""
    return make_repository(temp_dir / "repos" / "project")


@pytest.fixture
def backup_dir(temp_dir):
    return temp_dir / "archive" / "project"


@pytest.fixture
def svn_tools():
    return FakeSvnTools()


@pytest.fixture
def processes():
    return FakeProcessTable()


# ---- Base test class for inheritance-based testing ----

class TestBase:
    """Base class for svnbackup tests providing isolation and cleanup."""

    def setUp(self):
        """
        Set up the test environment.

        This method:
        1. Creates a temporary directory
        2. Creates a fake repository directory and an archive location
        3. Sets up fake svn tools and a fake process table
        """
        self.temp_dir = tempfile.TemporaryDirectory()
        self.working_dir = Path(self.temp_dir.name)

        self.repository = make_repository(self.working_dir / "repos" / "project")
        self.archive = self.working_dir / "archive"
        self.backup_dir = self.archive / "project"

        self.tools = FakeSvnTools()
        self.processes = FakeProcessTable()

    def tearDown(self):
        """Clean up the temporary directory."""
        self._safe_cleanup()

    @pytest.fixture(autouse=True)
    def _setup_teardown_fixture(self):
        """
        Pytest fixture to automatically call setUp and tearDown.

        This fixture is automatically used by all test methods in classes
        that inherit from TestBase.
        """
        self.setUp()
        yield
        self.tearDown()

    def _safe_cleanup(self):
        time.sleep(0.01)
        try:
            self.temp_dir.cleanup()
        except (PermissionError, OSError) as e:
            print(f"Warning: Could not clean up temporary directory: {e}")

    def operations(self, pid=None):
        """Return a BackupOperations wired to the test doubles."""
        return BackupOperations(
            str(self.repository),
            str(self.backup_dir),
            tools=self.tools,
            process_table=self.processes,
            pid=pid,
            clock=fixed_clock,
        )

    @property
    def lock_file(self):
        return self.backup_dir / f"{self.tools.uuid_value}.pid"

    @property
    def control_file(self):
        return self.backup_dir / f"{self.tools.uuid_value}.cf"

    def artifact(self, mode, revisions):
        return self.backup_dir / mode / f"{self.tools.uuid_value}.{revisions}.dump.gz"


# ---- Helper functions for both approaches ----

def make_repository(path):
    """Create the minimal on-disk marker of a repository."""
    os.makedirs(path)
    with open(path / "format", "w") as f:
        f.write("5\n")
    return path
