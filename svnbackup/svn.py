"""
Thin wrapper around the Subversion command line tools.

svnadmin and svnlook are treated as black boxes: every call returns an
SvnCommandResult and it is up to the caller to decide what a failure means.
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional, Tuple

from .errors import ToolNotFoundError
from .models import RevisionRange

logger = logging.getLogger('svnbackup')

_COPY_CHUNK = 1024 * 1024


@dataclass
class SvnCommandResult:
    """Holds the outcome of a single svnadmin/svnlook invocation."""

    args: Tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return self.stdout.strip()

    @property
    def diagnostic(self) -> str:
        return (self.stderr or self.stdout).strip()


def resolve_executable(name: str, explicit: Optional[str] = None) -> str:
    """
    Locate a Subversion executable.

    Args:
        name (str): Executable name looked up on PATH (svnadmin, svnlook)
        explicit (str, optional): Configured path that takes precedence

    Returns:
        str: Path to the executable

    Raises:
        ToolNotFoundError: If the executable cannot be found
    """
    if explicit:
        candidate = Path(explicit)
        if candidate.is_file():
            return str(candidate)
        found = shutil.which(explicit)
        if found is None:
            raise ToolNotFoundError(f"{name} executable not found at {explicit}")
        return found

    found = shutil.which(name)
    if found is None:
        raise ToolNotFoundError(f"{name} executable not found on PATH")
    return found


class SvnTools:
    """Runs svnadmin and svnlook against a local repository."""

    def __init__(self, svnadmin: Optional[str] = None, svnlook: Optional[str] = None):
        self.svnadmin = resolve_executable("svnadmin", svnadmin)
        self.svnlook = resolve_executable("svnlook", svnlook)

    def verify(self, repository: Path) -> SvnCommandResult:
        return self._run(self.svnadmin, "verify", "-q", str(repository))

    def uuid(self, repository: Path) -> SvnCommandResult:
        return self._run(self.svnlook, "uuid", str(repository))

    def date(self, repository: Path) -> SvnCommandResult:
        return self._run(self.svnlook, "date", str(repository))

    def youngest(self, repository: Path) -> SvnCommandResult:
        return self._run(self.svnlook, "youngest", str(repository))

    def dump(self, repository: Path, revisions: RevisionRange, incremental: bool,
             output: BinaryIO, errors: BinaryIO) -> int:
        """
        Stream `svnadmin dump` into an open binary file.

        Args:
            repository (Path): Repository to export
            revisions (RevisionRange): Inclusive range to export
            incremental (bool): Export with --incremental --deltas
            output (BinaryIO): Receives the dump stream
            errors (BinaryIO): Receives the tool's diagnostic stream

        Returns:
            int: The svnadmin exit status
        """
        args = [self.svnadmin, "dump", "-q", f"-r{revisions}"]
        if incremental:
            args += ["--incremental", "--deltas"]
        args.append(str(repository))
        logger.debug(f"Running {' '.join(args)}")

        with subprocess.Popen(args, stdout=subprocess.PIPE, stderr=errors) as process:
            shutil.copyfileobj(process.stdout, output, _COPY_CHUNK)
        return process.returncode

    def _run(self, *args: str) -> SvnCommandResult:
        logger.debug(f"Running {' '.join(args)}")
        completed = subprocess.run(list(args), capture_output=True, text=True)
        return SvnCommandResult(
            args=tuple(args),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )
