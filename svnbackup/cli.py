import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, NoReturn, Optional

from pydantic import ValidationError

from .config import SvnBackupSettings, load_settings
from .dump import DIFF, FULL
from .errors import (
    EX_IOERR,
    EX_OK,
    EX_SOFTWARE,
    EX_USAGE,
    LockError,
    NothingToDoError,
    SvnBackupError,
    UsageError,
)
from .operations import BUILD_CONTROL_ONLY, BackupOperations
from .svn import SvnTools

logger = logging.getLogger('svnbackup')

EXIT_CODES = """\
exit codes:
  0       success
  1-63    internal command error
  64      command line usage error
  65      data format error
  70      internal software error
  73      can't create (user) output file
  74      input/output error
  75      temp failure; please retry
"""

COMPLETED_MESSAGES = {
    FULL: "full backup completed",
    DIFF: "diff backup completed",
    BUILD_CONTROL_ONLY: "control file built",
}


class HelpFormatter(argparse.ArgumentDefaultsHelpFormatter, argparse.RawDescriptionHelpFormatter):
    pass


class ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser reporting usage errors with the sysexits usage code."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        print(f"{self.prog}: error: {message}", file=sys.stderr)
        sys.exit(EX_USAGE)


def configure_logging(verbosity: int, log_file: Optional[Path] = None) -> None:
    """
    Route the svnbackup logger to stderr and, optionally, to a log file.

    Args:
        verbosity (int): 0 shows warnings and errors, 1 adds info, 2+ adds debug
        log_file (Path, optional): File receiving every record
    """
    logger.handlers.clear()
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    console = logging.StreamHandler(sys.stderr)
    if verbosity >= 2:
        console.setLevel(logging.DEBUG)
    elif verbosity == 1:
        console.setLevel(logging.INFO)
    else:
        console.setLevel(logging.WARNING)
    console.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    logger.addHandler(console)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, mode='a')
        file_handler.setFormatter(
            logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        )
        logger.addHandler(file_handler)


def print_error_and_exit(error_message: str, exit_code: int = EX_SOFTWARE,
                         level: int = logging.ERROR) -> NoReturn:
    """
    Report an error once and exit the program with the specified exit code.

    Args:
        error_message (str): The error message to display
        exit_code (int, optional): The exit code to use. Defaults to 70.
        level (int, optional): Log level of the message. Defaults to ERROR.
    """
    logger.log(level, error_message)
    sys.exit(exit_code)


def backup_directory(archive: Path, repository: Path) -> Path:
    """Return `<archive>/<repository basename>`."""
    return Path(archive) / Path(os.path.abspath(repository)).name


def backup_command(args: argparse.Namespace, settings: SvnBackupSettings) -> None:
    """
    Execute a full, diff or build-control-only backup.

    Args:
        args (argparse.Namespace): Command line arguments containing:
            - command: Backup mode
            - repository: Path to the repository
            - backup_dir: Optional archive override
        settings (SvnBackupSettings): Loaded configuration
    """
    repository = Path(os.path.normpath(args.repository))
    archive = Path(args.backup_dir).expanduser() if args.backup_dir else settings.archive
    backup_dir = backup_directory(archive, repository)
    logger.debug(f"backup directory is {backup_dir}")

    try:
        tools = SvnTools(svnadmin=settings.svnadmin_path, svnlook=settings.svnlook_path)
        ops = BackupOperations(repository, backup_dir, tools=tools)
        ops.run(args.command)
    except (NothingToDoError, LockError) as e:
        print_error_and_exit(e.message, e.exit_code, level=logging.WARNING)
    except SvnBackupError as e:
        print_error_and_exit(e.message, e.exit_code)
    except OSError as e:
        print_error_and_exit(f"I/O error: {str(e)}", EX_IOERR)

    print(COMPLETED_MESSAGES[args.command])


def read_settings(config: Optional[str]) -> SvnBackupSettings:
    """Load settings, reporting a bad or missing config file as a usage error."""
    try:
        return load_settings(Path(config) if config else None)
    except (FileNotFoundError, ValidationError) as e:
        raise UsageError(f"invalid configuration: {str(e)}") from e


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="svnbackup",
        description="Subversion repository backup with full and differential dumps",
        epilog=EXIT_CODES,
        formatter_class=HelpFormatter,
    )
    parser.add_argument(
        "-b", "--backup-dir",
        default=None,
        help="Override the configured archive directory"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Verbose output, repeat for debug output"
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Configuration file (default: svnbackup.conf next to the script, then /etc)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    full_parser = subparsers.add_parser(
        FULL,
        help="Create a full archive backup",
        formatter_class=HelpFormatter,
    )
    full_parser.add_argument("repository", help="Path to the repository")

    diff_parser = subparsers.add_parser(
        DIFF,
        help="Create a differential backup since the last recorded one",
        formatter_class=HelpFormatter,
    )
    diff_parser.add_argument("repository", help="Path to the repository")

    control_parser = subparsers.add_parser(
        BUILD_CONTROL_ONLY,
        help="Build the control file only, marking HEAD as saved *DANGER!*",
        formatter_class=HelpFormatter,
    )
    control_parser.add_argument("repository", help="Path to the repository")

    subparsers.add_parser(
        "help",
        help="Display this message"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the svnbackup command line interface.
    Parses arguments and dispatches to the backup modes.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "help":
        parser.print_help()
        return EX_OK
    if args.command is None:
        parser.print_help(sys.stderr)
        return EX_USAGE

    try:
        settings = read_settings(args.config)
    except UsageError as e:
        configure_logging(args.verbose)
        print_error_and_exit(e.message, e.exit_code)

    configure_logging(args.verbose, settings.log_file)
    backup_command(args, settings)
    return EX_OK


if __name__ == "__main__":
    sys.exit(main())
