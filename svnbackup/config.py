"""Configuration for svnbackup, read from the environment and a KEY=value file."""

import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_NAME = "svnbackup.conf"


class SvnBackupSettings(BaseSettings):
    """Runtime configuration; environment variables win over the config file."""

    model_config = SettingsConfigDict(env_file_encoding="utf-8", extra="ignore")

    archive: Path = Field(default=Path("./backup"), validation_alias="ARCHIVE")
    svnadmin_path: Optional[str] = Field(default=None, validation_alias="SVNADMIN")
    svnlook_path: Optional[str] = Field(default=None, validation_alias="SVNLOOK")
    log_file: Optional[Path] = Field(default=None, validation_alias="SVNBACKUP_LOG_FILE")

    @field_validator("archive", mode="before")
    @classmethod
    def _reject_empty_archive(cls, value):
        if value is None or str(value).strip() == "":
            return Path("./backup")
        return value

    @field_validator("svnadmin_path", "svnlook_path", mode="before")
    @classmethod
    def _blank_is_unset(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


def default_config_files() -> Sequence[Path]:
    """Candidate config files, in lookup order."""
    script_dir = Path(sys.argv[0]).resolve().parent if sys.argv and sys.argv[0] else Path.cwd()
    return (script_dir / CONFIG_NAME, Path("/etc") / CONFIG_NAME)


def find_config_file(candidates: Optional[Sequence[Path]] = None) -> Optional[Path]:
    """Return the first readable candidate, or None."""
    for candidate in candidates if candidates is not None else default_config_files():
        if candidate.is_file() and os.access(candidate, os.R_OK):
            return candidate
    return None


def load_settings(config_file: Optional[Path] = None) -> SvnBackupSettings:
    """
    Build the settings for a run.

    Args:
        config_file (Path, optional): Explicit config file. When omitted the
            first readable default location is used, if any.

    Returns:
        SvnBackupSettings: Settings with the archive path expanded

    Raises:
        FileNotFoundError: If an explicit config file does not exist
    """
    if config_file is not None:
        config_file = Path(config_file)
        if not config_file.is_file():
            raise FileNotFoundError(f"config file {config_file} not found")
    else:
        config_file = find_config_file()

    settings = SvnBackupSettings(_env_file=config_file)
    settings.archive = settings.archive.expanduser()
    return settings


__all__ = ["SvnBackupSettings", "load_settings", "find_config_file"]
