"""Install and remove result dataclasses."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from zxpman.models.extension import Scope


class InstallStatus(str, Enum):
    INSTALLED = "installed"
    ARCHIVE_NOT_FOUND = "archive_not_found"
    UNSUPPORTED_FORMAT = "unsupported_format"
    CORRUPT_ARCHIVE = "corrupt_archive"
    DIRECTORY_CREATION_FAILED = "directory_creation_failed"
    EXTRACTION_FAILED = "extraction_failed"


class RemoveStatus(str, Enum):
    REMOVED = "removed"
    USER_CANCELLED = "user_cancelled"
    FILESYSTEM_ERROR = "filesystem_error"
    ELEVATION_FAILED = "elevation_failed"
    INVALID_PATH = "invalid_path"


@dataclass(slots=True)
class InstallResult:
    """Result of installing a package archive."""

    archive: Path
    scope: Scope
    status: InstallStatus
    extension_id: str = ""
    path: Path | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status is InstallStatus.INSTALLED


@dataclass(slots=True)
class RemoveResult:
    """Result of removing an extension directory.

    A cancelled authorization prompt is not ``ok`` but is not an error
    either: the user chose not to proceed.
    """

    path: Path
    status: RemoveStatus
    message: str = ""
    elevated: bool = False

    @property
    def ok(self) -> bool:
        return self.status is RemoveStatus.REMOVED

    @property
    def is_error(self) -> bool:
        return self.status not in (RemoveStatus.REMOVED, RemoveStatus.USER_CANCELLED)
