"""Two-tier extension removal: direct first, elevated on permission denial."""

from __future__ import annotations

import logging
import shutil
import threading
from pathlib import Path
from typing import Callable

from zxpman.core.privileges import (
    ElevationCancelled,
    ElevationFailed,
    InvalidPath,
    run_elevated_remove,
    validate_path,
)
from zxpman.models.results import RemoveResult, RemoveStatus

log = logging.getLogger(__name__)

Remover = Callable[[Path], None]
Elevator = Callable[[Path], RemoveResult]


def remove_elevated(
    path: Path,
    *,
    system: str | None = None,
    cancel: threading.Event | None = None,
) -> RemoveResult:
    """Remove *path* with administrator rights and report the outcome."""
    try:
        run_elevated_remove(path, system=system, cancel=cancel)
    except InvalidPath as exc:
        log.warning("Rejected path for elevated removal: %s", exc)
        return RemoveResult(path=path, status=RemoveStatus.INVALID_PATH, message=str(exc))
    except ElevationCancelled as exc:
        log.info("Elevated removal of %s cancelled: %s", path, exc)
        return RemoveResult(path=path, status=RemoveStatus.USER_CANCELLED, message=str(exc), elevated=True)
    except ElevationFailed as exc:
        log.warning("Elevated removal of %s failed: %s", path, exc)
        return RemoveResult(path=path, status=RemoveStatus.ELEVATION_FAILED, message=str(exc), elevated=True)
    return RemoveResult(path=path, status=RemoveStatus.REMOVED, elevated=True)


def remove_extension(
    path: Path,
    *,
    rmtree: Remover = shutil.rmtree,
    elevate: Elevator = remove_elevated,
) -> RemoveResult:
    """Delete the extension directory tree rooted at *path*.

    Only a ``PermissionError`` from the direct attempt leads to elevation;
    anything else is reported as a filesystem error.

    Args:
        path: Extension directory to delete.
        rmtree: Unprivileged removal primitive.
        elevate: Called once with *path* when direct removal is denied.
    """
    path = Path(path)
    try:
        validate_path(path.absolute())
    except InvalidPath as exc:
        log.warning("Refusing to remove %r: %s", str(path), exc)
        return RemoveResult(path=path, status=RemoveStatus.INVALID_PATH, message=str(exc))

    path = path.absolute()
    log.info("Removing extension: %s", path)
    try:
        rmtree(path)
    except PermissionError as exc:
        log.info("Permission denied removing %s (%s), escalating", path, exc)
        return elevate(path)
    except OSError as exc:
        log.warning("Failed to remove %s: %s", path, exc)
        return RemoveResult(path=path, status=RemoveStatus.FILESYSTEM_ERROR, message=_describe(exc))

    log.info("Extension removal completed: %s", path)
    return RemoveResult(path=path, status=RemoveStatus.REMOVED)


def _describe(exc: OSError) -> str:
    if exc.strerror and exc.filename:
        return f"{exc.filename}: {exc.strerror}"
    return str(exc)
