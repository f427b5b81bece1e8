"""ZXP package installation with staged extraction."""

from __future__ import annotations

import logging
import os
import shutil
import uuid
import zipfile
import zlib
from pathlib import Path, PurePosixPath

from zxpman.core.manifest import MANIFEST_RELPATH, parse_manifest
from zxpman.errors import ManifestError
from zxpman.models.extension import Scope
from zxpman.models.results import InstallResult, InstallStatus

log = logging.getLogger(__name__)

ARCHIVE_SUFFIXES = (".zxp", ".zip")

_STAGING_PREFIX = ".zxpman-staging-"
_BACKUP_PREFIX = ".zxpman-old-"


class _ArchiveError(Exception):
    """Archive is unreadable or does not describe an installable extension."""


def is_package_archive(path: Path) -> bool:
    """Check the file suffix (case-insensitive)."""
    return path.suffix.lower() in ARCHIVE_SUFFIXES


def install_archive(archive: Path, root: Path, scope: Scope) -> InstallResult:
    """Install *archive* into *root* as ``<root>/<bundle id>``.

    The archive is validated before anything is written. Extraction goes to a
    hidden staging directory that is renamed into place once complete, so a
    concurrent scan never sees a half-extracted extension. An existing copy
    of the same extension is replaced only after staging succeeded.
    """
    archive = Path(archive)

    def result(status: InstallStatus, message: str = "", **kwargs) -> InstallResult:
        return InstallResult(archive=archive, scope=scope, status=status, message=message, **kwargs)

    if not archive.is_file():
        return result(InstallStatus.ARCHIVE_NOT_FOUND, f"Archive not found: {archive}")
    if not is_package_archive(archive):
        return result(InstallStatus.UNSUPPORTED_FORMAT, "File must have a .zxp or .zip extension")

    log.info("Installing package: %s", archive)
    try:
        with zipfile.ZipFile(archive) as zf:
            extension_id = _peek_extension_id(zf)
            members = _checked_members(zf)
    except (_ArchiveError, zipfile.BadZipFile, zipfile.LargeZipFile, OSError) as exc:
        log.warning("Rejected archive %s: %s", archive, exc)
        return result(InstallStatus.CORRUPT_ARCHIVE, f"Invalid or corrupt package: {exc}")

    created_root = not root.exists()
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        log.warning("Cannot create extension root %s: %s", root, exc)
        return result(
            InstallStatus.DIRECTORY_CREATION_FAILED,
            f"Cannot create {root}: {exc.strerror or exc}",
            extension_id=extension_id,
        )

    target = root / extension_id
    log.info("Installing to directory: %s", target)
    staging: Path | None = None
    try:
        staging = _make_unique_dir(root, _STAGING_PREFIX)
        _extract(archive, members, staging)
        _commit(staging, target)
    except (OSError, RuntimeError, ValueError, zipfile.BadZipFile, zlib.error, EOFError) as exc:
        log.warning("Extraction of %s failed: %s", archive, exc)
        if staging is not None:
            _discard(staging)
        if created_root:
            _discard_empty_root(root)
        return result(
            InstallStatus.EXTRACTION_FAILED,
            f"Failed to extract package: {exc}",
            extension_id=extension_id,
        )

    log.info("Package installation completed for: %s", extension_id)
    return result(InstallStatus.INSTALLED, extension_id=extension_id, path=target)


def _peek_extension_id(zf: zipfile.ZipFile) -> str:
    """Read the bundle id from the archive's manifest without extracting."""
    try:
        data = zf.read(MANIFEST_RELPATH)
    except KeyError:
        raise _ArchiveError(f"{MANIFEST_RELPATH} not found in archive")
    except (RuntimeError, ValueError, zipfile.BadZipFile, EOFError) as exc:
        raise _ArchiveError(f"cannot read {MANIFEST_RELPATH}: {exc}")

    try:
        bundle_id = parse_manifest(data, source=MANIFEST_RELPATH).bundle_id
    except ManifestError as exc:
        raise _ArchiveError(str(exc))

    if bundle_id in (".", "..") or bundle_id.startswith(".") or any(sep in bundle_id for sep in ("/", "\\", "\x00", ":")):
        raise _ArchiveError(f"extension id is not usable as a directory name: {bundle_id!r}")
    return bundle_id


def _checked_members(zf: zipfile.ZipFile) -> list[zipfile.ZipInfo]:
    """Return archive members, rejecting any that would escape the target."""
    members = zf.infolist()
    for info in members:
        name = info.filename.replace("\\", "/")
        pure = PurePosixPath(name)
        if pure.is_absolute() or ".." in pure.parts or (pure.parts and ":" in pure.parts[0]):
            raise _ArchiveError(f"unsafe member path: {info.filename}")
    return members


def _extract(archive: Path, members: list[zipfile.ZipInfo], staging: Path) -> None:
    with zipfile.ZipFile(archive) as zf:
        for info in members:
            relative = PurePosixPath(info.filename.replace("\\", "/"))
            if not relative.parts:
                continue
            dest = staging.joinpath(*relative.parts)
            if info.is_dir():
                dest.mkdir(parents=True, exist_ok=True)
                continue
            dest.parent.mkdir(parents=True, exist_ok=True)
            with zf.open(info) as source, open(dest, "wb") as out:
                shutil.copyfileobj(source, out)


def _commit(staging: Path, target: Path) -> None:
    """Move *staging* to *target*, replacing an existing copy last."""
    backup: Path | None = None
    if target.exists() or target.is_symlink():
        backup = target.parent / f"{_BACKUP_PREFIX}{target.name}-{uuid.uuid4().hex}"
        os.replace(target, backup)
    try:
        os.replace(staging, target)
    except OSError:
        if backup is not None:
            os.replace(backup, target)
        raise
    if backup is not None:
        _discard(backup)


def _discard(path: Path) -> None:
    """Best-effort removal of a staging or backup directory."""
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            path.unlink()
    except OSError as exc:
        log.warning("Could not clean up %s: %s", path, exc)


def _make_unique_dir(parent: Path, prefix: str) -> Path:
    """Create a fresh hidden directory in *parent* with umask-derived permissions.

    The directory is later renamed into place, so it must carry the same
    mode a plain ``mkdir`` would give an extension directory.
    """
    while True:
        path = parent / f"{prefix}{uuid.uuid4().hex}"
        try:
            path.mkdir()
        except FileExistsError:
            continue
        return path


def _discard_empty_root(root: Path) -> None:
    """Remove a scope root this install created, if nothing else landed in it."""
    try:
        root.rmdir()
    except OSError as exc:
        log.debug("Leaving extension root %s in place: %s", root, exc)
