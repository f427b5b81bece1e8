"""Extension discovery across the system and user scope roots."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from zxpman.core.manifest import read_manifest
from zxpman.core.ownership import classify, is_removable
from zxpman.core.paths import ScopeRoots
from zxpman.errors import ManifestError
from zxpman.models.extension import ExtensionEntry, Scope
from zxpman.settings import DEFAULT_NATIVE_PREFIXES
from zxpman.utils import dir_size

log = logging.getLogger(__name__)

UNKNOWN_VERSION = "unknown"


def scan_extensions(
    roots: ScopeRoots,
    *,
    native_prefixes: Iterable[str] = DEFAULT_NATIVE_PREFIXES,
    with_sizes: bool = True,
) -> tuple[ExtensionEntry, ...]:
    """Discover every extension under both scope roots.

    A missing root is skipped, a broken manifest yields a degraded entry,
    and an unreadable directory is skipped; none of these abort the scan.
    When the same id exists in both scopes only the user-scope entry is kept.

    Returns:
        Entries sorted by (id, scope, path).
    """
    prefixes = tuple(native_prefixes)
    found: list[ExtensionEntry] = []
    for scope, root in roots.items():
        found.extend(_scan_root(root, scope, prefixes, with_sizes))
    return deduplicate(found)


def deduplicate(entries: Iterable[ExtensionEntry]) -> tuple[ExtensionEntry, ...]:
    """Keep one entry per id, preferring the user scope."""
    chosen: dict[str, ExtensionEntry] = {}
    for entry in sorted(entries, key=_sort_key):
        current = chosen.get(entry.id)
        if current is None:
            chosen[entry.id] = entry
        elif current.scope is not Scope.USER and entry.scope is Scope.USER:
            log.info("Extension '%s' exists in both scopes, using %s", entry.id, entry.path)
            chosen[entry.id] = entry
        else:
            log.debug("Ignoring duplicate extension '%s' at %s", entry.id, entry.path)
    return tuple(sorted(chosen.values(), key=_sort_key))


def _sort_key(entry: ExtensionEntry) -> tuple[str, str, str]:
    return (entry.id, entry.scope.value, str(entry.path))


def _scan_root(root: Path, scope: Scope, prefixes: tuple[str, ...], with_sizes: bool) -> list[ExtensionEntry]:
    if not root.is_dir():
        log.debug("%s extension root not found: %s", scope.value.capitalize(), root)
        return []

    try:
        candidates = sorted(root.iterdir())
    except OSError as exc:
        log.warning("Cannot read %s extension root %s: %s", scope.value, root, exc)
        return []

    entries: list[ExtensionEntry] = []
    for path in candidates:
        # Hidden directories are install staging or backup artifacts.
        if path.name.startswith("."):
            continue
        try:
            if not path.is_dir():
                continue
            entries.append(_build_entry(path, scope, prefixes, with_sizes))
        except OSError as exc:
            log.warning("Skipping unreadable extension directory %s: %s", path, exc)
    return entries


def _build_entry(path: Path, scope: Scope, prefixes: tuple[str, ...], with_sizes: bool) -> ExtensionEntry:
    try:
        info = read_manifest(path)
    except ManifestError as exc:
        log.warning("Using directory name for %s: %s", path, exc)
        ext_id = name = path.name
        version = UNKNOWN_VERSION
        hosts: tuple = ()
        panels: tuple = ()
        error = str(exc)
    else:
        ext_id, name, version, error = info.bundle_id, info.name, info.version, ""
        hosts, panels = info.hosts, info.extension_ids

    return ExtensionEntry(
        id=ext_id,
        name=name,
        version=version,
        path=path.absolute(),
        scope=scope,
        category=classify(ext_id, prefixes),
        removable=is_removable(path),
        size_bytes=dir_size(path) if with_sizes else 0,
        hosts=hosts,
        extension_ids=panels,
        manifest_error=error,
    )
