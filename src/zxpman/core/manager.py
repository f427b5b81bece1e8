"""Request/response facade over discovery, installation and removal."""

from __future__ import annotations

import functools
import logging
import shutil
import threading
from pathlib import Path
from typing import Callable, Mapping

from zxpman.core.installer import install_archive
from zxpman.core.paths import ScopeRoots, resolve_roots
from zxpman.core.remover import remove_elevated, remove_extension
from zxpman.core.scanner import scan_extensions
from zxpman.models.extension import ExtensionEntry, Scope
from zxpman.models.results import InstallResult, RemoveResult
from zxpman.settings import Settings

log = logging.getLogger(__name__)


class ExtensionManager:
    """Scans, installs and removes CEP extensions.

    Holds no state besides its configuration: every ``scan()`` builds a new
    snapshot, and callers should re-scan after ``install()`` or ``remove()``.
    All methods block and may be called from a worker thread.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        system: str | None = None,
        environ: Mapping[str, str] | None = None,
        home: Callable[[], Path] = Path.home,
        rmtree: Callable[[Path], None] = shutil.rmtree,
    ) -> None:
        self.settings = settings if settings is not None else Settings.instance()
        self._system = system
        self._environ = environ
        self._home = home
        self._rmtree = rmtree

    def roots(self) -> ScopeRoots:
        """Resolve both scope roots.

        Raises:
            HomeDirectoryUnavailable, UnsupportedPlatform
        """
        return resolve_roots(self._system, environ=self._environ, home=self._home, settings=self.settings)

    def scan(self) -> tuple[ExtensionEntry, ...]:
        """Discover installed extensions, one entry per id."""
        entries = scan_extensions(
            self.roots(),
            native_prefixes=self.settings.native_prefixes,
            with_sizes=self.settings.compute_sizes,
        )
        log.info("Found %d extensions", len(entries))
        return entries

    def find(self, extension_id: str) -> ExtensionEntry | None:
        """Scan and return the entry with *extension_id*, if any."""
        for entry in self.scan():
            if entry.id == extension_id:
                return entry
        return None

    @property
    def default_scope(self) -> Scope:
        value = self.settings.get("install.default_scope", Scope.USER.value)
        try:
            return Scope(value)
        except ValueError:
            log.warning("Unknown install.default_scope %r, using user scope", value)
            return Scope.USER

    def install(self, archive: Path | str, scope: Scope | str | None = None) -> InstallResult:
        """Install a ZXP archive into *scope* (the configured default when None)."""
        scope = Scope(scope) if scope is not None else self.default_scope
        root = self.roots().for_scope(scope)
        return install_archive(Path(archive), root, scope)

    def remove(self, path: Path | str, *, cancel: threading.Event | None = None) -> RemoveResult:
        """Remove an extension directory, escalating only on permission denial.

        *cancel* can stop the elevation step before the prompt appears.
        """
        elevate = functools.partial(remove_elevated, system=self._system, cancel=cancel)
        return remove_extension(Path(path), rmtree=self._rmtree, elevate=elevate)
