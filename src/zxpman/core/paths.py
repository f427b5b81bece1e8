"""OS-specific CEP extension root directories."""

from __future__ import annotations

import logging
import ntpath
import os
import platform
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping

from zxpman.errors import HomeDirectoryUnavailable, UnsupportedPlatform
from zxpman.models.extension import Scope
from zxpman.settings import Settings

log = logging.getLogger(__name__)

_CEP_SUBPATH = ("Adobe", "CEP", "extensions")

_MACOS_SYSTEM_ROOT = Path("/Library/Application Support/Adobe/CEP/extensions")
_MACOS_USER_SUBPATH = ("Library", "Application Support", *_CEP_SUBPATH)

_WINDOWS_DEFAULT_PROGRAM_FILES = r"C:\Program Files"


@dataclass(frozen=True, slots=True)
class ScopeRoots:
    """System-wide and per-user extension roots."""

    system: Path
    user: Path

    def for_scope(self, scope: Scope) -> Path:
        return self.system if scope is Scope.SYSTEM else self.user

    def items(self) -> tuple[tuple[Scope, Path], ...]:
        """Roots in scan order: system first, then user."""
        return ((Scope.SYSTEM, self.system), (Scope.USER, self.user))


def _home_dir(home: Callable[[], Path]) -> Path:
    try:
        return home()
    except (RuntimeError, KeyError, OSError) as exc:
        raise HomeDirectoryUnavailable(f"Could not determine the home directory: {exc}") from exc


def resolve_roots(
    system: str | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    home: Callable[[], Path] = Path.home,
    settings: Settings | None = None,
) -> ScopeRoots:
    """Compute the extension roots for *system* without touching the disk.

    Args:
        system: ``platform.system()`` value; detected when None.
        environ: Environment mapping (Windows only); ``os.environ`` when None.
        home: Callable returning the user's home directory.
        settings: Optional overrides from ``paths.system_root`` / ``paths.user_root``.

    Raises:
        HomeDirectoryUnavailable: The user root cannot be derived.
        UnsupportedPlatform: CEP has no known layout here and nothing is configured.
    """
    system = system or platform.system()
    env = os.environ if environ is None else environ

    system_override = settings.get("paths.system_root") if settings else None
    user_override = settings.get("paths.user_root") if settings else None
    if system_override and user_override:
        return ScopeRoots(
            system=Path(system_override).expanduser(),
            user=Path(user_override).expanduser(),
        )

    match system:
        case "Darwin":
            system_root = _MACOS_SYSTEM_ROOT
            user_root = _home_dir(home).joinpath(*_MACOS_USER_SUBPATH)
        case "Windows":
            appdata = env.get("APPDATA")
            if not appdata:
                raise HomeDirectoryUnavailable("APPDATA is not set; cannot locate the per-user CEP directory")
            program_files = env.get("ProgramFiles") or _WINDOWS_DEFAULT_PROGRAM_FILES
            system_root = Path(ntpath.join(program_files, "Common Files", *_CEP_SUBPATH))
            user_root = Path(ntpath.join(appdata, *_CEP_SUBPATH))
        case _:
            raise UnsupportedPlatform(
                f"Adobe CEP is not available on {system or 'this system'}; "
                "set paths.system_root and paths.user_root to use zxpman here"
            )

    if system_override:
        system_root = Path(system_override).expanduser()
    if user_override:
        user_root = Path(user_override).expanduser()

    log.debug("CEP roots: system=%s user=%s", system_root, user_root)
    return ScopeRoots(system=system_root, user=user_root)
