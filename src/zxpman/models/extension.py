"""Discovered extension dataclasses."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class Scope(str, Enum):
    """Installation tier an extension was found under."""

    SYSTEM = "system"
    USER = "user"


class Category(str, Enum):
    """Vendor-shipped ("native") or third-party extension."""

    NATIVE = "native"
    THIRD_PARTY = "third_party"


@dataclass(frozen=True, slots=True)
class HostApp:
    """Host application declared in a manifest's HostList."""

    name: str
    version: str = ""


@dataclass(frozen=True, slots=True)
class ManifestInfo:
    """Metadata read from CSXS/manifest.xml."""

    bundle_id: str
    name: str
    version: str
    hosts: tuple[HostApp, ...] = ()
    extension_ids: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ExtensionEntry:
    """One extension directory found during a scan.

    Entries are a point-in-time snapshot: ``removable`` is only a hint for
    disabling destructive actions, the remove operation does not trust it.
    ``extension_ids`` lists the panels declared by the bundle.
    ``manifest_error`` is non-empty when metadata had to be derived from the
    directory name.
    """

    id: str
    name: str
    version: str
    path: Path
    scope: Scope
    category: Category
    removable: bool
    size_bytes: int = 0
    hosts: tuple[HostApp, ...] = ()
    extension_ids: tuple[str, ...] = ()
    manifest_error: str = ""

    @property
    def is_native(self) -> bool:
        return self.category is Category.NATIVE

    @property
    def is_degraded(self) -> bool:
        return bool(self.manifest_error)

    @property
    def size_human(self) -> str:
        from zxpman.utils import bytes_to_human

        return bytes_to_human(self.size_bytes)
