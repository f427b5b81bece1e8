"""zxpman data models."""

from zxpman.models.extension import Category, ExtensionEntry, HostApp, ManifestInfo, Scope
from zxpman.models.results import InstallResult, InstallStatus, RemoveResult, RemoveStatus

__all__ = [
    "Category",
    "ExtensionEntry",
    "HostApp",
    "InstallResult",
    "InstallStatus",
    "ManifestInfo",
    "RemoveResult",
    "RemoveStatus",
    "Scope",
]
