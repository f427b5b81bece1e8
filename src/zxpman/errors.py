"""Exceptions raised by the extension lifecycle core."""

from __future__ import annotations


class ZxpmanError(Exception):
    """Base class for all zxpman errors."""


class HomeDirectoryUnavailable(ZxpmanError):
    """Raised when the current user's home directory cannot be determined."""


class UnsupportedPlatform(ZxpmanError):
    """Raised when CEP extension roots are unknown for this operating system."""


class ManifestError(ZxpmanError):
    """Base class for manifest problems. Never fatal to a scan."""


class ManifestMissing(ManifestError):
    """Raised when an extension directory has no CSXS/manifest.xml."""


class ManifestParseError(ManifestError):
    """Raised when a manifest exists but cannot be understood."""
