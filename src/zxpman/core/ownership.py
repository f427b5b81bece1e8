"""Ownership and category classification for extension directories."""

from __future__ import annotations

import functools
import logging
import os
from pathlib import Path
from typing import Iterable

from zxpman.models.extension import Category
from zxpman.settings import DEFAULT_NATIVE_PREFIXES

log = logging.getLogger(__name__)

_IS_WINDOWS = os.name == "nt"

# Win32 constants used by the owner lookup.
_SE_FILE_OBJECT = 1
_OWNER_SECURITY_INFORMATION = 0x1
_TOKEN_QUERY = 0x8
_TOKEN_USER = 1
_TOKEN_OWNER = 4


def is_removable(path: Path) -> bool:
    """Guess whether the current process can delete *path* without elevation.

    On POSIX the directory's owning uid is compared with the effective uid.
    On Windows the owner SID is compared with the user and default owner
    SIDs of the process token.

    Advisory only: ownership may change before removal, and the remove
    operation decides on its own whether to escalate.
    """
    try:
        if _IS_WINDOWS:
            return _windows_owned(path)
        return _posix_owned(path)
    except OSError as exc:
        log.debug("Cannot classify ownership of %s: %s", path, exc)
        return False


def _posix_owned(path: Path) -> bool:
    euid = os.geteuid()
    if euid == 0:
        return True
    return path.stat().st_uid == euid


def _windows_owned(path: Path) -> bool:
    return _file_owner_sid(path) in _process_sids()


@functools.lru_cache(maxsize=None)
def _win32():
    import ctypes
    from ctypes import wintypes

    advapi32 = ctypes.WinDLL("advapi32", use_last_error=True)
    kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)

    advapi32.GetNamedSecurityInfoW.argtypes = [
        wintypes.LPCWSTR,
        ctypes.c_int,
        wintypes.DWORD,
        ctypes.POINTER(ctypes.c_void_p),
        ctypes.POINTER(ctypes.c_void_p),
        ctypes.POINTER(ctypes.c_void_p),
        ctypes.POINTER(ctypes.c_void_p),
        ctypes.POINTER(ctypes.c_void_p),
    ]
    advapi32.GetNamedSecurityInfoW.restype = wintypes.DWORD
    advapi32.GetLengthSid.argtypes = [ctypes.c_void_p]
    advapi32.GetLengthSid.restype = wintypes.DWORD
    advapi32.OpenProcessToken.argtypes = [wintypes.HANDLE, wintypes.DWORD, ctypes.POINTER(wintypes.HANDLE)]
    advapi32.OpenProcessToken.restype = wintypes.BOOL
    advapi32.GetTokenInformation.argtypes = [
        wintypes.HANDLE,
        ctypes.c_int,
        ctypes.c_void_p,
        wintypes.DWORD,
        ctypes.POINTER(wintypes.DWORD),
    ]
    advapi32.GetTokenInformation.restype = wintypes.BOOL
    kernel32.GetCurrentProcess.argtypes = []
    kernel32.GetCurrentProcess.restype = wintypes.HANDLE
    kernel32.CloseHandle.argtypes = [wintypes.HANDLE]
    kernel32.CloseHandle.restype = wintypes.BOOL
    kernel32.LocalFree.argtypes = [ctypes.c_void_p]
    kernel32.LocalFree.restype = ctypes.c_void_p
    return ctypes, advapi32, kernel32


def _sid_bytes(sid: int) -> bytes:
    ctypes, advapi32, _ = _win32()
    return ctypes.string_at(sid, advapi32.GetLengthSid(sid))


def _file_owner_sid(path: Path) -> bytes:
    """Return the binary owner SID of *path*."""
    ctypes, advapi32, kernel32 = _win32()
    owner = ctypes.c_void_p()
    descriptor = ctypes.c_void_p()
    status = advapi32.GetNamedSecurityInfoW(
        str(path),
        _SE_FILE_OBJECT,
        _OWNER_SECURITY_INFORMATION,
        ctypes.byref(owner),
        None,
        None,
        None,
        ctypes.byref(descriptor),
    )
    if status != 0:
        raise ctypes.WinError(status)
    try:
        return _sid_bytes(owner.value)
    finally:
        kernel32.LocalFree(descriptor)


@functools.lru_cache(maxsize=None)
def _process_sids() -> frozenset[bytes]:
    """Return the token user SID and the default owner SID for new objects.

    The default owner differs from the user for elevated administrators,
    whose files are owned by the Administrators group.
    """
    ctypes, advapi32, kernel32 = _win32()
    from ctypes import wintypes

    token = wintypes.HANDLE()
    if not advapi32.OpenProcessToken(kernel32.GetCurrentProcess(), _TOKEN_QUERY, ctypes.byref(token)):
        raise ctypes.WinError(ctypes.get_last_error())
    try:
        return frozenset(_token_sid(token, info_class) for info_class in (_TOKEN_USER, _TOKEN_OWNER))
    finally:
        kernel32.CloseHandle(token)


def _token_sid(token, info_class: int) -> bytes:
    ctypes, advapi32, _ = _win32()
    from ctypes import wintypes

    size = wintypes.DWORD()
    advapi32.GetTokenInformation(token, info_class, None, 0, ctypes.byref(size))
    if not size.value:
        raise ctypes.WinError(ctypes.get_last_error())
    buffer = ctypes.create_string_buffer(size.value)
    if not advapi32.GetTokenInformation(token, info_class, buffer, size, ctypes.byref(size)):
        raise ctypes.WinError(ctypes.get_last_error())
    # TOKEN_USER and TOKEN_OWNER both begin with the SID pointer.
    return _sid_bytes(ctypes.c_void_p.from_buffer(buffer).value)


def classify(bundle_id: str, native_prefixes: Iterable[str] = DEFAULT_NATIVE_PREFIXES) -> Category:
    """Return NATIVE for ids in a vendor-reserved namespace, else THIRD_PARTY."""
    lowered = bundle_id.lower()
    if any(lowered.startswith(prefix.lower()) for prefix in native_prefixes):
        return Category.NATIVE
    return Category.THIRD_PARTY
