"""Privileged directory removal through the platform's authorization prompt.

Each elevated removal is a single external process:

* Linux and other POSIX systems: ``pkexec /bin/rm -rf -- PATH`` (argument
  vector, no shell involved).
* macOS: ``osascript`` running ``do shell script ... with administrator
  privileges``. The command is a string for ``/bin/sh``, so the path is
  shell-quoted and then escaped again for the AppleScript string literal.
* Windows: PowerShell ``Start-Process -Verb RunAs`` launching a second
  PowerShell with an ``-EncodedCommand`` that runs ``Remove-Item -LiteralPath``.

Paths are validated before any command is built.
"""

from __future__ import annotations

import base64
import logging
import ntpath
import os
import platform
import posixpath
import re
import shlex
import shutil
import subprocess
import threading
from pathlib import Path
from typing import Callable

log = logging.getLogger(__name__)

# Timeout for the elevated subprocess (seconds); the prompt waits on the user.
_ELEVATION_TIMEOUT = 300

_RM = "/bin/rm"
_OSASCRIPT = "/usr/bin/osascript"

_MAX_PATH = {"Windows": 32767, "Darwin": 1024}
_DEFAULT_MAX_PATH = 4096

# pkexec exit codes
_PKEXEC_DISMISSED = 126
_PKEXEC_DENIED = 127

_CANCEL_MARKERS = {
    "Darwin": ("(-128)", "user canceled", "user cancelled"),
    "Windows": ("canceled by the user", "cancelled by the user"),
}

# PowerShell treats typographic single quotes as quote characters too.
_PS_SINGLE_QUOTES = re.compile("['‘’‚‛]")

_APPLESCRIPT_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r", "\t": "\\t"}


class PrivilegeError(Exception):
    """Raised when privileged removal does not complete."""


class InvalidPath(PrivilegeError):
    """Raised for paths that must never reach a privileged command."""


class ElevationCancelled(PrivilegeError):
    """Raised when the authorization prompt is dismissed or the caller cancels first."""


class ElevationFailed(PrivilegeError):
    """Raised when the privileged process fails or cannot be started."""


def pkexec_available() -> bool:
    """Check if pkexec is available on the system."""
    return shutil.which("pkexec") is not None


def validate_path(path: Path | str, system: str | None = None) -> str:
    """Return *path* as a string if it is safe to hand to a privileged command.

    Raises:
        InvalidPath: Empty, relative, a filesystem root, containing a null
            byte, or longer than the platform limit.
    """
    system = system or platform.system()
    text = os.fspath(path)
    if not text:
        raise InvalidPath("Empty path")
    if "\x00" in text:
        raise InvalidPath("Path contains a null byte")

    limit = _MAX_PATH.get(system, _DEFAULT_MAX_PATH)
    length = len(text) if system == "Windows" else len(text.encode("utf-8", "surrogateescape"))
    if length > limit:
        raise InvalidPath(f"Path is longer than {limit} characters")

    flavour = ntpath if system == "Windows" else posixpath
    if not flavour.isabs(text):
        raise InvalidPath(f"Path is not absolute: {text}")
    normalized = flavour.normpath(text)
    if flavour.dirname(normalized) == normalized:
        raise InvalidPath(f"Refusing to remove a filesystem root: {text}")
    return text


def applescript_quote(text: str) -> str:
    """Quote *text* as an AppleScript string literal."""
    return '"' + "".join(_APPLESCRIPT_ESCAPES.get(ch, ch) for ch in text) + '"'


def powershell_quote(text: str) -> str:
    """Quote *text* as a PowerShell single-quoted (verbatim) string."""
    return "'" + _PS_SINGLE_QUOTES.sub(lambda m: m.group(0) * 2, text) + "'"


def build_remove_command(path: Path | str, system: str | None = None) -> list[str]:
    """Build the argument vector that deletes exactly *path* with elevated rights."""
    system = system or platform.system()
    target = validate_path(path, system)

    match system:
        case "Darwin":
            shell_cmd = f"{_RM} -rf -- {shlex.quote(target)}"
            script = f"do shell script {applescript_quote(shell_cmd)} with administrator privileges"
            return [_OSASCRIPT, "-e", script]
        case "Windows":
            inner = f"Remove-Item -LiteralPath {powershell_quote(target)} -Recurse -Force -ErrorAction Stop"
            encoded = base64.b64encode(inner.encode("utf-16-le")).decode("ascii")
            outer = (
                "$ErrorActionPreference = 'Stop'; "
                "try { $p = Start-Process -FilePath 'powershell.exe' -Verb RunAs -Wait -PassThru "
                "-WindowStyle Hidden -ErrorAction Stop -ArgumentList "
                f"'-NoProfile','-NonInteractive','-EncodedCommand','{encoded}' }} "
                "catch { [Console]::Error.WriteLine($_.Exception.Message); exit 1 }; "
                "if ($p.ExitCode -ne 0) { "
                "[Console]::Error.WriteLine(\"Remove-Item failed in the elevated process (exit $($p.ExitCode))\") }; "
                "exit $p.ExitCode"
            )
            return ["powershell.exe", "-NoProfile", "-NonInteractive", "-Command", outer]
        case _:
            return ["pkexec", _RM, "-rf", "--", target]


def run_elevated_remove(
    path: Path | str,
    *,
    system: str | None = None,
    cancel: threading.Event | None = None,
    runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
) -> None:
    """Delete *path* through the platform authorization prompt.

    Blocks until the privileged process exits. *cancel* is only honoured
    before the process starts; once the prompt is shown only the user can
    dismiss it.

    Raises:
        InvalidPath: The path was rejected before building a command.
        ElevationCancelled: The caller cancelled, or the user dismissed the prompt.
        ElevationFailed: On denial, timeout, missing tooling or a non-zero exit.
    """
    system = system or platform.system()
    argv = build_remove_command(path, system)

    if argv[0] == "pkexec" and not pkexec_available():
        raise ElevationFailed("pkexec is not available, cannot escalate privileges")
    if cancel is not None and cancel.is_set():
        raise ElevationCancelled("Cancelled before the authorization prompt was shown")

    log.info("Requesting elevated removal of %s", path)
    try:
        proc = runner(argv, capture_output=True, text=True, timeout=_ELEVATION_TIMEOUT)
    except subprocess.TimeoutExpired:
        raise ElevationFailed("Elevated removal timed out after 5 minutes")
    except OSError as exc:
        raise ElevationFailed(f"Could not start {argv[0]}: {exc}")

    if proc.returncode == 0:
        log.info("Elevated removal completed: %s", path)
        return

    stderr = (proc.stderr or "").strip()
    if _is_cancellation(argv[0], system, proc.returncode, stderr):
        raise ElevationCancelled("Authentication dismissed by user")
    if argv[0] == "pkexec" and proc.returncode == _PKEXEC_DENIED:
        raise ElevationFailed("Authentication denied")
    raise ElevationFailed(f"Elevated removal failed (exit {proc.returncode}): {stderr or 'no diagnostic output'}")


def _is_cancellation(program: str, system: str, returncode: int, stderr: str) -> bool:
    if program == "pkexec":
        return returncode == _PKEXEC_DISMISSED
    lowered = stderr.lower()
    return any(marker in lowered for marker in _CANCEL_MARKERS.get(system, ()))
