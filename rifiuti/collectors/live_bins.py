"""
Live system recycle bin discovery.

Locates the ``$Recycle.Bin\\<SID>`` folder of the current user on every
mounted drive, either natively on Windows or from inside WSL where Windows
drives are 9p mounts under ``/mnt``.
"""

import logging
import os
import platform
import subprocess
import sys
from pathlib import Path
from typing import List

from ..errors import LiveModeUnsupportedError, MiscError, MiscErrorKind

logger = logging.getLogger(__name__)

RECYCLE_BIN_FOLDER = "$Recycle.Bin"

WSL_MOUNT_FSTYPE = "9p"
PROC_MOUNTS = "/proc/self/mounts"
WHOAMI_COMMAND = ["whoami.exe", "/user", "/fo", "csv"]


def is_windows() -> bool:
    return sys.platform == "win32"


def is_wsl() -> bool:
    """Check whether running inside Windows Subsystem for Linux."""
    if not sys.platform.startswith("linux"):
        return False
    return "microsoft" in platform.release().lower()


def live_mode_supported() -> bool:
    return is_windows() or is_wsl()


def _system_drive() -> str:
    system_drive = os.environ.get('SystemDrive', 'C:')
    if not system_drive.endswith('\\'):
        system_drive += '\\'
    return system_drive


def get_logical_drives_native() -> List[str]:
    """Get all logical drives using the Windows API.

    Uses kernel32.GetLogicalDrives() which returns a 32-bit bitmask where
    bit 0 is A:, bit 1 is B: and so on.

    Returns:
        List of drive root paths with trailing backslash (e.g. ``['C:\\\\']``)

    Raises:
        MiscError: If the API call fails or reports no drive
    """
    import ctypes

    try:
        kernel32 = ctypes.WinDLL('kernel32', use_last_error=True)
        bitmask = kernel32.GetLogicalDrives()
    except (AttributeError, OSError) as e:
        raise MiscError(MiscErrorKind.ENUMERATE_MNT,
                        f"Drive enumeration via Windows API failed: {e}") from e

    if bitmask == 0:
        raise MiscError(MiscErrorKind.ENUMERATE_MNT,
                        f"GetLogicalDrives() failed with error {ctypes.get_last_error()}")

    drives = [f"{chr(ord('A') + i)}:\\" for i in range(26) if bitmask & (1 << i)]
    logger.debug(f"Native API enumerated {len(drives)} drives: {', '.join(drives)}")
    return drives


def get_user_sid_native() -> str:
    """
    Get the string SID of the user owning the current process token.

    Raises:
        MiscError: If the token can't be queried
    """
    import pywintypes
    import win32api
    import win32security

    try:
        token = win32security.OpenProcessToken(
            win32api.GetCurrentProcess(), win32security.TOKEN_QUERY)
        user_sid, _ = win32security.GetTokenInformation(token, win32security.TokenUser)
        return win32security.ConvertSidToStringSid(user_sid)
    except pywintypes.error as e:
        raise MiscError(MiscErrorKind.GET_SID, f"Failed to get current user SID: {e.strerror}") from e


def get_user_sid_wsl() -> str:
    """
    Get the Windows user SID from inside WSL with ``whoami.exe``.

    Output is CSV with a header line, e.g.::

        "User Name","SID"
        "machine\\user","S-1-5-21-..."

    Raises:
        MiscError: If whoami.exe fails or prints something unexpected
    """
    try:
        result = subprocess.run(WHOAMI_COMMAND, capture_output=True, timeout=30)
    except (OSError, subprocess.SubprocessError) as e:
        raise MiscError(MiscErrorKind.GET_SID, f"Error running whoami: {e}") from e

    if result.returncode != 0:
        stderr = result.stderr.decode('utf-8', errors='replace').strip()
        raise MiscError(MiscErrorKind.GET_SID,
                        f"Error running whoami: {stderr or 'unknown reason'}")

    stdout = result.stdout.decode('utf-8', errors='replace')
    logger.debug(f"whoami output: {stdout}")
    lines = stdout.splitlines()
    try:
        sid = lines[1].split(",")[1].strip().strip('"')
    except IndexError:
        raise MiscError(MiscErrorKind.GET_SID, f"Invalid whoami output '{stdout}'") from None
    if not sid.startswith("S"):
        raise MiscError(MiscErrorKind.GET_SID, f"Invalid format '{sid}'")
    return sid


def probe_wsl_mounts(mounts_file: str = PROC_MOUNTS) -> List[str]:
    """
    List mount points of Windows drives inside WSL.

    Raises:
        MiscError: If the mount table can't be read
    """
    try:
        with open(mounts_file, 'r', encoding='utf-8', errors='replace') as f:
            content = f.read()
    except OSError as e:
        raise MiscError(MiscErrorKind.ENUMERATE_MNT, str(e)) from e

    mount_points = []
    for line in content.splitlines():
        fields = line.split()
        if len(fields) > 2 and fields[2] == WSL_MOUNT_FSTYPE:
            logger.debug(f"Found potential Windows drive in line '{line}'")
            mount_points.append(fields[1])
    return mount_points


def enumerate_drive_bins() -> List[Path]:
    """
    Find the current user's recycle bin folder on every drive.

    Misc errors are logged and degraded: a failed drive enumeration on
    Windows falls back to the system drive, while a missing SID leaves
    nothing to inspect.

    Returns:
        Existing ``$Recycle.Bin\\<SID>`` folders

    Raises:
        LiveModeUnsupportedError: Not on Windows or WSL, or SID unavailable
    """
    if not live_mode_supported():
        raise LiveModeUnsupportedError("Live mode is not supported on this platform.")

    try:
        sid = get_user_sid_native() if is_windows() else get_user_sid_wsl()
    except MiscError as e:
        logger.error(f"{e}")
        raise LiveModeUnsupportedError(
            "Live mode is unavailable without the current user SID.") from e
    logger.debug(f"Current user SID: {sid}")

    if is_windows():
        try:
            drives = get_logical_drives_native()
        except MiscError as e:
            logger.warning(f"{e}")
            logger.info("Falling back to system drive only")
            drives = [_system_drive()]
    else:
        try:
            drives = probe_wsl_mounts()
        except MiscError as e:
            logger.warning(f"Failed to enumerate Windows drives: {e}")
            drives = []

    bins = []
    for drive in drives:
        bin_path = Path(drive) / RECYCLE_BIN_FOLDER / sid
        if bin_path.exists():
            bins.append(bin_path)
        else:
            logger.debug(f"Path '{bin_path}' does not exist, skipped")
    return bins
