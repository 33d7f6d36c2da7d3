"""
Disk helpers: free space probing, size strings and destination discovery.
"""

import os
import re
import shutil
import string
import sys
from typing import List, Optional


MB = 1024 * 1024
GB = 1024 * 1024 * 1024

DISK_SIZE_PATTERN = re.compile(r'^(\d+)(mb|gb)$')
MOUNT_POINTS = ['/mnt', '/media', '/Volumes']


class DestinationError(Exception):
    """Raised when the backup destination is unusable."""
    pass


def get_free_space(path: str) -> int:
    """
    Return the number of bytes available to the current user at path.

    Args:
        path: Any path on the filesystem to probe

    Returns:
        Available bytes

    Raises:
        OSError: If the filesystem cannot be queried
    """
    return shutil.disk_usage(path).free


def format_bytes(size: int) -> str:
    """
    Render a byte count the way sizes are written in the config file.

    Sizes under 1 GiB are whole megabytes ("512mb"); larger sizes are
    gigabytes with one decimal and a comma separator ("1,5gb").
    """
    if size < GB:
        return f"{size // MB}mb"
    return f"{size / GB:.1f}gb".replace('.', ',', 1)


def parse_disk_size(size_str: str) -> int:
    """
    Parse a "<N>mb" or "<N>gb" string into bytes.

    Args:
        size_str: Size string, case-insensitive, surrounding spaces ignored

    Returns:
        Size in bytes

    Raises:
        ValueError: If the string is not in the expected format
    """
    if not isinstance(size_str, str):
        raise ValueError(f"Invalid size: {size_str!r}")

    match = DISK_SIZE_PATTERN.match(size_str.strip().lower())
    if not match:
        raise ValueError(
            f"Invalid size format: {size_str!r}. "
            "Expected a number followed by 'mb' or 'gb' (e.g., '100mb', '10gb')"
        )

    value, unit = match.groups()
    multiplier = MB if unit == 'mb' else GB
    return int(value) * multiplier


def get_available_drives() -> List[str]:
    """
    List drives and common mount points that could hold a backup.

    On Windows every existing drive root (A:\\ .. Z:\\) is returned. On other
    platforms the immediate subdirectories of /mnt, /media and /Volumes are.
    """
    drives = []

    if sys.platform == 'win32':
        for letter in string.ascii_uppercase:
            root = f"{letter}:\\"
            if os.path.exists(root):
                drives.append(root)
        return drives

    for mount_point in MOUNT_POINTS:
        try:
            entries = sorted(os.scandir(mount_point), key=lambda e: e.name)
        except OSError:
            continue
        for entry in entries:
            if entry.is_dir():
                drives.append(os.path.join(mount_point, entry.name))

    return drives


def find_backup_destination(drives: List[str], config_name: str) -> Optional[str]:
    """
    Return the first drive whose root contains config_name, or None.

    Args:
        drives: Candidate drive roots, in priority order
        config_name: Marker configuration file name (e.g. ".smbkp.yaml")
    """
    for drive in drives:
        if os.path.isfile(os.path.join(drive, config_name)):
            return drive
    return None
