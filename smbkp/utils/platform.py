"""
Platform adapter for tree walks.

Windows drive roots contain reserved entries that even administrators cannot
read. Walking a whole drive would fail on them, so access errors on those
entries are classified as ignorable.
"""

import errno
import ntpath
import sys


WINDOWS_PROTECTED_NAMES = frozenset({
    '$recycle.bin',
    'system volume information',
    'config.msi',
    'recovery',
    'pagefile.sys',
    'hiberfil.sys',
    'swapfile.sys',
    'dumpstack.log.tmp',
})


def is_ignorable_walk_error(path: str, error: BaseException, platform: str = sys.platform) -> bool:
    """
    Decide whether a walk error on path should be skipped instead of failing.

    Args:
        path: Path whose access failed
        error: The raised exception
        platform: Platform name, defaults to sys.platform

    Returns:
        True only for access-denied errors on Windows protected entries
    """
    if platform != 'win32':
        return False

    if not isinstance(error, PermissionError) and getattr(error, 'errno', None) != errno.EACCES:
        return False

    name = ntpath.basename(ntpath.normpath(path)).lower()
    return name in WINDOWS_PROTECTED_NAMES
