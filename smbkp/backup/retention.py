"""
Retention policy enforcement for backups.

Run directories are named "<prefix>-<YYYYMMDD-HHMMSS>", so sorting them by
name sorts them by age. RetentionManager keeps the newest ones and removes
the rest.
"""

import os
import shutil
import stat
import sys
from typing import List, Optional

from smbkp.console import Console


class CleanupError(Exception):
    """Raised when old backups cannot be listed or removed."""
    pass


def _retry_writable(func, path, _exc):
    """rmtree error handler: make the entry and its parent writable, retry once."""
    parent = os.path.dirname(path)
    os.chmod(parent, os.stat(parent).st_mode | stat.S_IRWXU)
    if os.path.lexists(path) and not os.path.islink(path):
        os.chmod(path, os.stat(path).st_mode | stat.S_IRWXU)
    func(path)


def remove_tree(path: str):
    """Recursively delete path, working around read-only entries."""
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_retry_writable)
    else:
        shutil.rmtree(path, onerror=_retry_writable)


class RetentionManager:
    """
    Keeps at most N run directories under a backup root.

    Args:
        console: Output context used to report deletions and failures
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self.errors: List[str] = []

    def list_backups(self, backup_root_dir: str, prefix: str) -> List[str]:
        """
        List run directory names under backup_root_dir, oldest first.

        Args:
            backup_root_dir: Directory holding the run directories
            prefix: Run directory prefix (names start with "<prefix>-")

        Returns:
            Sorted directory names

        Raises:
            CleanupError: If the directory cannot be read
        """
        try:
            entries = list(os.scandir(backup_root_dir))
        except OSError as e:
            raise CleanupError(f"Failed to list backups in {backup_root_dir}: {e}") from e

        marker = f"{prefix}-"
        return sorted(
            entry.name for entry in entries
            if entry.name.startswith(marker) and entry.is_dir(follow_symlinks=False)
        )

    def cleanup(self, backup_root_dir: str, prefix: str, keep: int) -> int:
        """
        Delete the oldest run directories so that only `keep` remain.

        Deletion failures are reported and recorded in self.errors; they never
        stop the remaining deletions.

        Args:
            backup_root_dir: Directory holding the run directories
            prefix: Run directory prefix
            keep: Number of newest run directories to keep

        Returns:
            Number of run directories deleted

        Raises:
            CleanupError: If the backup root cannot be listed
        """
        backups = self.list_backups(backup_root_dir, prefix)

        if len(backups) <= keep:
            self.console.sub(f"Found {len(backups)} backup(s), keeping up to {keep}. Nothing to remove.")
            return 0

        to_delete = backups[:len(backups) - keep]
        deleted_count = 0

        for name in to_delete:
            dir_path = os.path.join(backup_root_dir, name)
            self.console.plain(f"Removing old backup {dir_path!r}... ", newline=False)
            try:
                remove_tree(dir_path)
                deleted_count += 1
                self.console.ok()
            except OSError as e:
                error_msg = f"Failed to remove old backup {dir_path}: {e}"
                self.errors.append(error_msg)
                self.console.blank()
                self.console.warn(error_msg)

        return deleted_count
