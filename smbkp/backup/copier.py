"""
Selective tree copy for backup items.

TreeCopier walks a source tree in pre-order (parents before children,
siblings in name order), consults the include/exclude patterns and recreates
the included entries under a destination root:

- directories are created with the source permission bits
- symlinks to directories are recreated verbatim (never followed)
- files and symlinks to files are copied byte for byte, then chmod-ed to the
  source mode

Any error aborts the copy with CopyError, except errors the platform
predicate classifies as ignorable, which just skip the entry.
"""

import logging
import os
import shutil
import stat
from typing import Callable, List, Optional, Sequence, Tuple

from smbkp.utils.platform import is_ignorable_walk_error
from .patterns import should_include


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[], None]
ErrorPredicate = Callable[[str, BaseException], bool]


class CopyError(Exception):
    """Raised when a backup item cannot be copied."""
    pass


def _noop():
    pass


class TreeCopier:
    """
    Copies directory trees and single files for backup items.

    Args:
        is_ignorable_error: Predicate (path, error) -> bool deciding whether
            an OSError on path is skipped instead of aborting the copy
    """

    def __init__(self, is_ignorable_error: Optional[ErrorPredicate] = None):
        self.is_ignorable_error = is_ignorable_error or is_ignorable_walk_error

    def copy_tree(
        self,
        src: str,
        dst: str,
        include: Sequence[str] = (),
        exclude: Sequence[str] = (),
        on_progress: Optional[ProgressCallback] = None
    ):
        """
        Copy the included part of the tree at src into dst.

        dst itself is created (with the mode of src) if it does not exist.
        on_progress is called once per created directory and once per
        written file.

        Raises:
            CopyError: If reading the source or writing the destination fails
        """
        on_progress = on_progress or _noop
        src_stat = self._stat_source(src)
        # Directory modes are applied after the walk so that read-only
        # directories can still receive their children.
        dir_modes: List[Tuple[str, int]] = []

        try:
            os.makedirs(dst, mode=stat.S_IMODE(src_stat.st_mode) | stat.S_IRWXU, exist_ok=True)
        except OSError as e:
            raise CopyError(f"creating destination directory {dst!r}: {e}") from e
        dir_modes.append((dst, stat.S_IMODE(src_stat.st_mode)))

        def visit(rel_path: str, path: str, entry_stat: os.stat_result) -> bool:
            if not should_include(rel_path, include, exclude):
                return False

            dest_path = os.path.join(dst, rel_path)
            mode = entry_stat.st_mode

            if stat.S_ISDIR(mode):
                # Overlapping item destinations merge into the existing directory
                os.makedirs(dest_path, stat.S_IMODE(mode) | stat.S_IRWXU, exist_ok=True)
                os.chmod(dest_path, stat.S_IMODE(mode) | stat.S_IRWXU)
                dir_modes.append((dest_path, stat.S_IMODE(mode)))
                on_progress()
                return True

            if stat.S_ISLNK(mode):
                if os.path.isdir(path):
                    os.symlink(os.readlink(path), dest_path)
                    on_progress()
                    return False
                # Links to files fall through and are copied by content

            self._copy_file_contents(path, dest_path, on_progress)
            return False

        self._walk(src, visit)

        for dir_path, dir_mode in reversed(dir_modes):
            try:
                os.chmod(dir_path, dir_mode)
            except OSError as e:
                raise CopyError(f"setting permissions on {dir_path!r}: {e}") from e

    def copy_file(self, src: str, dst: str, on_progress: Optional[ProgressCallback] = None):
        """
        Copy a single file to dst, creating missing parent directories.

        Raises:
            CopyError: If the copy fails
        """
        on_progress = on_progress or _noop
        try:
            parent = os.path.dirname(dst)
            if parent:
                os.makedirs(parent, mode=0o755, exist_ok=True)
            self._copy_file_contents(src, dst, on_progress)
        except OSError as e:
            raise CopyError(f"copying {src!r} to {dst!r}: {e}") from e

    def count_entries(self, src: str, include: Sequence[str] = (), exclude: Sequence[str] = ()) -> int:
        """
        Count the entries copy_tree would visit and copy, without writing.

        A single-file source counts as one entry.

        Raises:
            CopyError: If the source cannot be read
        """
        src_stat = self._stat_source(src)
        if not stat.S_ISDIR(src_stat.st_mode):
            return 1

        total = 0

        def visit(rel_path: str, path: str, entry_stat: os.stat_result) -> bool:
            nonlocal total
            if not should_include(rel_path, include, exclude):
                return False
            total += 1
            return stat.S_ISDIR(entry_stat.st_mode)

        self._walk(src, visit)
        return total

    @staticmethod
    def _stat_source(src: str) -> os.stat_result:
        try:
            return os.stat(src)
        except OSError as e:
            raise CopyError(f"accessing source path {src!r}: {e}") from e

    @staticmethod
    def _copy_file_contents(src: str, dst: str, on_progress: ProgressCallback):
        shutil.copyfile(src, dst)
        on_progress()
        os.chmod(dst, stat.S_IMODE(os.stat(src).st_mode))

    def _walk(self, root: str, visit: Callable[[str, str, os.stat_result], bool], rel_dir: str = ''):
        """
        Walk root in pre-order, calling visit(rel_path, path, lstat) per entry.

        The root itself is never passed to visit. visit returns True to
        descend into a directory. OSErrors raised while reading the source
        (listing, stat or opening an entry) are either skipped (ignorable) or
        re-raised as CopyError. Destination-side errors are always re-raised.
        """
        dir_path = os.path.join(root, rel_dir) if rel_dir else root

        try:
            names = sorted(os.listdir(dir_path))
        except OSError as e:
            if self._is_ignorable(dir_path, e):
                return
            raise CopyError(f"reading directory {dir_path!r}: {e}") from e

        for name in names:
            rel_path = os.path.join(rel_dir, name) if rel_dir else name
            path = os.path.join(root, rel_path)
            try:
                descend = visit(rel_path, path, os.lstat(path))
            except OSError as e:
                if e.filename == path and self._is_ignorable(path, e):
                    continue
                raise CopyError(f"backing up {path!r}: {e}") from e
            if descend:
                self._walk(root, visit, rel_path)

    def _is_ignorable(self, path: str, error: OSError) -> bool:
        if self.is_ignorable_error(path, error):
            logger.debug(f"Skipping protected path {path}: {error}")
            return True
        return False
