"""
Backup executor - orchestrates the complete backup workflow.

Workflow:
1. Check free space on the backup destination
2. Create the timestamped run directory (<prefix>-<YYYYMMDD-HHMMSS>)
3. For each backup item, in configuration order:
   a. count the entries that will be copied (progress denominator)
   b. copy the item with a progress bar
   c. record a BackupResult and apply the exit-on-error policy
4. Print the run summary
5. Remove old run directories beyond the retention count
"""

import os
from datetime import datetime
from typing import Callable, Optional

from smbkp.config import Config
from smbkp.console import Console
from smbkp.models import BackupConfig, BackupItem, BackupResult, BackupRunSummary
from smbkp.utils.disk import DestinationError, format_bytes, get_free_space
from smbkp.utils.paths import PathTraversalError, safe_join
from .copier import CopyError, TreeCopier
from .retention import CleanupError, RetentionManager


class BackupAbortedError(Exception):
    """Raised when a failed item stops the whole run (exit-on-error)."""

    def __init__(self, message: str, result: Optional[BackupResult] = None):
        super().__init__(message)
        self.result = result


class ProgressTracker:
    """
    Progress callback for a single item.

    Redraws the progress bar only when the integer percentage grows, so the
    bar never moves backwards and is drawn at most 101 times per item.
    """

    def __init__(self, total: int, console: Console):
        self.total = total
        self.console = console
        self.processed = 0
        self.last_percentage = -1

    def __call__(self):
        self.processed += 1
        if self.total <= 0:
            return
        percentage = self.processed * 100 // self.total
        if percentage > self.last_percentage:
            self.console.progress(percentage)
            self.last_percentage = percentage


class BackupExecutor:
    """
    Runs one backup of every configured item into a new run directory.

    Args:
        config: Validated backup configuration
        bkp_dest: Backup destination drive or mount point
        console: Output context shared with the copier and retention manager
        exit_on_error: Stop the run on the first failed item
        non_interactive: Never prompt; use the safe defaults instead
        copier: TreeCopier to use (default: platform predicate)
        retention_manager: RetentionManager to use
        free_space_probe: Callable returning available bytes for a path
        prefix: Run directory prefix (default: Config.PREFIX)
    """

    def __init__(
        self,
        config: BackupConfig,
        bkp_dest: str,
        console: Optional[Console] = None,
        exit_on_error: bool = False,
        non_interactive: bool = False,
        copier: Optional[TreeCopier] = None,
        retention_manager: Optional[RetentionManager] = None,
        free_space_probe: Optional[Callable[[str], int]] = None,
        prefix: Optional[str] = None
    ):
        self.config = config
        self.bkp_dest = bkp_dest
        self.console = console or Console()
        self.exit_on_error = exit_on_error
        self.non_interactive = non_interactive
        self.copier = copier or TreeCopier()
        self.retention_manager = retention_manager or RetentionManager(self.console)
        self.free_space_probe = free_space_probe or get_free_space
        self.prefix = prefix or Config.PREFIX

        self.backup_root = os.path.join(bkp_dest, config.bkp_dest_dir)
        self.run_dir = None
        self.results = []
        self.failed_count = 0

    def execute(self) -> BackupRunSummary:
        """
        Execute the backup.

        Returns:
            BackupRunSummary with one result per attempted item

        Raises:
            DestinationError: If the destination is unusable (nothing written)
            BackupAbortedError: If exit-on-error stopped the run
        """
        self.check_free_space()

        start_time = datetime.now()
        self.console.signature(f"Backup started on: {start_time.strftime('%d %b %y %H:%M')}")
        self.run_dir = self._create_run_dir(start_time)

        items = self.config.bkp_items
        for index, item in enumerate(items, start=1):
            self.console.blank()
            self.console.plain(f"[{index}/{len(items)}] Backing up: {item.source}")

            result = self._backup_item(item)
            self.results.append(result)

            if not result.success:
                self.failed_count += 1
                self._handle_failure(result)

        summary = BackupRunSummary(
            run_dir=self.run_dir,
            results=list(self.results),
            elapsed=datetime.now() - start_time,
        )
        self._print_summary(summary)

        summary.retention_ran, summary.deleted_backups = self._apply_retention()

        self.console.blank()
        if summary.success:
            self.console.success("Backup completed successfully!")
        else:
            self.console.error(f"Backup completed with {summary.failed_count} failure(s).")

        return summary

    def check_free_space(self) -> int:
        """
        Verify the destination exists and has enough free space.

        Returns:
            Available bytes

        Raises:
            DestinationError: If the destination is missing or too full
        """
        retention = self.config.retention
        try:
            available = self.free_space_probe(self.bkp_dest)
        except OSError as e:
            raise DestinationError(f"reading free space on {self.bkp_dest!r}: {e}") from e

        if available < retention.min_free_space_bytes:
            raise DestinationError(
                f"available free space ({format_bytes(available)}) is less than "
                f"required minimum ({retention.min_free_space})"
            )

        return available

    def _create_run_dir(self, start_time: datetime) -> str:
        timestamp = start_time.strftime(Config.TIMESTAMP_FORMAT)
        run_dir = os.path.join(self.backup_root, f"{self.prefix}-{timestamp}")

        self.console.plain(f"Creating backup directory {run_dir!r}... ", newline=False)
        try:
            os.makedirs(self.backup_root, mode=0o755, exist_ok=True)
            os.mkdir(run_dir, 0o755)
        except OSError as e:
            self.console.blank()
            raise DestinationError(f"creating backup directory: {e}") from e
        self.console.ok()

        return run_dir

    def _backup_item(self, item: BackupItem) -> BackupResult:
        """Count, then copy one item. Never raises for item-level failures."""
        item_start = datetime.now()

        try:
            dest_path = str(safe_join(self.run_dir, item.destination))
            total = self.copier.count_entries(item.source, item.include, item.exclude)
        except (CopyError, PathTraversalError) as e:
            return self._failed(item, e, item_start)

        progress = ProgressTracker(total, self.console)
        try:
            if os.path.isdir(item.source):
                self.copier.copy_tree(item.source, dest_path, item.include, item.exclude, progress)
            else:
                self.copier.copy_file(item.source, dest_path, progress)
        except CopyError as e:
            return self._failed(item, e, item_start)

        elapsed = datetime.now() - item_start
        self.console.progress(100, ' ')
        self.console.ok(f"({elapsed.total_seconds():.1f}s)")
        return BackupResult(item=item, success=True, elapsed=elapsed)

    def _failed(self, item: BackupItem, error: Exception, item_start: datetime) -> BackupResult:
        elapsed = datetime.now() - item_start
        self.console.blank()
        self.console.error(f"({elapsed.total_seconds():.1f}s): {error}")
        return BackupResult(item=item, success=False, error=error, elapsed=elapsed)

    def _handle_failure(self, result: BackupResult):
        """Apply the exit-on-error policy after a failed item."""
        if not self.exit_on_error:
            return

        message = f"backup stopped due to error: {result.error}"
        if self.non_interactive:
            raise BackupAbortedError(message, result) from result.error

        answer = self.console.prompt('Exit due to error? (only "no" will continue with the next item)')
        if answer != 'no':
            raise BackupAbortedError(message, result) from result.error

    def _apply_retention(self):
        """
        Remove old run directories when the run allows it.

        Returns:
            Tuple (retention_ran, deleted_count)
        """
        keep = self.config.retention.backups_to_keep

        if self.failed_count:
            if self.non_interactive:
                self.console.warn(
                    f"Skipping cleanup of old backups: {self.failed_count} item(s) failed in this run."
                )
                return False, 0

            answer = self.console.prompt(
                f'{self.failed_count} item(s) failed. Remove old backups anyway? (only "yes" will be accepted)'
            )
            if answer != 'yes':
                self.console.warn("Cleanup of old backups skipped.")
                return False, 0

        self.console.blank()
        self.console.plain(f"Cleaning up old backups (keeping {keep})")
        try:
            deleted = self.retention_manager.cleanup(self.backup_root, self.prefix, keep)
        except CleanupError as e:
            self.console.warn(str(e))
            return True, 0

        return True, deleted

    def _print_summary(self, summary: BackupRunSummary):
        self.console.blank()
        self.console.signature("===============  Backup Summary  ===============")
        self.console.plain(f"Backup directory: {summary.run_dir}")
        self.console.plain(f"Total time: {summary.elapsed.total_seconds():.1f}s")
        self.console.plain(f"Total items: {len(summary.results)}")
        self.console.plain(f"Successful: {len(summary.results) - summary.failed_count}")
        self.console.plain(f"Failed: {summary.failed_count}")

        for index, result in enumerate(summary.results, start=1):
            status = 'OK' if result.success else 'FAILED'
            self.console.sub(
                f"  [{index}] {status} {result.item.source} ({result.elapsed.total_seconds():.1f}s)"
            )
            if result.error is not None:
                self.console.sub(f"      Error: {result.error}")


def run_backup(
    config: BackupConfig,
    bkp_dest: str,
    console: Optional[Console] = None,
    exit_on_error: bool = False,
    non_interactive: bool = False
) -> BackupRunSummary:
    """
    Execute a backup of config into bkp_dest.

    Returns:
        BackupRunSummary of the run

    Raises:
        DestinationError: If the destination is unusable
        BackupAbortedError: If exit-on-error stopped the run
    """
    executor = BackupExecutor(
        config,
        bkp_dest,
        console=console,
        exit_on_error=exit_on_error,
        non_interactive=non_interactive
    )
    return executor.execute()
