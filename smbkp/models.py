"""
Data models for Simple Backup.

Configuration models are immutable once validated. They are built by the configuration
loader (smbkp.config) and by the backup executor for per-item results.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class BackupItem:
    """One source-to-destination mapping with its own filters."""

    source: str
    destination: str
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()

    def __repr__(self):
        return f'<BackupItem {self.source} -> {self.destination}>'


@dataclass(frozen=True)
class RetentionPolicy:
    """How many run directories to keep and how much space must be free."""

    backups_to_keep: int
    min_free_space: str
    min_free_space_bytes: int


@dataclass(frozen=True)
class Schedule:
    """Cron-like schedule for unattended runs."""

    frequency: str
    time_of_the_day: int = 0
    day_of_the_week: Optional[str] = None
    day_of_the_month: Optional[int] = None


@dataclass(frozen=True)
class BackupConfig:
    """Validated backup configuration (the contents of .smbkp.yaml)."""

    bkp_dest_dir: str
    retention: RetentionPolicy
    bkp_items: Tuple[BackupItem, ...] = ()
    schedule: Optional[Schedule] = None


@dataclass(frozen=True)
class BackupResult:
    """Outcome of backing up a single item."""

    item: BackupItem
    success: bool
    error: Optional[BaseException] = None
    elapsed: timedelta = timedelta(0)


@dataclass
class BackupRunSummary:
    """Everything a caller needs to report on a finished run."""

    run_dir: str
    results: List[BackupResult] = field(default_factory=list)
    elapsed: timedelta = timedelta(0)
    retention_ran: bool = False
    deleted_backups: int = 0

    @property
    def failed_count(self) -> int:
        return sum(1 for result in self.results if not result.success)

    @property
    def success(self) -> bool:
        return self.failed_count == 0
