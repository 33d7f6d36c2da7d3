import os
import re
from typing import Any, Dict, List, Optional

import yaml

from smbkp.console import Console
from smbkp.models import BackupConfig, BackupItem, RetentionPolicy, Schedule
from smbkp.utils.disk import parse_disk_size
from smbkp.utils.paths import validate_relative_path


class Config:
    """Application constants and environment overrides"""

    VERSION = '0.1.0'

    # Run directories: <bkp-dest>/<bkp_dest_dir>/<PREFIX>-<YYYYMMDD-HHMMSS>
    PREFIX = os.environ.get('SMBKP_PREFIX') or 'smbkp'
    TIMESTAMP_FORMAT = '%Y%m%d-%H%M%S'
    CONFIG_FILE_DEFAULT = '.smbkp.yaml'
    BKP_DEST_DIR_DEFAULT = 'smbkp'

    # Retention limits
    MIN_BACKUPS_TO_KEEP = 1
    MIN_FREE_SPACE = '10mb'
    MIN_FREE_SPACE_BYTES = 10485760
    MIN_FREE_SPACE_PATTERN = re.compile(r'^\d+(mb|gb)$')

    # Logging
    LOG_DIR = os.environ.get('SMBKP_LOG_DIR')
    LOG_MAX_BYTES = 10485760  # 10MB
    LOG_BACKUP_COUNT = 10

    # Scheduler
    SCHEDULE_FREQUENCIES = ('daily', 'weekly', 'monthly')
    WEEKDAYS = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')


class ConfigError(Exception):
    """Raised when the backup configuration is missing or invalid."""
    pass


def load_config(config_file: str, console: Optional[Console] = None) -> BackupConfig:
    """
    Read and validate a YAML backup configuration file.

    Args:
        config_file: Path to the .smbkp.yaml file
        console: Output context for clamping warnings

    Returns:
        Validated BackupConfig

    Raises:
        ConfigError: If the file cannot be read, parsed or validated
    """
    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"{config_file!r}: {e.strerror or e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"parsing config file: {e}") from e

    try:
        return parse_config(data, console)
    except ConfigError as e:
        raise ConfigError(f"invalid configuration: {e}") from e


def parse_config(data: Any, console: Optional[Console] = None) -> BackupConfig:
    """
    Build a BackupConfig from the decoded YAML document.

    Missing keys fall back to defaults. backups_to_keep and min_free_space
    below their limits are raised to the limit with a warning.

    Raises:
        ConfigError: On malformed values
    """
    console = console or Console()

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("top level of the config file must be a mapping")

    bkp_dest_dir = data.get('bkp_dest_dir') or Config.BKP_DEST_DIR_DEFAULT
    if not isinstance(bkp_dest_dir, str) or not validate_relative_path(bkp_dest_dir):
        raise ConfigError(f"'bkp_dest_dir' must be a relative path, got {bkp_dest_dir!r}")

    return BackupConfig(
        bkp_dest_dir=bkp_dest_dir,
        retention=parse_retention(data.get('retention'), console),
        bkp_items=tuple(parse_items(data.get('bkp_items'))),
        schedule=parse_schedule(data.get('schedule')),
    )


def parse_retention(data: Optional[Dict[str, Any]], console: Console) -> RetentionPolicy:
    """Validate the 'retention' section, clamping values up to the limits."""
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError("'retention' must be a mapping")

    backups_to_keep = data.get('backups_to_keep', Config.MIN_BACKUPS_TO_KEEP)
    if isinstance(backups_to_keep, bool) or not isinstance(backups_to_keep, int):
        raise ConfigError(f"'backups_to_keep' must be an integer, got {backups_to_keep!r}")

    if backups_to_keep < Config.MIN_BACKUPS_TO_KEEP:
        console.warn(
            f"'backups_to_keep' value increased from '{backups_to_keep}' to "
            f"'{Config.MIN_BACKUPS_TO_KEEP}', which is allowed minimum."
        )
        backups_to_keep = Config.MIN_BACKUPS_TO_KEEP

    min_free_space = data.get('min_free_space', Config.MIN_FREE_SPACE)
    if not isinstance(min_free_space, str) or not Config.MIN_FREE_SPACE_PATTERN.match(min_free_space.lower()):
        raise ConfigError(
            f"'min_free_space' value {min_free_space!r} has invalid format. Expected format is a "
            "number followed by 'mb' or 'gb' (e.g., '100mb', '10gb')"
        )

    try:
        min_free_space_bytes = parse_disk_size(min_free_space)
    except ValueError as e:
        raise ConfigError(str(e)) from e

    if min_free_space_bytes < Config.MIN_FREE_SPACE_BYTES:
        console.warn(
            f"'min_free_space' value increased from '{min_free_space}' to "
            f"'{Config.MIN_FREE_SPACE}', which is allowed minimum."
        )
        min_free_space = Config.MIN_FREE_SPACE
        min_free_space_bytes = Config.MIN_FREE_SPACE_BYTES

    return RetentionPolicy(
        backups_to_keep=backups_to_keep,
        min_free_space=min_free_space.lower(),
        min_free_space_bytes=min_free_space_bytes,
    )


def _pattern_list(value: Any, key: str, index: int) -> tuple:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(p, str) and p for p in value):
        raise ConfigError(f"bkp_items[{index}].{key} must be a list of non-empty strings")
    return tuple(value)


def default_destination(source: str) -> str:
    """
    Destination used when an item names none: the source basename.

    Filesystem and drive roots have no basename; they are copied into the
    run directory itself (".").
    """
    return os.path.basename(os.path.normpath(source)) or os.curdir


def parse_items(data: Optional[List[Dict[str, Any]]]) -> List[BackupItem]:
    """
    Validate the 'bkp_items' section.

    Sources are expanded (~) and must be absolute. Destinations default to
    the source basename and must stay inside the run directory.
    """
    if data is None:
        return []
    if not isinstance(data, list):
        raise ConfigError("'bkp_items' must be a list")

    items = []
    for index, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise ConfigError(f"bkp_items[{index}] must be a mapping")

        source = entry.get('source')
        if not isinstance(source, str) or not source.strip():
            raise ConfigError(f"bkp_items[{index}].source is required")
        source = os.path.expanduser(source.strip())
        if not os.path.isabs(source):
            raise ConfigError(f"bkp_items[{index}].source must be an absolute path, got {source!r}")

        destination = entry.get('destination') or default_destination(source)
        if not isinstance(destination, str) or not destination or not validate_relative_path(destination):
            raise ConfigError(
                f"bkp_items[{index}].destination must be a relative path inside the backup, "
                f"got {destination!r}"
            )

        items.append(BackupItem(
            source=source,
            destination=destination,
            include=_pattern_list(entry.get('include'), 'include', index),
            exclude=_pattern_list(entry.get('exclude'), 'exclude', index),
        ))

    return items


def parse_schedule(data: Optional[Dict[str, Any]]) -> Optional[Schedule]:
    """Validate the optional 'schedule' section."""
    if not data:
        return None
    if not isinstance(data, dict):
        raise ConfigError("'schedule' must be a mapping")

    frequency = str(data.get('frequency', 'daily')).lower()
    if frequency not in Config.SCHEDULE_FREQUENCIES:
        raise ConfigError(
            f"'schedule.frequency' must be one of {list(Config.SCHEDULE_FREQUENCIES)}, got {frequency!r}"
        )

    time_of_the_day = data.get('time_of_the_day', 0)
    if isinstance(time_of_the_day, bool) or not isinstance(time_of_the_day, int) or not 0 <= time_of_the_day <= 23:
        raise ConfigError(f"'schedule.time_of_the_day' must be an hour between 0 and 23, got {time_of_the_day!r}")

    day_of_the_week = None
    if frequency == 'weekly':
        day_of_the_week = str(data.get('day_of_the_week', '')).lower()
        if day_of_the_week not in Config.WEEKDAYS:
            raise ConfigError(f"'schedule.day_of_the_week' must be a weekday name, got {day_of_the_week!r}")

    day_of_the_month = None
    if frequency == 'monthly':
        day_of_the_month = data.get('day_of_the_month', 1)
        if isinstance(day_of_the_month, bool) or not isinstance(day_of_the_month, int) or not 1 <= day_of_the_month <= 31:
            raise ConfigError(f"'schedule.day_of_the_month' must be between 1 and 31, got {day_of_the_month!r}")

    return Schedule(
        frequency=frequency,
        time_of_the_day=time_of_the_day,
        day_of_the_week=day_of_the_week,
        day_of_the_month=day_of_the_month,
    )
