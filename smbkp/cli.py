"""
Command-line entry point for Simple Backup.

Resolves the backup destination and configuration file, reviews the
configuration with the operator and runs the backup once or on schedule.
"""

import argparse
import os
from typing import List, Optional, Tuple

from smbkp import configure_logging
from smbkp.backup.executor import BackupAbortedError, BackupExecutor
from smbkp.config import Config, ConfigError, load_config
from smbkp.console import Console
from smbkp.models import BackupConfig
from smbkp.scheduler import init_scheduler, start_scheduler
from smbkp.utils.disk import (
    DestinationError,
    find_backup_destination,
    format_bytes,
    get_available_drives,
    get_free_space,
)


EXIT_OK = 0
EXIT_FAILURE = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='smbkp',
        description='Simple Backup: copy configured files and folders to a timestamped backup directory.',
        epilog=(
            f"If --bkp-dest is not provided, the first drive/mount that contains "
            f"'{Config.CONFIG_FILE_DEFAULT}' in its root directory is used."
        ),
    )
    parser.add_argument('--config', default='', help='Path to configuration file.')
    parser.add_argument(
        '--bkp-dest', default='',
        help='Backup destination drive or mount. Required if --config is specified.'
    )
    parser.add_argument(
        '--exit-on-error', action='store_true',
        help='Stop on the first item that fails to copy.'
    )
    parser.add_argument('--non-interactive', action='store_true', help='Skip all user prompts.')
    parser.add_argument(
        '--run-once', action=argparse.BooleanOptionalAction, default=True,
        help='Run backup once and exit (ignores schedule).'
    )
    parser.add_argument('--log-dir', default=Config.LOG_DIR, help='Write a rotating log file to this directory.')
    parser.add_argument('--debug', action='store_true', help='Print diagnostic log messages.')
    parser.add_argument('--version', action='version', version=f"Simple Backup v{Config.VERSION}")
    return parser


def resolve_backup_target(bkp_dest: str, config_file: str, console: Console) -> Tuple[str, str, BackupConfig]:
    """
    Work out the destination and config file from the flags.

    Returns:
        Tuple (bkp_dest, config_file, config)

    Raises:
        DestinationError: If no usable destination is found
        ConfigError: If the configuration cannot be loaded
    """
    if bkp_dest:
        console.plain(f"Trying to access specified backup destination {bkp_dest!r}... ", newline=False)
        if not os.path.isdir(bkp_dest):
            console.blank()
            raise DestinationError(f"{bkp_dest!r}: no such directory")
        console.ok()

    if config_file:
        if not bkp_dest:
            raise ConfigError("'--bkp-dest' is not provided, but it is required when '--config' is specified")
        console.plain(f"Reading specified config file {config_file!r}... ", newline=False)
        config = load_config(config_file, console)
        console.ok()
        return bkp_dest, config_file, config

    if not bkp_dest:
        console.info("'--bkp-dest' is not specified.")
        console.plain("Retrieving available drives and common mount points... ", newline=False)
        drives = get_available_drives()
        console.ok()
        for drive in drives:
            console.sub(f"  {drive}")

        console.plain(
            f"Searching for {Config.CONFIG_FILE_DEFAULT!r} in the root of available drives and mount points... ",
            newline=False
        )
        bkp_dest = find_backup_destination(drives, Config.CONFIG_FILE_DEFAULT)
        if bkp_dest is None:
            console.blank()
            raise DestinationError(
                f"no backup destination found. Place '{Config.CONFIG_FILE_DEFAULT}' in the root of the "
                "destination drive or use the --bkp-dest flag"
            )
        console.ok()
    else:
        console.info("'--config' is not specified. Assuming default config file in the root of backup destination.")

    config_file = os.path.join(bkp_dest, Config.CONFIG_FILE_DEFAULT)
    console.plain(f"Reading config file {config_file!r}... ", newline=False)
    config = load_config(config_file, console)
    console.ok()
    return bkp_dest, config_file, config


def review_config(
    config: BackupConfig,
    config_file: str,
    bkp_dest: str,
    console: Console,
    args: argparse.Namespace
) -> bool:
    """
    Show the configuration and ask for confirmation.

    Returns:
        True if the backup should proceed

    Raises:
        DestinationError: If free space is below the configured minimum
    """
    console.blank()
    console.signature("========  Backup Configuration Review  ========")
    console.blank()
    console.plain(f"Config file: {config_file}")
    console.plain(f"Backup destination: {os.path.join(bkp_dest, config.bkp_dest_dir)}")
    console.plain(f"Minimum required free space: {config.retention.min_free_space}")

    try:
        available = get_free_space(bkp_dest)
    except OSError as e:
        raise DestinationError(f"reading free space: {e}") from e
    console.plain(f"Available free space: {format_bytes(available)}")
    if available < config.retention.min_free_space_bytes:
        raise DestinationError(
            f"available free space ({format_bytes(available)}) is less than "
            f"required minimum ({config.retention.min_free_space})"
        )

    console.plain(f"Backups to keep: {config.retention.backups_to_keep}")
    console.plain(f"Run once: {args.run_once}")
    console.plain(f"Non-interactive: {args.non_interactive}")
    console.plain(f"Exit on error: {args.exit_on_error}")
    if config.schedule is not None:
        console.plain(f"Schedule: {config.schedule.frequency} at {config.schedule.time_of_the_day:02d}:00")
    console.blank()

    console.plain(f"Items to backup: {len(config.bkp_items)}")
    if not config.bkp_items:
        console.warn("No items listed under 'bkp_items' in the config file, nothing to backup. Exiting.")
        return False

    for index, item in enumerate(config.bkp_items, start=1):
        console.plain(f"\n  [{index}] Source: {item.source}")
        console.plain(f"      Destination: {item.destination}")
        if item.include:
            console.plain(f"      Include: {', '.join(item.include)}")
        if item.exclude:
            console.plain(f"      Exclude: {', '.join(item.exclude)}")

    if args.non_interactive:
        return True

    answer = console.prompt('Proceed with backup? (only "yes" will be accepted)')
    if answer != 'yes':
        console.warn("Backup cancelled by user.")
        return False
    return True


def main(argv: Optional[List[str]] = None, console: Optional[Console] = None) -> int:
    """
    Run the command line tool.

    Returns:
        Process exit code: 0 on success or cancel, 1 on any failure
    """
    args = build_parser().parse_args(argv)
    configure_logging(args.log_dir, args.debug)
    console = console or Console()

    try:
        bkp_dest, config_file, config = resolve_backup_target(args.bkp_dest, args.config, console)
        if not review_config(config, config_file, bkp_dest, console, args):
            return EXIT_OK
    except (ConfigError, DestinationError) as e:
        console.error(f"Failed to initialize application: {e}")
        return EXIT_FAILURE

    if not args.run_once and config.schedule is not None:
        init_scheduler(config, bkp_dest, console, exit_on_error=args.exit_on_error)
        start_scheduler(console)
        return EXIT_OK

    executor = BackupExecutor(
        config,
        bkp_dest,
        console=console,
        exit_on_error=args.exit_on_error,
        non_interactive=args.non_interactive
    )
    try:
        summary = executor.execute()
    except (DestinationError, BackupAbortedError) as e:
        console.error(f"Backup failed: {e}")
        return EXIT_FAILURE

    return EXIT_OK if summary.success else EXIT_FAILURE
