"""
APScheduler configuration for unattended Simple Backup runs.

Manages:
- Building a cron trigger from the 'schedule' section of the config
- Running the backup on that trigger (always non-interactive)
"""

import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from smbkp.backup.executor import BackupAbortedError, run_backup
from smbkp.console import Console
from smbkp.models import BackupConfig, Schedule
from smbkp.utils.disk import DestinationError


logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = None

BACKUP_JOB_ID = 'scheduled_backup'


def build_trigger(schedule: Schedule) -> CronTrigger:
    """
    Map a Schedule to a CronTrigger firing at the top of the configured hour.

    Args:
        schedule: Validated Schedule

    Returns:
        CronTrigger in the local timezone

    Raises:
        ValueError: If the frequency is unknown
    """
    if schedule.frequency == 'daily':
        return CronTrigger(hour=schedule.time_of_the_day, minute=0)
    if schedule.frequency == 'weekly':
        return CronTrigger(day_of_week=schedule.day_of_the_week[:3], hour=schedule.time_of_the_day, minute=0)
    if schedule.frequency == 'monthly':
        return CronTrigger(day=schedule.day_of_the_month, hour=schedule.time_of_the_day, minute=0)
    raise ValueError(f"Invalid schedule frequency: {schedule.frequency}")


def init_scheduler(config: BackupConfig, bkp_dest: str, console: Console, exit_on_error: bool = False):
    """
    Initialize the scheduler with the backup job.

    Args:
        config: Validated backup configuration (must have a schedule)
        bkp_dest: Backup destination drive or mount point
        console: Output context for scheduled runs
        exit_on_error: Passed through to each run

    Returns:
        The BlockingScheduler instance
    """
    global scheduler

    if scheduler is not None:
        return scheduler

    if config.schedule is None:
        raise ValueError("Configuration has no schedule")

    job_defaults = {
        'coalesce': True,  # Combine multiple pending runs into one
        'max_instances': 1,  # Only one run at a time
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    scheduler = BlockingScheduler(job_defaults=job_defaults)

    scheduler.add_job(
        func=_execute_backup_wrapper,
        args=[config, bkp_dest, console, exit_on_error],
        trigger=build_trigger(config.schedule),
        id=BACKUP_JOB_ID,
        name='Scheduled Backup',
        replace_existing=True
    )

    return scheduler


def start_scheduler(console: Console):
    """
    Start the scheduler. Blocks until the scheduler is shut down.
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    if scheduler.running:
        console.info("Scheduler already running")
        return

    for job in scheduler.get_jobs():
        console.info(f"Scheduled {job.name}: {job.trigger}")
    console.plain("Backup scheduler started. Press Ctrl+C to exit.")

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        stop_scheduler()


def stop_scheduler():
    """Stop the scheduler."""
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


def _execute_backup_wrapper(config: BackupConfig, bkp_dest: str, console: Console, exit_on_error: bool):
    """
    Run one scheduled backup.

    Scheduled runs never prompt. Failures are reported and the scheduler
    keeps running.
    """
    console.blank()
    console.signature("===========  Scheduled Backup Started  ===========")
    try:
        summary = run_backup(
            config,
            bkp_dest,
            console=console,
            exit_on_error=exit_on_error,
            non_interactive=True
        )
    except (DestinationError, BackupAbortedError) as e:
        console.error(f"Scheduled backup failed: {e}")
        return None

    logger.info(f"Scheduled backup finished: {len(summary.results)} item(s), {summary.failed_count} failed")
    return summary
