"""Scheduler for automated jobs (overdue task reminders)."""

import logging
from collections import defaultdict
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from couplesync.core.config import settings
from couplesync.core.dates import format_in_timezone
from couplesync.core.notifier import LoggingNotifier, Notifier
from couplesync.core.scheduler_tracker import retry_job_with_backoff
from couplesync.domain.household_task import HouseholdTask
from couplesync.services import task_service


logger = logging.getLogger(__name__)

OVERDUE_REMINDERS_JOB_ID = "overdue_task_reminders"

# Global scheduler instance
scheduler = AsyncIOScheduler()

_notifier: Notifier = LoggingNotifier()


def _build_reminder_message(tasks: list[HouseholdTask]) -> str:
    lines = []
    for task in tasks:
        timezone = task.recurrence.timezone if task.recurrence else settings.default_timezone
        due = format_in_timezone(task.due_date, timezone, "%Y-%m-%d %H:%M") if task.due_date else "no date"
        lines.append(f"- {task.title} (due: {due})")

    return f"You have {len(tasks)} overdue task(s):\n" + "\n".join(lines)


async def send_overdue_task_reminders(*, notifier: Notifier | None = None, now: datetime | None = None) -> int:
    """Send one reminder per owner listing their overdue tasks.

    Returns:
        Number of owners that were notified successfully
    """
    target = notifier or _notifier
    overdue = await task_service.get_overdue_tasks(now=now)

    by_owner: dict[str, list[HouseholdTask]] = defaultdict(list)
    for task in overdue:
        by_owner[task.owner_id].append(task)

    sent = 0
    for owner_id, tasks in by_owner.items():
        if await target.notify(owner_id, _build_reminder_message(tasks)):
            sent += 1
        else:
            logger.warning("Overdue reminder not delivered", extra={"user_id": owner_id, "task_count": len(tasks)})

    logger.info("Overdue reminders sent", extra={"owners": len(by_owner), "delivered": sent, "tasks": len(overdue)})
    return sent


async def _run_overdue_task_reminders() -> None:
    await send_overdue_task_reminders()


def start_scheduler(notifier: Notifier | None = None) -> None:
    """Register jobs and start the scheduler.

    Args:
        notifier: Delivery backend for reminders (logs them when omitted)
    """
    global _notifier  # noqa: PLW0603
    if notifier is not None:
        _notifier = notifier

    if settings.enable_overdue_reminders:
        scheduler.add_job(
            retry_job_with_backoff,
            args=[_run_overdue_task_reminders, OVERDUE_REMINDERS_JOB_ID],
            trigger=CronTrigger(hour=settings.overdue_reminder_hour, minute=0),
            id=OVERDUE_REMINDERS_JOB_ID,
            name="Send overdue task reminders",
            replace_existing=True,
        )
    else:
        logger.info("Overdue reminders disabled")

    scheduler.start()
    logger.info("Scheduler started", extra={"jobs": [job.id for job in scheduler.get_jobs()]})


def stop_scheduler() -> None:
    """Stop the scheduler.

    Waits for running jobs to complete before shutting down.
    """
    if scheduler.running:
        scheduler.shutdown(wait=True)
    logger.info("Scheduler stopped")
