import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)

_scheduler: Optional[AsyncIOScheduler] = None


def init_scheduler() -> AsyncIOScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler()
        _scheduler.start()
        logger.info("Background Scheduler initialized.")
    return _scheduler


def get_scheduler() -> Optional[AsyncIOScheduler]:
    return _scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Background Scheduler stopped.")


def schedule_task(func, trigger, task_id, replace=True):
    if not _scheduler:
        raise RuntimeError("Scheduler not initialized")

    # A polling cycle clicks through the host UI; two cycles must never interleave.
    job = _scheduler.add_job(
        func,
        trigger,
        id=task_id,
        replace_existing=replace,
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"Scheduled task '{task_id}' with trigger: {trigger}")
    return job


def remove_task(task_id: str) -> None:
    if _scheduler and _scheduler.get_job(task_id):
        _scheduler.remove_job(task_id)
        logger.info(f"Removed task '{task_id}'")


def delay_next_run(task_id: str, next_run_time) -> None:
    """Moves the next fire time of an interval job, used for error backoff."""
    if _scheduler and _scheduler.get_job(task_id):
        _scheduler.modify_job(task_id, next_run_time=next_run_time)
        logger.info(f"Task '{task_id}' next run moved to {next_run_time}")
