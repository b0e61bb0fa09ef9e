import logging
from datetime import datetime, timezone
from typing import Optional

from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from screenreader import jobs_state
from screenreader.core.db import get_session_factory
from screenreader.core.scheduler import delay_next_run, init_scheduler, remove_task, schedule_task
from screenreader.core.settings import Settings, get_settings
from screenreader.jobs_state import CLEANUP_JOB_ID, READING_JOB_ID, SYNC_JOB_ID
from screenreader.services.host import OcrEngine, UiHost
from screenreader.services.nightscout_client import NightscoutClient, client_from_config
from screenreader.services.polling import PollingService
from screenreader.services.reader import CamAPSReader
from screenreader.services.reading_repository import ReadingRepository

logger = logging.getLogger(__name__)

SYNC_INTERVAL_MINUTES = 15

_polling: Optional[PollingService] = None
_nightscout: Optional[NightscoutClient] = None


def get_polling_service() -> Optional[PollingService]:
    return _polling


def get_nightscout_client() -> Optional[NightscoutClient]:
    return _nightscout


def _repository() -> ReadingRepository:
    return ReadingRepository(get_session_factory())


async def _run_reading_cycle_task():
    """
    Background Task: one screen read. On failure the next run is pushed back
    by the polling service's backoff delay.
    """
    polling = _polling
    if polling is None:
        logger.debug("No UI host attached, skipping reading cycle")
        return None
    try:
        return await polling.run_cycle()
    finally:
        if polling.stopped:
            remove_task(READING_JOB_ID)
        elif polling.consecutive_errors:
            delay_next_run(READING_JOB_ID, datetime.now(timezone.utc) + polling.next_delay())


async def run_reading_cycle():
    await jobs_state.run_job(READING_JOB_ID, _run_reading_cycle_task)


async def _run_nightscout_sync_task():
    """
    Background Task: uploads readings whose live upload failed.
    """
    if _nightscout is None:
        logger.debug("Nightscout disabled, skipping sync")
        return
    synced = await _repository().sync_unsynced(_nightscout)
    if synced:
        logger.info(f"Nightscout sync uploaded {synced} queued readings")


async def run_nightscout_sync():
    await jobs_state.run_job(SYNC_JOB_ID, _run_nightscout_sync_task)


async def _run_data_cleanup_task():
    """
    Background Task: drops readings past the retention window.
    """
    settings = get_settings()
    logger.info("Running Data Cleanup Job...")
    deleted = await _repository().cleanup(days=settings.data.retention_days)
    logger.info(f"Cleanup finished. Deleted {deleted} readings.")


async def run_data_cleanup():
    await jobs_state.run_job(CLEANUP_JOB_ID, _run_data_cleanup_task)


def attach_host(host: UiHost, ocr: Optional[OcrEngine] = None, settings: Optional[Settings] = None) -> PollingService:
    """
    Wires a UI automation host into a polling service and schedules the
    reading cycle at the configured interval.
    """
    global _polling
    settings = settings or get_settings()
    reader = CamAPSReader(host, config=settings.reader, ocr=ocr)
    _polling = PollingService(reader, settings, repository=_repository(), nightscout=_nightscout)

    schedule_task(
        run_reading_cycle,
        IntervalTrigger(minutes=settings.reader.reading_interval_minutes),
        READING_JOB_ID,
    )
    return _polling


def setup_periodic_tasks(settings: Optional[Settings] = None):
    global _nightscout
    settings = settings or get_settings()
    init_scheduler()

    _nightscout = client_from_config(settings.nightscout)
    if _nightscout is None:
        logger.info("Nightscout sync disabled")
    else:
        schedule_task(run_nightscout_sync, IntervalTrigger(minutes=SYNC_INTERVAL_MINUTES), SYNC_JOB_ID)

    schedule_task(run_data_cleanup, CronTrigger(hour=4, minute=0), CLEANUP_JOB_ID)


async def shutdown_tasks():
    global _polling, _nightscout
    if _polling is not None:
        _polling.stop()
        _polling = None
    if _nightscout is not None:
        await _nightscout.aclose()
        _nightscout = None
