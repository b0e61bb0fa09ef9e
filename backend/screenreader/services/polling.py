"""
One polling cycle of the screen reader and the error backoff around it.

Cycles must not overlap: the reader clicks through the host UI and the
deduplicators and event detector hold single-writer state. The scheduler
runs the cycle job with max_instances=1.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from screenreader.core.settings import Settings
from screenreader.models.reading import GlucoseReading
from screenreader.models.schemas import carb_treatment, device_status_from_reading, entry_from_reading
from screenreader.models.ui import UiNode
from screenreader.services.age_reconciler import AgeReconciler
from screenreader.services.dedup import BolusDeduplicator, MealDeduplicator
from screenreader.services.event_detector import EventDetector
from screenreader.services.graph_ocr import latest_carb_treatment
from screenreader.services.main_screen import is_camaps_package
from screenreader.services.nightscout_client import NightscoutClient, NightscoutError
from screenreader.services.reader import CamAPSReader
from screenreader.services.reading_repository import ReadingRepository
from screenreader.utils.timezone import get_reader_timezone, to_local

logger = logging.getLogger(__name__)

BASE_RETRY_DELAY = timedelta(minutes=1)
MAX_RETRY_DELAY = timedelta(minutes=15)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def backoff_delay(consecutive_errors: int) -> timedelta:
    """1, 2, 4, 8 minutes, then capped at 15."""
    if consecutive_errors <= 0:
        return timedelta(0)
    seconds = BASE_RETRY_DELAY.total_seconds() * (2 ** (consecutive_errors - 1))
    return min(timedelta(seconds=seconds), MAX_RETRY_DELAY)


@dataclass
class CycleResult:
    reading: Optional[GlucoseReading] = None
    skipped: Optional[str] = None
    uploaded: bool = False
    age_checked: bool = False
    meals_uploaded: int = 0


class PollingService:
    def __init__(
        self,
        reader: CamAPSReader,
        settings: Settings,
        repository: Optional[ReadingRepository] = None,
        nightscout: Optional[NightscoutClient] = None,
        clock: Clock = _utcnow,
        tz: Optional[ZoneInfo] = None,
    ) -> None:
        self.reader = reader
        self.settings = settings
        self.repository = repository
        self.nightscout = nightscout
        self._clock = clock
        self.tz = tz or get_reader_timezone(settings.reader.timezone)

        self.bolus_dedup = BolusDeduplicator()
        self.meal_dedup = MealDeduplicator()
        self.event_detector = EventDetector()
        self.age_reconciler = (
            AgeReconciler(nightscout, settings.reader.age_tolerance_hours) if nightscout is not None else None
        )

        self.consecutive_errors = 0
        self.last_reading_at: Optional[datetime] = None
        self.last_age_check_at: Optional[datetime] = None
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def stop(self) -> None:
        logger.info("Polling service stopped")
        self._stopped = True

    def next_delay(self) -> timedelta:
        if self.consecutive_errors:
            return backoff_delay(self.consecutive_errors)
        return timedelta(minutes=self.settings.reader.reading_interval_minutes)

    async def run_cycle(self) -> CycleResult:
        if self._stopped:
            return CycleResult(skipped="stopped")

        now = self._clock()
        try:
            result = await self._cycle(now)
        except Exception as e:
            self.consecutive_errors += 1
            logger.error(
                f"Polling cycle failed (error #{self.consecutive_errors}), "
                f"next attempt in {self.next_delay().total_seconds():.0f}s: {e}",
                exc_info=True,
            )
            raise
        self.consecutive_errors = 0
        return result

    async def _cycle(self, now: datetime) -> CycleResult:
        cfg = self.settings.reader

        if self.last_reading_at is not None:
            elapsed = now - self.last_reading_at
            if elapsed < timedelta(seconds=cfg.min_reading_interval_seconds):
                logger.debug(f"Last reading {elapsed.total_seconds():.0f}s ago, skipping")
                return CycleResult(skipped="too_soon")

        root = await self.reader.acquire_root()
        if root is None:
            return CycleResult(skipped="no_window")

        package = await self.reader.host.active_package()
        if not (package == cfg.target_package or is_camaps_package(package)):
            logger.info(f"Active window is {package!r}, not CamAPS FX")
            return CycleResult(skipped="wrong_package")

        reading = await self.reader.extract_data(root, now=now)
        if reading is None:
            return CycleResult(skipped="no_reading")

        self.last_reading_at = now
        reading = self.bolus_dedup.filter(reading, now)
        result = CycleResult(reading=reading)

        row_id = await self.repository.insert(reading) if self.repository is not None else None

        if self.nightscout is not None:
            result.uploaded = await self._upload_reading(reading, row_id)

            # The dialog was opened and closed since `root` was captured
            if self._age_check_due(now):
                fresh = await self.reader.acquire_root()
                if fresh is None:
                    logger.warning("No window for the age check, retrying next cycle")
                else:
                    await self._check_ages(fresh, now)
                    result.age_checked = True

            if cfg.graph_exploration_enabled:
                fresh = await self.reader.acquire_root()
                if fresh is None:
                    logger.warning("No window for the graph, skipping")
                else:
                    result.meals_uploaded = await self._explore_graph(fresh, now)

        return result

    async def _upload_reading(self, reading: GlucoseReading, row_id: Optional[int]) -> bool:
        try:
            await self.nightscout.upload_entries([entry_from_reading(reading)])
        except NightscoutError as e:
            logger.warning(f"Reading upload failed, left queued for sync: {e}")
            return False

        # The entry is in; a devicestatus failure must not re-queue it
        if row_id is not None and self.repository is not None:
            await self.repository.mark_uploaded([row_id])

        try:
            await self.nightscout.upload_device_status(device_status_from_reading(reading))
        except NightscoutError as e:
            logger.warning(f"Device status upload failed: {e}")

        events = self.event_detector.detect(reading)
        if events:
            try:
                await self.nightscout.upload_treatments(events)
            except NightscoutError as e:
                logger.warning(f"Pump event upload failed: {e}")
        return True

    def _age_check_due(self, now: datetime) -> bool:
        if self.last_age_check_at is None:
            return True
        interval = timedelta(minutes=self.settings.reader.age_check_interval_minutes)
        return now - self.last_age_check_at >= interval

    async def _check_ages(self, root: UiNode, now: datetime) -> None:
        try:
            info = await self.reader.extract_age_info(root, now)
        finally:
            self.last_age_check_at = now

        if info is None or info.is_empty:
            logger.info("No SAGE/IAGE found in menu")
            return

        if info.sensor_info is not None:
            try:
                await self.age_reconciler.check_and_update_sage(info.sensor_info)
            except NightscoutError as e:
                logger.error(f"SAGE check failed: {e}")

        if info.insulin_info is not None:
            try:
                await self.age_reconciler.check_and_update_iage(info.insulin_info)
            except NightscoutError as e:
                logger.error(f"IAGE check failed: {e}")

    async def _explore_graph(self, root: UiNode, now: datetime) -> int:
        local_now = to_local(now, self.tz)
        treatments = await self.reader.explore_graph(root, local_now)
        latest = latest_carb_treatment(treatments)
        if latest is None:
            return 0

        if self.meal_dedup.is_duplicate(latest.carbs_grams, now):
            logger.debug(f"Meal {latest.carbs_grams}g already sent")
            return 0

        try:
            await self.nightscout.upload_treatments(
                [carb_treatment(latest.timestamp, latest.carbs_grams, latest.insulin_units)]
            )
        except NightscoutError as e:
            logger.warning(f"Meal upload failed: {e}")
            return 0

        self.meal_dedup.mark_sent(latest.carbs_grams, now)
        return 1
