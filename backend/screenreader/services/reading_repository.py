import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from screenreader.models.enums import GlucoseUnit, RangeStatus
from screenreader.models.reading import GlucoseReading
from screenreader.models.reading_row import GlucoseReadingRow, to_naive_utc
from screenreader.models.schemas import entry_from_reading
from screenreader.services.nightscout_client import NightscoutClient

logger = logging.getLogger(__name__)

CLEARED_MARKER = "cleared"
BULK_UPLOAD_MARKER = "bulk-upload"


@dataclass(frozen=True)
class TimeInRangeStats:
    low_percent: float
    in_range_percent: float
    high_percent: float
    total_readings: int


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReadingRepository:
    """Local store of accepted readings and their Nightscout upload state."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def insert(self, reading: GlucoseReading) -> int:
        async with self.session_factory() as session:
            row = GlucoseReadingRow.from_reading(reading)
            session.add(row)
            await session.commit()
            logger.debug(f"Stored reading {row.id}: {reading.value} {reading.unit.value}")
            return row.id

    async def latest(self) -> Optional[GlucoseReading]:
        rows = await self.latest_n(1)
        return rows[0] if rows else None

    async def latest_n(self, limit: int) -> list[GlucoseReading]:
        async with self.session_factory() as session:
            stmt = select(GlucoseReadingRow).order_by(GlucoseReadingRow.timestamp.desc()).limit(limit)
            result = await session.execute(stmt)
            return [row.to_reading() for row in result.scalars().all()]

    async def in_range(self, start: datetime, end: datetime) -> list[GlucoseReading]:
        async with self.session_factory() as session:
            stmt = (
                select(GlucoseReadingRow)
                .where(GlucoseReadingRow.timestamp.between(to_naive_utc(start), to_naive_utc(end)))
                .order_by(GlucoseReadingRow.timestamp.asc())
            )
            result = await session.execute(stmt)
            return [row.to_reading() for row in result.scalars().all()]

    async def unsynced(self, limit: Optional[int] = None) -> list[tuple[int, GlucoseReading]]:
        async with self.session_factory() as session:
            stmt = (
                select(GlucoseReadingRow)
                .where(GlucoseReadingRow.uploaded_to_nightscout.is_(False))
                .order_by(GlucoseReadingRow.timestamp.desc())
            )
            if limit:
                stmt = stmt.limit(limit)
            result = await session.execute(stmt)
            return [(row.id, row.to_reading()) for row in result.scalars().all()]

    async def mark_uploaded(self, ids: list[int], nightscout_id: str = "") -> None:
        if not ids:
            return
        async with self.session_factory() as session:
            await session.execute(
                update(GlucoseReadingRow)
                .where(GlucoseReadingRow.id.in_(ids))
                .values(uploaded_to_nightscout=True, nightscout_id=nightscout_id)
            )
            await session.commit()

    async def count(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(func.count()).select_from(GlucoseReadingRow))
            return int(result.scalar_one())

    async def average(
        self, hours: int, unit: GlucoseUnit = GlucoseUnit.MG_DL, now: Optional[datetime] = None
    ) -> Optional[float]:
        """Mean of the stored values recorded in `unit` over the last `hours`."""
        end = now or _utcnow()
        start = end - timedelta(hours=hours)
        async with self.session_factory() as session:
            stmt = select(func.avg(GlucoseReadingRow.value)).where(
                GlucoseReadingRow.timestamp.between(to_naive_utc(start), to_naive_utc(end)),
                GlucoseReadingRow.unit == unit.value,
            )
            result = await session.execute(stmt)
            value = result.scalar_one_or_none()
            return float(value) if value is not None else None

    async def time_in_range(
        self, hours: int, low: float = 70, high: float = 180, now: Optional[datetime] = None
    ) -> TimeInRangeStats:
        end = now or _utcnow()
        readings = await self.in_range(end - timedelta(hours=hours), end)
        if not readings:
            return TimeInRangeStats(0.0, 0.0, 0.0, 0)

        counts = {status: 0 for status in RangeStatus}
        for reading in readings:
            counts[reading.range_status(low, high)] += 1

        total = len(readings)
        return TimeInRangeStats(
            low_percent=counts[RangeStatus.LOW] / total * 100,
            in_range_percent=counts[RangeStatus.IN_RANGE] / total * 100,
            high_percent=counts[RangeStatus.HIGH] / total * 100,
            total_readings=total,
        )

    async def cleanup(self, days: int = 90, now: Optional[datetime] = None) -> int:
        threshold = (now or _utcnow()) - timedelta(days=days)
        async with self.session_factory() as session:
            result = await session.execute(
                delete(GlucoseReadingRow).where(GlucoseReadingRow.timestamp < to_naive_utc(threshold))
            )
            await session.commit()
            deleted = result.rowcount or 0
        if deleted:
            logger.info(f"Deleted {deleted} readings older than {days} days")
        return deleted

    async def clear_upload_queue(self) -> int:
        """Marks every pending reading as handled without uploading it."""
        async with self.session_factory() as session:
            result = await session.execute(
                update(GlucoseReadingRow)
                .where(GlucoseReadingRow.uploaded_to_nightscout.is_(False))
                .values(uploaded_to_nightscout=True, nightscout_id=CLEARED_MARKER)
            )
            await session.commit()
            cleared = result.rowcount or 0
        logger.info(f"Cleared {cleared} readings from the upload queue")
        return cleared

    async def sync_unsynced(self, client: NightscoutClient) -> int:
        """
        Bulk-uploads pending readings as entries. Rows are only marked once the
        upload succeeded; a NightscoutError leaves them queued and propagates.
        """
        pending = await self.unsynced()
        if not pending:
            return 0
        await client.upload_entries(entry_from_reading(reading) for _, reading in pending)
        await self.mark_uploaded([row_id for row_id, _ in pending], BULK_UPLOAD_MARKER)
        logger.info(f"Synced {len(pending)} pending readings to Nightscout")
        return len(pending)
