from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from screenreader.core.db import get_session_factory
from screenreader.core.settings import Settings, get_settings
from screenreader.models.enums import GlucoseUnit
from screenreader.models.reading import GlucoseReading
from screenreader.services.reading_repository import ReadingRepository

router = APIRouter()


class ReadingStats(BaseModel):
    hours: int
    total_readings: int
    low_percent: float
    in_range_percent: float
    high_percent: float
    average: Optional[float] = None
    unit: GlucoseUnit
    low_threshold: int
    high_threshold: int


def get_repository() -> ReadingRepository:
    try:
        return ReadingRepository(get_session_factory())
    except RuntimeError as exc:
        raise HTTPException(status_code=503, detail="Database not initialized") from exc


@router.get("/latest", response_model=GlucoseReading, summary="Most recent accepted reading")
async def latest_reading(repo: ReadingRepository = Depends(get_repository)) -> GlucoseReading:
    reading = await repo.latest()
    if reading is None:
        raise HTTPException(status_code=404, detail="No readings yet")
    return reading


@router.get("", response_model=list[GlucoseReading], summary="Recent readings, newest first")
async def list_readings(
    limit: int = Query(default=50, ge=1, le=1000),
    repo: ReadingRepository = Depends(get_repository),
) -> list[GlucoseReading]:
    return await repo.latest_n(limit)


@router.get("/stats", response_model=ReadingStats, summary="Time in range and average")
async def reading_stats(
    hours: int = Query(default=24, ge=1, le=24 * 90),
    repo: ReadingRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> ReadingStats:
    display = settings.display
    unit = GlucoseUnit(display.unit)
    tir = await repo.time_in_range(hours, display.low_threshold, display.high_threshold)
    average = await repo.average(hours, unit)
    return ReadingStats(
        hours=hours,
        total_readings=tir.total_readings,
        low_percent=round(tir.low_percent, 1),
        in_range_percent=round(tir.in_range_percent, 1),
        high_percent=round(tir.high_percent, 1),
        average=round(average, 1) if average is not None else None,
        unit=unit,
        low_threshold=display.low_threshold,
        high_threshold=display.high_threshold,
    )


class UploadQueue(BaseModel):
    pending: int
    total: int


@router.get("/queue", response_model=UploadQueue, summary="Readings waiting for the Nightscout sync")
async def upload_queue(repo: ReadingRepository = Depends(get_repository)) -> UploadQueue:
    pending = await repo.unsynced()
    return UploadQueue(pending=len(pending), total=await repo.count())


@router.delete("/queue", summary="Drop pending readings from the Nightscout sync")
async def clear_upload_queue(repo: ReadingRepository = Depends(get_repository)) -> dict:
    """The readings stay stored locally; they are just never uploaded."""
    return {"cleared": await repo.clear_upload_queue()}
