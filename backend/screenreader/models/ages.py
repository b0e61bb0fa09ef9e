from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class SensorInfo:
    serial_number: Optional[str] = None
    sensor_start_time: Optional[datetime] = None
    sensor_end_time: Optional[datetime] = None
    duration_text: Optional[str] = None


@dataclass(frozen=True)
class InsulinInfo:
    fill_time: Optional[datetime] = None
    duration_text: Optional[str] = None


@dataclass(frozen=True)
class AgeInfo:
    """Result of one age menu visit. Replaces the previous one wholesale."""

    sensor_info: Optional[SensorInfo] = None
    insulin_info: Optional[InsulinInfo] = None

    @property
    def is_empty(self) -> bool:
        return self.sensor_info is None and self.insulin_info is None
