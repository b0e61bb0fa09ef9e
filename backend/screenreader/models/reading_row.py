from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from screenreader.core.db import Base
from screenreader.models.enums import GlucoseTrend, GlucoseUnit
from screenreader.models.reading import GlucoseReading


def to_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


class GlucoseReadingRow(Base):
    __tablename__ = "glucose_readings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    unit: Mapped[str] = mapped_column(String, nullable=False, default=GlucoseUnit.MG_DL.value)
    trend: Mapped[str] = mapped_column(String, nullable=False, default=GlucoseTrend.FLAT.value)
    source: Mapped[str] = mapped_column(String, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True, comment="Naive UTC")

    active_insulin: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    basal_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    reservoir: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    pump_battery: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    bolus_amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    bolus_minutes_ago: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    pump_connection_minutes_ago: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    sensor_data_minutes_ago: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    glucose_target: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    insulin_today: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    insulin_yesterday: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Sync Status
    uploaded_to_nightscout: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    nightscout_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    @classmethod
    def from_reading(cls, reading: GlucoseReading) -> "GlucoseReadingRow":
        data = reading.model_dump()
        data["unit"] = reading.unit.value
        data["trend"] = reading.trend.value
        data["timestamp"] = to_naive_utc(reading.timestamp)
        return cls(**data, uploaded_to_nightscout=False)

    def to_reading(self) -> GlucoseReading:
        ts = self.timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return GlucoseReading(
            value=self.value,
            unit=GlucoseUnit(self.unit),
            trend=GlucoseTrend(self.trend),
            source=self.source,
            timestamp=ts,
            active_insulin=self.active_insulin,
            basal_rate=self.basal_rate,
            reservoir=self.reservoir,
            pump_battery=self.pump_battery,
            bolus_amount=self.bolus_amount,
            bolus_minutes_ago=self.bolus_minutes_ago,
            pump_connection_minutes_ago=self.pump_connection_minutes_ago,
            sensor_data_minutes_ago=self.sensor_data_minutes_ago,
            glucose_target=self.glucose_target,
            insulin_today=self.insulin_today,
            insulin_yesterday=self.insulin_yesterday,
        )
