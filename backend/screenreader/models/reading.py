from datetime import datetime
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from screenreader.models.enums import GlucoseTrend, GlucoseUnit, RangeStatus

MGDL_PER_MMOL = 18.0182

MIN_PLAUSIBLE_VALUE = 40
MAX_PLAUSIBLE_VALUE = 400

# Detail dialog keys and the reading field types they land in.
DETAIL_FIELDS: dict[str, type] = {
    "active_insulin": float,
    "basal_rate": float,
    "reservoir": float,
    "pump_battery": int,
    "bolus_amount": float,
    "bolus_minutes_ago": int,
    "pump_connection_minutes_ago": int,
    "sensor_data_minutes_ago": int,
    "glucose_target": float,
    "insulin_today": float,
    "insulin_yesterday": float,
}


def convert(value: float, from_unit: GlucoseUnit, to_unit: GlucoseUnit) -> float:
    if from_unit == to_unit:
        return value
    if to_unit == GlucoseUnit.MMOL_L:
        return value / MGDL_PER_MMOL
    return value * MGDL_PER_MMOL


class GlucoseReading(BaseModel):
    """
    One accepted glucose value as shown by the pump app, optionally enriched
    with the fields of the detail dialog.

    Construction is the single place where the plausibility bound is checked:
    a value that is not strictly positive or lies outside [40, 400] raises
    `pydantic.ValidationError`.
    """

    model_config = ConfigDict(frozen=True)

    value: float
    unit: GlucoseUnit = GlucoseUnit.MG_DL
    trend: GlucoseTrend = GlucoseTrend.FLAT
    source: str
    timestamp: datetime

    active_insulin: Optional[float] = None
    basal_rate: Optional[float] = None
    reservoir: Optional[float] = None
    pump_battery: Optional[int] = None
    bolus_amount: Optional[float] = None
    bolus_minutes_ago: Optional[int] = Field(default=None, ge=0)
    pump_connection_minutes_ago: Optional[int] = None
    sensor_data_minutes_ago: Optional[int] = None
    glucose_target: Optional[float] = None
    insulin_today: Optional[float] = None
    insulin_yesterday: Optional[float] = None

    @field_validator("value")
    @classmethod
    def check_plausible(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"glucose value must be positive, got {v}")
        if not MIN_PLAUSIBLE_VALUE <= v <= MAX_PLAUSIBLE_VALUE:
            raise ValueError(
                f"glucose value {v} outside plausible range [{MIN_PLAUSIBLE_VALUE}, {MAX_PLAUSIBLE_VALUE}]"
            )
        return v

    @property
    def value_mgdl(self) -> int:
        return int(round(self.value_in(GlucoseUnit.MG_DL)))

    def value_in(self, unit: GlucoseUnit) -> float:
        return convert(self.value, self.unit, unit)

    def formatted_value(self, unit: Optional[GlucoseUnit] = None) -> str:
        target = unit or self.unit
        converted = self.value_in(target)
        if target == GlucoseUnit.MMOL_L:
            return f"{converted:.1f}"
        return str(int(round(converted)))

    def range_status(self, low: float = 70, high: float = 180) -> RangeStatus:
        """Classifies the reading against mg/dL thresholds."""
        mgdl = self.value_in(GlucoseUnit.MG_DL)
        if mgdl < low:
            return RangeStatus.LOW
        if mgdl > high:
            return RangeStatus.HIGH
        return RangeStatus.IN_RANGE

    def with_details(self, details: Mapping[str, Any]) -> "GlucoseReading":
        updates: dict[str, Any] = {}
        for key, caster in DETAIL_FIELDS.items():
            raw = details.get(key)
            if raw is None:
                continue
            updates[key] = caster(raw)
        if not updates:
            return self
        return self.model_copy(update=updates)

    def without_bolus(self) -> "GlucoseReading":
        return self.model_copy(update={"bolus_amount": None, "bolus_minutes_ago": None})

    @property
    def has_bolus(self) -> bool:
        return self.bolus_amount is not None and self.bolus_minutes_ago is not None
