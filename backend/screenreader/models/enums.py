from enum import Enum
from typing import Optional


class GlucoseUnit(str, Enum):
    MG_DL = "mg/dL"
    MMOL_L = "mmol/L"


class GlucoseTrend(str, Enum):
    DOUBLE_UP = "DoubleUp"
    SINGLE_UP = "SingleUp"
    FORTY_FIVE_UP = "FortyFiveUp"
    FLAT = "Flat"
    FORTY_FIVE_DOWN = "FortyFiveDown"
    SINGLE_DOWN = "SingleDown"
    DOUBLE_DOWN = "DoubleDown"
    UNKNOWN = "NOT COMPUTABLE"

    @property
    def direction(self) -> str:
        """Nightscout direction string."""
        return self.value

    @property
    def arrow(self) -> str:
        return _ARROWS[self]

    @classmethod
    def from_string(cls, value: Optional[str]) -> "GlucoseTrend":
        """
        Accepts an arrow glyph, a Nightscout direction or an enum name.
        Anything unrecognised maps to UNKNOWN.
        """
        if not value:
            return cls.UNKNOWN
        raw = value.strip()
        for trend, glyphs in TREND_GLYPHS:
            if raw in glyphs:
                return trend
        key = raw.replace(" ", "").replace("_", "").lower()
        for trend in cls:
            if key in (trend.name.replace("_", "").lower(), trend.value.replace(" ", "").lower()):
                return trend
        return cls.UNKNOWN

    @classmethod
    def from_rate_of_change(cls, rate_mgdl_per_min: Optional[float]) -> "GlucoseTrend":
        if rate_mgdl_per_min is None:
            return cls.UNKNOWN
        if rate_mgdl_per_min >= 3:
            return cls.DOUBLE_UP
        if rate_mgdl_per_min >= 2:
            return cls.SINGLE_UP
        if rate_mgdl_per_min >= 1:
            return cls.FORTY_FIVE_UP
        if rate_mgdl_per_min > -1:
            return cls.FLAT
        if rate_mgdl_per_min > -2:
            return cls.FORTY_FIVE_DOWN
        if rate_mgdl_per_min > -3:
            return cls.SINGLE_DOWN
        return cls.DOUBLE_DOWN


# Double arrows come first: "↑↑" also contains "↑".
TREND_GLYPHS: tuple[tuple[GlucoseTrend, tuple[str, ...]], ...] = (
    (GlucoseTrend.DOUBLE_UP, ("↑↑", "⇈")),
    (GlucoseTrend.SINGLE_UP, ("↑", "⬆")),
    (GlucoseTrend.FORTY_FIVE_UP, ("↗", "⬈")),
    (GlucoseTrend.FLAT, ("→", "➡")),
    (GlucoseTrend.FORTY_FIVE_DOWN, ("↘", "⬊")),
    (GlucoseTrend.DOUBLE_DOWN, ("↓↓", "⇊")),
    (GlucoseTrend.SINGLE_DOWN, ("↓", "⬇")),
)

_ARROWS = {
    GlucoseTrend.DOUBLE_UP: "↑↑",
    GlucoseTrend.SINGLE_UP: "↑",
    GlucoseTrend.FORTY_FIVE_UP: "↗",
    GlucoseTrend.FLAT: "→",
    GlucoseTrend.FORTY_FIVE_DOWN: "↘",
    GlucoseTrend.SINGLE_DOWN: "↓",
    GlucoseTrend.DOUBLE_DOWN: "↓↓",
    GlucoseTrend.UNKNOWN: "?",
}


class RangeStatus(str, Enum):
    LOW = "low"
    IN_RANGE = "in_range"
    HIGH = "high"


class EventType(str, Enum):
    SENSOR_START = "Sensor Start"
    INSULIN_CHANGE = "Insulin Change"
    PUMP_BATTERY_CHANGE = "Pump Battery Change"
    CORRECTION_BOLUS = "Correction Bolus"
    MEAL_BOLUS = "Meal Bolus"
    CARB_CORRECTION = "Carb Correction"
