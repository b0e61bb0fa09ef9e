from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class GraphTreatment:
    timestamp: datetime
    insulin_units: Optional[float] = None
    carbs_grams: Optional[float] = None

    @property
    def has_insulin(self) -> bool:
        return self.insulin_units is not None and self.insulin_units > 0

    @property
    def has_carbs(self) -> bool:
        return self.carbs_grams is not None and self.carbs_grams > 0

    @property
    def has_both(self) -> bool:
        return self.has_insulin and self.has_carbs


@dataclass(frozen=True)
class TimeLabel:
    hour: int
    minute: int
    x_center: int

    @property
    def minutes_of_day(self) -> int:
        return self.hour * 60 + self.minute
