"""
The detail dialog keeps showing the last bolus for hours and the graph keeps
showing the last meal; both would be uploaded again on every cycle without
these filters. Each holds single-writer state and relies on polling cycles
never overlapping.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from screenreader.models.reading import GlucoseReading

logger = logging.getLogger(__name__)

BOLUS_WINDOW = timedelta(minutes=2)
MEAL_WINDOW = timedelta(minutes=30)


class BolusDeduplicator:
    def __init__(self, window: timedelta = BOLUS_WINDOW) -> None:
        self.window = window
        self._last: Optional[tuple[float, datetime]] = None

    def filter(self, reading: GlucoseReading, now: Optional[datetime] = None) -> GlucoseReading:
        """
        Returns the reading unchanged for a new bolus and strips the bolus
        fields when the same bolus was already seen. The bolus identity is its
        amount plus its implied delivery time (now minus minutes ago), so the
        growing "minutes ago" of one bolus across cycles is recognised.
        """
        if not reading.has_bolus:
            return reading

        now = now or reading.timestamp
        amount = reading.bolus_amount
        implied = now - timedelta(minutes=reading.bolus_minutes_ago)

        if self._last is not None:
            last_amount, last_time = self._last
            if last_amount == amount and abs(implied - last_time) < self.window:
                logger.debug("Bolus %s U at %s already saved, stripping", amount, implied)
                return reading.without_bolus()

        self._last = (amount, implied)
        logger.info("New bolus: %s U at %s", amount, implied)
        return reading


class MealDeduplicator:
    def __init__(self, window: timedelta = MEAL_WINDOW) -> None:
        self.window = window
        self._last_grams: Optional[float] = None
        self._last_sent: Optional[datetime] = None

    def is_duplicate(self, grams: float, now: datetime) -> bool:
        if self._last_grams is None or self._last_sent is None:
            return False
        return grams == self._last_grams and abs(now - self._last_sent) < self.window

    def mark_sent(self, grams: float, now: datetime) -> None:
        self._last_grams = grams
        self._last_sent = now
