import logging
from datetime import timedelta
from typing import Optional

from screenreader.models.enums import EventType
from screenreader.models.reading import GlucoseReading
from screenreader.models.schemas import NightscoutTreatment, bolus_treatment, event_treatment

logger = logging.getLogger(__name__)

BATTERY_RISE_THRESHOLD = 10
RESERVOIR_RISE_THRESHOLD = 50
RECENT_BOLUS_MINUTES = 5


class EventDetector:
    """
    Infers pump events from consecutive readings: a battery that jumps up was
    replaced, a reservoir that jumps up was refilled. A bolus younger than five
    minutes is reported once as a correction bolus.
    """

    def __init__(self) -> None:
        self.last_battery: Optional[int] = None
        self.last_reservoir: Optional[float] = None

    def detect(self, reading: GlucoseReading) -> list[NightscoutTreatment]:
        events: list[NightscoutTreatment] = []

        if reading.pump_battery is not None:
            if self.last_battery is not None and reading.pump_battery > self.last_battery + BATTERY_RISE_THRESHOLD:
                events.append(
                    event_treatment(
                        EventType.PUMP_BATTERY_CHANGE,
                        reading.timestamp,
                        f"Battery changed: {self.last_battery}% -> {reading.pump_battery}%",
                    )
                )
            self.last_battery = reading.pump_battery

        if reading.reservoir is not None:
            if self.last_reservoir is not None and reading.reservoir > self.last_reservoir + RESERVOIR_RISE_THRESHOLD:
                events.append(
                    event_treatment(
                        EventType.INSULIN_CHANGE,
                        reading.timestamp,
                        f"Reservoir changed: {int(self.last_reservoir)} U -> {int(reading.reservoir)} U",
                    )
                )
            self.last_reservoir = reading.reservoir

        if (
            reading.bolus_amount is not None
            and reading.bolus_amount > 0
            and reading.bolus_minutes_ago is not None
            and reading.bolus_minutes_ago < RECENT_BOLUS_MINUTES
        ):
            at = reading.timestamp - timedelta(minutes=reading.bolus_minutes_ago)
            events.append(bolus_treatment(at, reading.bolus_amount))

        if events:
            logger.info("Detected pump events: %s", [e.eventType for e in events])
        return events
