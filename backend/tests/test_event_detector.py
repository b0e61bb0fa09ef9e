from datetime import datetime, timedelta, timezone

from screenreader.models.reading import GlucoseReading
from screenreader.services.event_detector import EventDetector

T0 = datetime(2025, 1, 10, 12, 0, tzinfo=timezone.utc)


def reading(at=T0, **details):
    return GlucoseReading(value=120, source="com.camdiab.fx.camaps", timestamp=at, **details)


def test_first_reading_has_no_battery_or_reservoir_event():
    detector = EventDetector()
    assert detector.detect(reading(pump_battery=20, reservoir=30.0)) == []


def test_battery_jump_is_battery_change():
    detector = EventDetector()
    detector.detect(reading(pump_battery=20))
    [event] = detector.detect(reading(T0 + timedelta(minutes=5), pump_battery=100))
    assert event.eventType == "Pump Battery Change"
    assert event.notes == "Battery changed: 20% -> 100%"


def test_small_battery_fluctuation_is_ignored():
    detector = EventDetector()
    detector.detect(reading(pump_battery=50))
    assert detector.detect(reading(pump_battery=60)) == []


def test_reservoir_refill_is_insulin_change():
    detector = EventDetector()
    detector.detect(reading(reservoir=12.0))
    [event] = detector.detect(reading(T0 + timedelta(minutes=5), reservoir=180.0))
    assert event.eventType == "Insulin Change"
    assert event.created_at == "2025-01-10T12:05:00.000Z"


def test_recent_bolus_is_correction_bolus_at_delivery_time():
    detector = EventDetector()
    [event] = detector.detect(reading(bolus_amount=2.5, bolus_minutes_ago=3))
    assert event.eventType == "Correction Bolus"
    assert event.insulin == 2.5
    assert event.created_at == "2025-01-10T11:57:00.000Z"


def test_old_bolus_is_not_reported():
    detector = EventDetector()
    assert detector.detect(reading(bolus_amount=2.5, bolus_minutes_ago=5)) == []
