"""
Sensor age (SAGE) and insulin age (IAGE) from the pump app's burger menu.

The menu renders each label and its value as sibling nodes, so a value is
read as the string right after its label in collection order.
"""
import dataclasses
import logging
import re
from datetime import datetime, timedelta
from typing import Optional

from screenreader.models.ages import AgeInfo, InsulinInfo, SensorInfo
from screenreader.services.matching import PatternRule, first_match, rule
from screenreader.services.ui_text import value_after

logger = logging.getLogger(__name__)

SENSOR_START_LABELS = ("anlage seit", "inserted since", "insertion depuis", "sensor since", "capteur depuis")
INSULIN_FILL_LABELS = ("füllung seit", "filled since", "remplissage depuis", "reservoir since", "réservoir depuis")
SENSOR_END_LABELS = ("ende sensorsitzung", "sensor session end", "fin session capteur")

SENSOR_BRANDS = ("companion cgm", "freestyle libre", "dexcom", "libre")
SINCE_KEYWORDS = ("seit", "since", "depuis")


def _group_int(match: re.Match, index: int) -> int:
    value = match.group(index)
    return int(value) if value else 0


DURATION_RULES: tuple[PatternRule[timedelta], ...] = (
    rule(
        "compact",
        r"(\d+)d\s*(?:(\d+)h)?\s*(?:(\d+)min)?",
        lambda m: timedelta(days=_group_int(m, 1), hours=_group_int(m, 2), minutes=_group_int(m, 3)),
    ),
    rule(
        "verbose_days",
        r"(\d+)\s*(?:Tage?|days?|jours?)(?:\s+(\d+)\s*(?:Stunden?|hours?|heures?))?",
        lambda m: timedelta(days=_group_int(m, 1), hours=_group_int(m, 2)),
    ),
    rule(
        "hours_minutes",
        r"(\d+)\s*(?:hours?|heures?|Stunden?|h)\s*(?:(\d+)\s*(?:minutes?|Minuten?|min))?",
        lambda m: timedelta(hours=_group_int(m, 1), minutes=_group_int(m, 2)),
    ),
    rule(
        "minutes",
        r"(\d+)\s*(?:minutes?|Minuten?|min)",
        lambda m: timedelta(minutes=_group_int(m, 1)),
    ),
)


def parse_duration(text: Optional[str]) -> Optional[timedelta]:
    """
    Parses "5d 6h 58min", "5 Tage 6 Stunden", "6 hours 58 minutes", "58 min"
    and their FR variants. Blank text and the "---" placeholder give None.
    """
    if text is None or not text.strip() or text.strip() == "---":
        return None
    found = first_match(DURATION_RULES, text)
    if found is None:
        logger.warning("Could not parse duration: %r", text)
        return None
    return found[1]


def _is_label(text: str, labels: tuple[str, ...]) -> bool:
    return text.strip().lower() in labels


def extract_age_info(texts: list[str], now: datetime) -> AgeInfo:
    sensor_info: Optional[SensorInfo] = None
    insulin_info: Optional[InsulinInfo] = None
    serial_number: Optional[str] = None

    for i, text in enumerate(texts):
        next_text = value_after(texts, i)
        lower = text.lower()

        if any(brand in lower for brand in SENSOR_BRANDS):
            if next_text.strip() and not any(k in next_text.lower() for k in SINCE_KEYWORDS):
                serial_number = next_text
                logger.debug("Sensor %r, name/serial %r", text, serial_number)

        if _is_label(text, SENSOR_START_LABELS):
            duration = parse_duration(next_text)
            if duration is not None:
                sensor_info = SensorInfo(
                    serial_number=serial_number,
                    sensor_start_time=now - duration,
                    duration_text=next_text,
                )

        if _is_label(text, SENSOR_END_LABELS):
            duration = parse_duration(next_text)
            if duration is not None and sensor_info is not None:
                sensor_info = dataclasses.replace(sensor_info, sensor_end_time=now + duration)

        if _is_label(text, INSULIN_FILL_LABELS):
            duration = parse_duration(next_text)
            if duration is not None:
                insulin_info = InsulinInfo(fill_time=now - duration, duration_text=next_text)

    # The brand row can sit below the SAGE row in some layouts
    if sensor_info is not None and sensor_info.serial_number is None and serial_number:
        sensor_info = dataclasses.replace(sensor_info, serial_number=serial_number)

    info = AgeInfo(sensor_info=sensor_info, insulin_info=insulin_info)
    logger.info(
        "Age menu: SAGE start=%s, IAGE fill=%s",
        sensor_info.sensor_start_time if sensor_info else None,
        insulin_info.fill_time if insulin_info else None,
    )
    return info
