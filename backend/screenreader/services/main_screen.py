"""
Main screen extraction: turns the flattened UI text of the pump app's home
screen into one validated glucose reading, or an explicit rejection.

Every gate is a hard stop. A rejected cycle yields no reading at all; a
best-guess value is never returned.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import ValidationError

from screenreader.models.enums import TREND_GLYPHS, GlucoseTrend, GlucoseUnit
from screenreader.models.reading import GlucoseReading
from screenreader.models.ui import UiNode
from screenreader.services.element_finder import find_info_button
from screenreader.services.ui_text import collect_all_text

logger = logging.getLogger(__name__)

CAMAPS_PACKAGE = "com.camdiab.fx.camaps"
CAMAPS_PACKAGE_PREFIX = "com.camdiab.fx"

APP_MARKERS = (
    "auto mode",
    "mode auto",
    "automodus",
    "boost",
    "ease-off",
    "mylife camaps",
)

SIGNAL_LOSS_INDICATORS = (
    "---",
    # DE
    "signalverlust", "sensor fehler", "kein signal",
    # EN
    "signal loss", "no signal", "sensor error", "lost signal",
    # FR
    "perte de signal", "pas de signal", "erreur capteur", "signal perdu",
)

CANDIDATE_PATTERN = re.compile(r"^\s*(\d{2,3})\s*$")


class ExtractionOutcome(str, Enum):
    ACCEPTED = "accepted"
    IDENTITY_MISMATCH = "identity_mismatch"
    SAFETY_REJECTION = "safety_rejection"


@dataclass(frozen=True)
class MainScreenResult:
    outcome: ExtractionOutcome
    reading: Optional[GlucoseReading] = None
    reason: str = ""

    @property
    def accepted(self) -> bool:
        return self.outcome == ExtractionOutcome.ACCEPTED and self.reading is not None


def is_camaps_package(package_name: Optional[str]) -> bool:
    return bool(package_name) and package_name.startswith(CAMAPS_PACKAGE_PREFIX)


def _unit_of(text: str) -> Optional[GlucoseUnit]:
    lower = text.lower()
    if "mg/dl" in lower:
        return GlucoseUnit.MG_DL
    if "mmol/l" in lower:
        return GlucoseUnit.MMOL_L
    return None


def _has_app_marker(texts: list[str]) -> bool:
    return any(marker in text.lower() for text in texts for marker in APP_MARKERS)


def _signal_loss(texts: list[str]) -> Optional[str]:
    for text in texts:
        lower = text.lower()
        for indicator in SIGNAL_LOSS_INDICATORS:
            if indicator in lower:
                return text
    return None


def determine_trend(texts: list[str]) -> GlucoseTrend:
    """First arrow glyph found wins; a screen without one is read as flat."""
    for text in texts:
        for trend, glyphs in TREND_GLYPHS:
            if any(glyph in text for glyph in glyphs):
                return trend
    return GlucoseTrend.FLAT


def _identity_mismatch(reason: str) -> MainScreenResult:
    logger.info("Not the CamAPS FX main screen: %s", reason)
    return MainScreenResult(outcome=ExtractionOutcome.IDENTITY_MISMATCH, reason=reason)


def _safety_rejection(reason: str) -> MainScreenResult:
    logger.warning("Main screen rejected: %s", reason)
    return MainScreenResult(outcome=ExtractionOutcome.SAFETY_REJECTION, reason=reason)


def extract_main_screen(
    root: Optional[UiNode],
    now: Optional[datetime] = None,
    source: str = CAMAPS_PACKAGE,
) -> MainScreenResult:
    texts = collect_all_text(root)
    logger.debug("Main screen text (%d items): %s", len(texts), texts)

    unit_texts = [t for t in texts if _unit_of(t) is not None]
    if not unit_texts:
        return _identity_mismatch("no glucose unit on screen")

    if find_info_button(root) is None:
        return _identity_mismatch("no info button")

    if not _has_app_marker(texts):
        return _identity_mismatch("no app marker")

    lost = _signal_loss(texts)
    if lost is not None:
        return _safety_rejection(f"signal loss indicator {lost!r}")

    candidates = [int(m.group(1)) for m in (CANDIDATE_PATTERN.match(t) for t in texts) if m]
    if not candidates:
        return _safety_rejection("no glucose value candidate")
    if len(candidates) > 1:
        logger.warning("Multiple glucose value candidates %s, using the first", candidates)

    unit = _unit_of(unit_texts[0]) or GlucoseUnit.MG_DL
    trend = determine_trend(texts)

    try:
        reading = GlucoseReading(
            value=float(candidates[0]),
            unit=unit,
            trend=trend,
            source=source,
            timestamp=now or datetime.now(timezone.utc),
        )
    except ValidationError:
        return _safety_rejection(f"value {candidates[0]} out of plausible range")

    logger.info("Main screen reading: %s %s %s", reading.formatted_value(), unit.value, trend.arrow)
    return MainScreenResult(outcome=ExtractionOutcome.ACCEPTED, reading=reading)
