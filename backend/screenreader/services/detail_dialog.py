"""
Parser for the pump app's information dialog.

Every field is independent: a dialog that only shows some of them yields a
partial mapping, and a surface that is not the dialog yields an empty one.
"""
import logging
import re
from typing import Optional

from screenreader.models.ui import UiNode
from screenreader.services.matching import PatternRule, first_match_in, parse_decimal, rule
from screenreader.services.ui_text import collect_all_text

logger = logging.getLogger(__name__)

_UNITS = r"(?:IE|U|UI)"
_NUMBER = r"([\d,\.]+)"


def _decimal(match: re.Match) -> Optional[float]:
    return parse_decimal(match.group(1))


def _simple(name: str, labels: str, suffix: str) -> PatternRule[float]:
    return rule(name, rf"(?:{labels}):\s*{_NUMBER}\s*{suffix}", _decimal)


SIMPLE_FIELDS: dict[str, PatternRule[float]] = {
    "active_insulin": _simple("active_insulin", "Aktives Insulin|Active Insulin|Insuline active", _UNITS),
    "basal_rate": _simple("basal_rate", "Insulinabgaberate|Insulin delivery rate|Debit d'insuline", _UNITS + "/h"),
    "reservoir": _simple("reservoir", "Reservoir", _UNITS),
    "pump_battery": _simple("pump_battery", "Pumpenbatterie|Pump battery|Batterie pompe", "%"),
    "glucose_target": _simple("glucose_target", "Glukosezielwert|Glucose target|Cible glycemique", r"(?:mg/dL|mmol/L)"),
    "insulin_today": _simple("insulin_today", "Insulin heute|Insulin today|Insuline aujourd'hui", _UNITS),
    "insulin_yesterday": _simple("insulin_yesterday", "Insulin gestern|Insulin yesterday|Insuline hier", _UNITS),
}


# A bolus value is (amount, minutes ago); the placeholder rule yields (None, None).
BolusValue = tuple[Optional[float], Optional[int]]


def _bolus_minutes(match: re.Match) -> Optional[BolusValue]:
    amount = parse_decimal(match.group(1))
    if amount is None:
        return None
    return amount, int(match.group(2))


def _bolus_hours_minutes(match: re.Match) -> Optional[BolusValue]:
    amount = parse_decimal(match.group(1))
    if amount is None:
        return None
    return amount, int(match.group(2)) * 60 + int(match.group(3))


_BOLUS = rf"Bolus:\s*{_NUMBER}\s*{_UNITS}\s*"

BOLUS_RULES: tuple[PatternRule[BolusValue], ...] = (
    rule("de", _BOLUS + r"vor\s*(\d+)\s*Minuten", _bolus_minutes),
    rule("en", _BOLUS + r"(\d+)\s*minutes?\s*ago", _bolus_minutes),
    rule("fr", _BOLUS + r"il y a\s*(\d+)\s*minutes?", _bolus_minutes),
    rule("compact", _BOLUS + r"(\d+)\s*h\s*(\d+)\s*min", _bolus_hours_minutes),
    rule("none", r"Bolus:\s*---", lambda m: (None, None)),
)


def _age_rules(labels: str) -> tuple[PatternRule[float], ...]:
    prefix = rf"(?:{labels}):\s*"
    return (
        rule("de", prefix + r"vor\s*(\d+)\s*Minuten", lambda m: float(m.group(1))),
        # "vor einer Minute" has no digit to capture
        rule("de_one", prefix + r"vor\s*einer\s*Minute", lambda m: 1.0),
        rule("en", prefix + r"(\d+)\s*minutes?\s*ago", lambda m: float(m.group(1))),
        rule("fr", prefix + r"il y a\s*(\d+)\s*minutes?", lambda m: float(m.group(1))),
    )


AGE_FIELDS: dict[str, tuple[PatternRule[float], ...]] = {
    "pump_connection_minutes_ago": _age_rules("Pumpenverbindung|Pump connection|Connexion pompe"),
    "sensor_data_minutes_ago": _age_rules("Sensordaten|Sensor data|Donnees capteur"),
}


def parse_detail_texts(texts: list[str]) -> dict[str, float]:
    data: dict[str, float] = {}

    for key, field_rule in SIMPLE_FIELDS.items():
        found = first_match_in((field_rule,), texts)
        if found is not None:
            data[key] = found[1]

    bolus = first_match_in(BOLUS_RULES, texts)
    if bolus is not None:
        variant, (amount, minutes) = bolus
        if amount is not None and minutes is not None:
            data["bolus_amount"] = amount
            data["bolus_minutes_ago"] = float(minutes)
            logger.debug("Bolus (%s): %s U, %s min ago", variant, amount, minutes)
        else:
            logger.debug("No active bolus")

    for key, rules in AGE_FIELDS.items():
        found = first_match_in(rules, texts)
        if found is not None:
            data[key] = found[1]

    return data


def extract_detail_fields(root: Optional[UiNode]) -> dict[str, float]:
    texts = collect_all_text(root)
    data = parse_detail_texts(texts)
    logger.info("Information dialog fields: %s", data or "none")
    return data
