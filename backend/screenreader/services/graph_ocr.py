"""
Carbohydrate markers from an OCR pass over the landscape glucose graph.

The x axis carries HH:MM labels. A carbs marker ("45g") above the axis gets
its time by linear interpolation between the two axis labels that bracket its
horizontal centre.
"""
import logging
import re
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Iterable, Optional

from screenreader.models.graph import GraphTreatment, TimeLabel
from screenreader.models.ui import OcrBlock

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r"(\d{2}):(\d{2})")
CARBS_PATTERN = re.compile(r"(?<![\d.,m])(\d{1,3})\s*g\b", re.IGNORECASE)

Y_BUCKET_PX = 100
AXIS_TOLERANCE_PX = 100
DEFAULT_AXIS_THRESHOLD = 500
MIN_CARBS = 1
MAX_CARBS = 200
MINUTES_PER_DAY = 24 * 60
FUTURE_TOLERANCE = timedelta(minutes=10)


def _time_of(text: str) -> Optional[tuple[int, int]]:
    match = TIME_PATTERN.search(text)
    if match is None:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return hour, minute


def axis_threshold(blocks: Iterable[OcrBlock]) -> int:
    """
    Y coordinate separating the plot area from the time axis.

    Time-like blocks are bucketed by 100px of `top`; the largest bucket is
    taken as the axis row and the threshold sits 100px above its mean top.
    """
    buckets: dict[int, list[int]] = defaultdict(list)
    for block in blocks:
        if block.box is None or _time_of(block.text.strip()) is None:
            continue
        buckets[(block.box.top // Y_BUCKET_PX) * Y_BUCKET_PX].append(block.box.top)

    if not buckets:
        logger.debug("No time label row detected, using default threshold")
        return DEFAULT_AXIS_THRESHOLD

    largest = max(buckets.values(), key=len)
    avg_top = int(sum(largest) / len(largest))
    logger.debug("Time label row around y=%d (%d labels)", avg_top, len(largest))
    return avg_top - AXIS_TOLERANCE_PX


def interpolate_time(x: int, labels: list[TimeLabel], now: datetime) -> Optional[datetime]:
    """`labels` must be sorted by x_center and hold at least two entries."""
    if len(labels) < 2:
        return None

    left: Optional[TimeLabel] = None
    right: Optional[TimeLabel] = None
    for a, b in zip(labels, labels[1:]):
        if a.x_center <= x <= b.x_center:
            left, right = a, b
            break

    if left is None or right is None:
        if x < labels[0].x_center:
            left, right = labels[0], labels[1]
        else:
            left, right = labels[-2], labels[-1]

    x_range = right.x_center - left.x_center
    if x_range <= 0:
        return None

    fraction = (x - left.x_center) / x_range
    left_minutes = left.minutes_of_day
    right_minutes = right.minutes_of_day
    # 23:00 -> 00:00 crosses midnight
    if right_minutes < left_minutes:
        right_minutes += MINUTES_PER_DAY

    minutes = (left_minutes + (right_minutes - left_minutes) * fraction) % MINUTES_PER_DAY
    hour = int(minutes // 60)
    minute = int(minutes % 60)

    estimated = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if estimated > now + FUTURE_TOLERANCE:
        estimated -= timedelta(days=1)

    logger.debug(
        "x=%d between %02d:%02d@%d and %02d:%02d@%d, fraction %.2f -> %02d:%02d",
        x, left.hour, left.minute, left.x_center, right.hour, right.minute, right.x_center,
        fraction, hour, minute,
    )
    return estimated


def interpolate_carb_treatments(blocks: list[OcrBlock], now: datetime) -> list[GraphTreatment]:
    """
    `now` must be in the timezone the graph labels are drawn in.
    Returns an empty list when fewer than two axis labels are readable; a
    carbs marker is never emitted without an interpolated time.
    """
    threshold = axis_threshold(blocks)

    labels: list[TimeLabel] = []
    carbs_markers: list[tuple[int, int]] = []

    for block in blocks:
        if block.box is None:
            continue
        text = block.text.strip()
        box = block.box

        time_value = _time_of(text)
        if time_value is not None and box.top >= threshold:
            labels.append(TimeLabel(hour=time_value[0], minute=time_value[1], x_center=box.x_center))

        carbs_match = CARBS_PATTERN.search(text)
        if carbs_match is not None and box.top < threshold:
            grams = int(carbs_match.group(1))
            if MIN_CARBS <= grams <= MAX_CARBS:
                carbs_markers.append((grams, box.x_center))
                logger.debug("Carbs marker %dg at x=%d y=%d (%r)", grams, box.x_center, box.top, text)

    labels.sort(key=lambda label: label.x_center)
    if len(labels) < 2:
        logger.info("Not enough time labels for interpolation (%d), skipping carbs", len(labels))
        return []

    treatments: list[GraphTreatment] = []
    for grams, x in carbs_markers:
        at = interpolate_time(x, labels, now)
        if at is None:
            logger.debug("Carbs %dg at x=%d: no usable label pair, skipped", grams, x)
            continue
        treatments.append(GraphTreatment(timestamp=at, carbs_grams=float(grams)))

    logger.info("Graph OCR: %d time labels, %d carbs treatments", len(labels), len(treatments))
    return treatments


def latest_carb_treatment(treatments: list[GraphTreatment]) -> Optional[GraphTreatment]:
    """The most recent carbs treatment; OCR block order carries no meaning."""
    with_carbs = [t for t in treatments if t.has_carbs]
    return max(with_carbs, key=lambda t: t.timestamp, default=None)
