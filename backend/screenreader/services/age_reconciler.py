"""
Keeps the sensor age (SAGE) and insulin age (IAGE) pills in Nightscout in
line with what the pump app shows.

The app only displays a coarse duration, so the derived start time drifts by
up to a few minutes between reads; a remote event is only replaced when it is
off by more than the tolerance.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from screenreader.models.ages import InsulinInfo, SensorInfo
from screenreader.models.schemas import insulin_change_treatment, sensor_start_treatment
from screenreader.services.nightscout_client import NightscoutClient

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_HOURS = 1.5
SENSOR_EVENT_REGEX = "Sensor"
INSULIN_EVENT_REGEX = "Insulin"


class ReconcileAction(str, Enum):
    UPLOADED_NO_PREVIOUS = "uploaded_no_previous"
    UPDATED = "updated"
    IN_SYNC = "in_sync"


@dataclass(frozen=True)
class ReconcileDecision:
    action: ReconcileAction
    diff_hours: Optional[float]
    message: str

    @property
    def needs_upload(self) -> bool:
        return self.action != ReconcileAction.IN_SYNC


def decide(
    local: datetime,
    remote: Optional[datetime],
    tolerance_hours: float = DEFAULT_TOLERANCE_HOURS,
    label: str = "SAGE",
) -> ReconcileDecision:
    if remote is None:
        return ReconcileDecision(
            action=ReconcileAction.UPLOADED_NO_PREVIOUS,
            diff_hours=None,
            message=f"uploaded (no previous {label})",
        )

    diff_hours = abs((local - remote).total_seconds()) / 3600.0
    if diff_hours > tolerance_hours:
        return ReconcileDecision(
            action=ReconcileAction.UPDATED,
            diff_hours=diff_hours,
            message=f"updated (diff was {diff_hours:.1f}h)",
        )
    return ReconcileDecision(action=ReconcileAction.IN_SYNC, diff_hours=diff_hours, message="in_sync")


class AgeReconciler:
    def __init__(self, client: NightscoutClient, tolerance_hours: float = DEFAULT_TOLERANCE_HOURS) -> None:
        self.client = client
        self.tolerance_hours = tolerance_hours

    async def check_and_update_sage(self, sensor_info: SensorInfo) -> Optional[ReconcileDecision]:
        if sensor_info.sensor_start_time is None:
            return None
        remote = await self.client.get_latest_treatment_time(SENSOR_EVENT_REGEX)
        decision = decide(sensor_info.sensor_start_time, remote, self.tolerance_hours, label="SAGE")
        if decision.needs_upload:
            await self.client.upload_treatments(
                [sensor_start_treatment(sensor_info.sensor_start_time, sensor_info.serial_number)]
            )
        logger.info(f"SAGE check: {decision.message}")
        return decision

    async def check_and_update_iage(self, insulin_info: InsulinInfo) -> Optional[ReconcileDecision]:
        if insulin_info.fill_time is None:
            return None
        remote = await self.client.get_latest_treatment_time(INSULIN_EVENT_REGEX)
        decision = decide(insulin_info.fill_time, remote, self.tolerance_hours, label="IAGE")
        if decision.needs_upload:
            await self.client.upload_treatments([insulin_change_treatment(insulin_info.fill_time)])
        logger.info(f"IAGE check: {decision.message}")
        return decision
