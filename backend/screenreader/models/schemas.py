from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from screenreader.models.enums import EventType, GlucoseUnit
from screenreader.models.reading import GlucoseReading
from screenreader.utils.timezone import to_epoch_ms, to_utc_iso

UPLOADER_DEVICE = "loop://CamAPSFX-ScreenReader"
UPLOADER_APP = "AndroidAPS"
ENTERED_BY = "CamAPSFX-ScreenReader"
ENTRY_DEVICE_PREFIX = "DiabetesScreenReader"
TEMP_BASAL_REASON = "CamAPS FX current rate"


class NightscoutStatus(BaseModel):
    status: Optional[str] = None
    version: Optional[str] = None
    name: Optional[str] = None
    api_enabled: Optional[bool] = Field(default=None, alias="apiEnabled")

    model_config = ConfigDict(populate_by_name=True)


class NightscoutEntry(BaseModel):
    type: str = "sgv"
    sgv: int
    direction: str
    date: int
    dateString: str
    device: str = ENTRY_DEVICE_PREFIX

    @field_validator("date", mode="before")
    def ensure_epoch_ms(cls, v: int | datetime) -> int:
        if isinstance(v, datetime):
            return to_epoch_ms(v)
        return int(v)


class UploaderInfo(BaseModel):
    battery: Optional[int] = None


class PumpBattery(BaseModel):
    percent: Optional[int] = None
    voltage: Optional[float] = None


class PumpStatusInfo(BaseModel):
    status: str = "normal"
    timestamp: str


class PumpStatus(BaseModel):
    clock: str
    battery: Optional[PumpBattery] = None
    reservoir: Optional[float] = None
    status: Optional[PumpStatusInfo] = None


class OpenAPSIOB(BaseModel):
    iob: float
    basaliob: Optional[float] = None
    bolusiob: float
    timestamp: str


class OpenAPSEnacted(BaseModel):
    temp: Optional[str] = None
    bg: Optional[int] = None
    tick: Optional[str] = None
    rate: Optional[float] = None
    duration: Optional[int] = None
    timestamp: str
    reason: Optional[str] = None


class OpenAPSSuggested(OpenAPSEnacted):
    eventualBG: Optional[int] = None
    insulinReq: Optional[float] = None


class OpenAPSStatus(BaseModel):
    suggested: Optional[OpenAPSSuggested] = None
    enacted: Optional[OpenAPSEnacted] = None
    iob: Optional[OpenAPSIOB] = None


class NightscoutDeviceStatus(BaseModel):
    device: str = UPLOADER_DEVICE
    created_at: Optional[str] = None
    date: int
    uploaderBattery: Optional[int] = None
    isCharging: Optional[bool] = None
    pump: Optional[PumpStatus] = None
    openaps: Optional[OpenAPSStatus] = None
    uploader: Optional[UploaderInfo] = None


class NightscoutTreatment(BaseModel):
    eventType: str
    created_at: str
    date: Optional[int] = None
    device: str = UPLOADER_DEVICE
    app: str = UPLOADER_APP
    isValid: bool = True
    isReadOnly: bool = False
    enteredBy: str = ENTERED_BY
    notes: Optional[str] = None
    insulin: Optional[float] = None
    type: Optional[str] = None
    isBasalInsulin: Optional[bool] = None
    carbs: Optional[float] = None

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


def entry_from_reading(reading: GlucoseReading) -> NightscoutEntry:
    return NightscoutEntry(
        sgv=int(reading.value_in(GlucoseUnit.MG_DL)),
        direction=reading.trend.direction,
        date=to_epoch_ms(reading.timestamp),
        dateString=to_utc_iso(reading.timestamp),
        device=f"{ENTRY_DEVICE_PREFIX}/{reading.source}",
    )


def device_status_from_reading(reading: GlucoseReading) -> NightscoutDeviceStatus:
    """
    Maps the pump side of a reading onto the loop devicestatus layout so the
    Nightscout pump and loop pills show reservoir, battery, IOB and basal.
    """
    ts = to_utc_iso(reading.timestamp)
    bg = int(reading.value_in(GlucoseUnit.MG_DL))
    tick = reading.trend.direction

    iob = None
    if reading.active_insulin is not None:
        iob = OpenAPSIOB(iob=reading.active_insulin, bolusiob=reading.active_insulin, timestamp=ts)

    suggested = None
    enacted = None
    if reading.basal_rate is not None:
        common = dict(
            temp="absolute",
            bg=bg,
            tick=tick,
            rate=reading.basal_rate,
            duration=30,
            timestamp=ts,
            reason=TEMP_BASAL_REASON,
        )
        suggested = OpenAPSSuggested(**common, insulinReq=0.0)
        enacted = OpenAPSEnacted(**common)

    battery = PumpBattery(percent=reading.pump_battery) if reading.pump_battery is not None else None

    return NightscoutDeviceStatus(
        created_at=ts,
        date=to_epoch_ms(reading.timestamp),
        uploaderBattery=100,
        uploader=UploaderInfo(battery=100),
        pump=PumpStatus(
            clock=ts,
            battery=battery,
            reservoir=reading.reservoir,
            status=PumpStatusInfo(status="normal", timestamp=ts),
        ),
        openaps=OpenAPSStatus(iob=iob, suggested=suggested, enacted=enacted),
    )


def event_treatment(event_type: EventType, at: datetime, notes: Optional[str] = None) -> NightscoutTreatment:
    return NightscoutTreatment(
        eventType=event_type.value,
        created_at=to_utc_iso(at),
        date=to_epoch_ms(at),
        notes=notes,
    )


def sensor_start_treatment(start_time: datetime, serial_number: Optional[str] = None) -> NightscoutTreatment:
    notes = f"Freestyle Libre 3 Plus - {serial_number}" if serial_number else "Sensor from CamAPS FX"
    return event_treatment(EventType.SENSOR_START, start_time, notes)


def insulin_change_treatment(fill_time: datetime) -> NightscoutTreatment:
    return event_treatment(EventType.INSULIN_CHANGE, fill_time, "Reservoir filled")


def bolus_treatment(at: datetime, amount: float) -> NightscoutTreatment:
    treatment = event_treatment(EventType.CORRECTION_BOLUS, at, "Bolus from CamAPS FX")
    return treatment.model_copy(update={"insulin": amount, "type": "NORMAL", "isBasalInsulin": False})


def carb_treatment(at: datetime, carbs: float, insulin: Optional[float] = None) -> NightscoutTreatment:
    """Meal Bolus when the graph showed insulin next to the carbs, Carb Correction otherwise."""
    event_type = EventType.MEAL_BOLUS if insulin else EventType.CARB_CORRECTION
    treatment = event_treatment(event_type, at, "Carbs from CamAPS FX graph")
    return treatment.model_copy(update={"carbs": carbs, "insulin": insulin or None})
