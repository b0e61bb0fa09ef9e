from .enums import EventType, GlucoseTrend, GlucoseUnit, RangeStatus
from .reading import GlucoseReading
from .ui import BoundingBox, OcrBlock, UiNode
from .ages import AgeInfo, InsulinInfo, SensorInfo
from .graph import GraphTreatment, TimeLabel
