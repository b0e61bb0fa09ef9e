"""
Diagnostics: run the extractors over a captured UI tree without touching
the device, the database or Nightscout. Useful for checking a new app
version or locale against a uiautomator dump.
"""
from typing import Any, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from screenreader.models.reading import GlucoseReading
from screenreader.models.ui import UiNode
from screenreader.services import element_finder
from screenreader.services.detail_dialog import extract_detail_fields
from screenreader.services.main_screen import ExtractionOutcome, extract_main_screen
from screenreader.services.ui_text import collect_all_text

router = APIRouter()


class ScreenParseRequest(BaseModel):
    tree: dict[str, Any] = Field(..., description="uiautomator/portal style node dump")


class ScreenParseResponse(BaseModel):
    outcome: ExtractionOutcome
    reason: str = ""
    reading: Optional[GlucoseReading] = None
    details: dict[str, float] = Field(default_factory=dict)
    texts: list[str] = Field(default_factory=list)
    elements: dict[str, bool] = Field(default_factory=dict)


@router.post("/parse", response_model=ScreenParseResponse, summary="Parse a captured UI tree")
async def parse_screen(payload: ScreenParseRequest) -> ScreenParseResponse:
    root = UiNode.from_dict(payload.tree)
    result = extract_main_screen(root)
    return ScreenParseResponse(
        outcome=result.outcome,
        reason=result.reason,
        reading=result.reading,
        details=extract_detail_fields(root),
        texts=collect_all_text(root),
        elements={
            kind.value: element_finder.find_element(root, kind) is not None
            for kind in element_finder.ElementKind
        },
    )
