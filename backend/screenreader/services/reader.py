"""
Drives the pump app through the UI host: reads the main screen, opens and
closes the information dialog, the burger menu and the landscape graph.

Every surface that gets opened is closed again in a `finally` block so a
failed parse never leaves the app on a secondary screen.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from screenreader.core.settings import ReaderConfig
from screenreader.models.ages import AgeInfo
from screenreader.models.graph import GraphTreatment
from screenreader.models.reading import GlucoseReading
from screenreader.models.ui import UiNode
from screenreader.services import element_finder
from screenreader.services.age_menu import extract_age_info
from screenreader.services.detail_dialog import extract_detail_fields
from screenreader.services.graph_ocr import interpolate_carb_treatments
from screenreader.services.host import OcrEngine, UiHost
from screenreader.services.main_screen import MainScreenResult, extract_main_screen
from screenreader.services.ui_text import collect_all_text

logger = logging.getLogger(__name__)

Finder = Callable[[Optional[UiNode]], Optional[UiNode]]
Sleep = Callable[[float], Awaitable[None]]


class CamAPSReader:
    def __init__(
        self,
        host: UiHost,
        config: Optional[ReaderConfig] = None,
        ocr: Optional[OcrEngine] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.host = host
        self.config = config or ReaderConfig()
        self.ocr = ocr
        self._sleep = sleep
        self.last_result: Optional[MainScreenResult] = None

    async def acquire_root(self, attempts: Optional[int] = None) -> Optional[UiNode]:
        attempts = attempts or self.config.root_attempts
        for attempt in range(1, attempts + 1):
            root = await self.host.root_in_active_window()
            if root is not None:
                return root
            logger.debug("No active window root (attempt %d/%d)", attempt, attempts)
            if attempt < attempts:
                await self._sleep(self.config.root_retry_seconds)
        logger.warning("No active window root after %d attempts", attempts)
        return None

    async def _close(self, root: Optional[UiNode], finders: tuple[Finder, ...]) -> None:
        for finder in finders:
            node = finder(root)
            if node is not None and await self.host.click(node):
                return
        logger.debug("No close control found, using global back")
        await self.host.perform_back()

    async def extract_data(self, root: UiNode, now: Optional[datetime] = None) -> Optional[GlucoseReading]:
        """
        Main screen reading enriched with the information dialog. Dialog
        problems degrade to the main screen reading; a rejected main screen
        yields None.
        """
        now = now or datetime.now(timezone.utc)
        result = extract_main_screen(root, now=now, source=self.config.target_package)
        self.last_result = result
        if not result.accepted:
            return None
        reading = result.reading

        info_button = element_finder.find_info_button(root)
        if info_button is None or not await self.host.click(info_button):
            logger.info("Information dialog not opened, using main screen data only")
            return reading

        dialog_root: Optional[UiNode] = None
        try:
            await self._sleep(self.config.dialog_settle_seconds)
            dialog_root = await self.acquire_root()
            details = extract_detail_fields(dialog_root)
            reading = reading.with_details(details)
        except Exception as e:
            logger.warning(f"Information dialog parsing failed, using main screen data: {e}", exc_info=True)
        finally:
            await self._close(dialog_root, (element_finder.find_close_button,))

        return reading

    async def extract_age_info(self, root: UiNode, now: datetime) -> Optional[AgeInfo]:
        menu_button = element_finder.find_menu_button(root)
        if menu_button is None:
            logger.info("Burger menu button not found")
            return None
        if not await self.host.click(menu_button):
            logger.warning("Burger menu click failed")
            return None

        menu_root: Optional[UiNode] = None
        try:
            await self._sleep(self.config.menu_settle_seconds)
            menu_root = await self.acquire_root()
            if menu_root is None:
                logger.warning("Burger menu did not appear")
                return None
            texts = collect_all_text(menu_root)
            logger.debug("Burger menu text (%d items): %s", len(texts), texts)
            return extract_age_info(texts, now)
        finally:
            await self._close(menu_root, (element_finder.find_close_button, element_finder.find_back_button))

    async def explore_graph(self, root: UiNode, now: datetime) -> list[GraphTreatment]:
        """
        Rotates to the landscape graph, OCRs a screenshot and rotates back.
        `now` must be in the timezone the app draws its time axis in.
        """
        if self.ocr is None:
            return []
        rotate_button = element_finder.find_rotate_button(root)
        if rotate_button is None:
            logger.info("Rotate button not found, skipping graph")
            return []
        if not await self.host.click(rotate_button):
            logger.warning("Rotate button click failed")
            return []

        landscape_root: Optional[UiNode] = None
        try:
            await self._sleep(self.config.graph_settle_seconds)
            landscape_root = await self.acquire_root()
            if landscape_root is None:
                logger.warning("Landscape graph did not appear, skipping graph")
                return []
            await self._sleep(self.config.graph_render_seconds)
            image = await self.host.take_screenshot()
            if image is None:
                logger.warning("Screenshot failed, skipping graph")
                return []
            blocks = await self.ocr.recognize(image)
            logger.debug("OCR returned %d blocks", len(blocks))
            return interpolate_carb_treatments(blocks, now)
        finally:
            await self._close(landscape_root, (element_finder.find_rotate_button,))
