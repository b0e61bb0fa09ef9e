from typing import Optional, Protocol

from screenreader.models.ui import OcrBlock, UiNode


class UiHost(Protocol):
    """The UI automation side: accessibility tree access and input injection."""

    async def root_in_active_window(self) -> Optional[UiNode]: ...

    async def active_package(self) -> Optional[str]: ...

    async def click(self, node: UiNode) -> bool: ...

    async def perform_back(self) -> bool: ...

    async def take_screenshot(self) -> Optional[bytes]: ...


class OcrEngine(Protocol):
    async def recognize(self, image: bytes) -> list[OcrBlock]: ...
