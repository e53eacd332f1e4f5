from __future__ import annotations

import io
import logging
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

from PIL import Image, UnidentifiedImageError
from playwright.async_api import async_playwright

from snappydoo.constants import (
    DEFAULT_BUILDER_URL,
    DEFAULT_DEVICE_SCALE_FACTOR,
    DEFAULT_VIEWPORT,
    MESSAGE_CONTAINER_SELECTOR,
    READY_INDICATOR_SELECTOR,
    READY_TIMEOUT_MS,
)

LOGGER = logging.getLogger("snappydoo.renderer")


class Renderer:
    """Capability that turns a serialized message into PNG bytes.

    One renderer is shared by every job of a run; each job works through its
    own page obtained from :meth:`open_page`.
    """

    async def start(self) -> None:  # pragma: no cover - interface stub
        raise NotImplementedError

    async def open_page(self) -> Any:  # pragma: no cover - interface stub
        raise NotImplementedError

    async def capture(self, page: Any, message_text: str) -> bytes:  # pragma: no cover - interface stub
        raise NotImplementedError

    async def close_page(self, page: Any) -> None:  # pragma: no cover - interface stub
        raise NotImplementedError

    async def shutdown(self) -> None:  # pragma: no cover - interface stub
        raise NotImplementedError

    async def __aenter__(self) -> "Renderer":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()


def builder_url(base_url: str, message_text: str) -> str:
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}msg={quote(message_text, safe='')}"


def image_size(data: bytes) -> Tuple[int, int]:
    """Return ``(width, height)`` of encoded image bytes, raising ``ValueError`` if they are not an image."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.verify()
            return image.size
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ValueError(f"captured data is not a valid image: {exc}") from exc


class PlaywrightRenderer(Renderer):
    """Render messages in the Slack message builder with headless Chromium."""

    def __init__(
        self,
        base_url: str = DEFAULT_BUILDER_URL,
        *,
        viewport: Optional[Dict[str, int]] = None,
        device_scale_factor: float = DEFAULT_DEVICE_SCALE_FACTOR,
        ready_timeout_ms: int = READY_TIMEOUT_MS,
        browser_name: str = "chromium",
    ) -> None:
        self._base_url = base_url
        self._viewport = dict(viewport or DEFAULT_VIEWPORT)
        self._device_scale_factor = device_scale_factor
        self._ready_timeout_ms = ready_timeout_ms
        self._browser_name = browser_name
        self._playwright = None
        self._browser = None

    async def start(self) -> None:
        if self._browser is not None:
            return
        self._playwright = await async_playwright().start()
        if not hasattr(self._playwright, self._browser_name):
            raise RuntimeError(f"Unsupported browser '{self._browser_name}'")
        browser_type = getattr(self._playwright, self._browser_name)
        launch_kwargs: Dict[str, Any] = {"headless": True}
        if self._browser_name == "chromium":
            launch_kwargs["args"] = ["--disable-dev-shm-usage", "--no-sandbox"]
        self._browser = await browser_type.launch(**launch_kwargs)
        LOGGER.info("Launched %s browser", self._browser_name)

    async def open_page(self) -> Any:
        if self._browser is None:
            raise RuntimeError("Renderer has not been started")
        context = await self._browser.new_context(
            viewport=self._viewport,
            device_scale_factor=self._device_scale_factor,
        )
        try:
            return await context.new_page()
        except Exception:
            await context.close()
            raise

    async def capture(self, page: Any, message_text: str) -> bytes:
        await page.goto(builder_url(self._base_url, message_text))
        await page.wait_for_selector(
            READY_INDICATOR_SELECTOR,
            state="hidden",
            timeout=self._ready_timeout_ms,
        )
        element = await page.query_selector(MESSAGE_CONTAINER_SELECTOR)
        if element is None:
            raise RuntimeError(f"Message container {MESSAGE_CONTAINER_SELECTOR} not found")
        box = await element.bounding_box()
        if not box or box["width"] <= 0 or box["height"] <= 0:
            raise RuntimeError(f"Message container {MESSAGE_CONTAINER_SELECTOR} has no visible area")
        return await page.screenshot(
            clip={
                "x": box["x"],
                "y": box["y"],
                "width": box["width"],
                "height": box["height"],
            }
        )

    async def close_page(self, page: Any) -> None:
        await page.context.close()

    async def shutdown(self) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("Failed to close browser: %s", exc)
            self._browser = None
            LOGGER.info("Browser session closed")
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
