"""Viewport capture engine.

This module provides the CaptureEngine class that turns the current state of
the document viewer into one PageCapture: it hides viewer chrome (header,
toolbar, navigation controls) so only document content is visible, moves
keyboard focus onto the document so page-advance keys reach it, and takes a
compressed viewport screenshot.
"""

import logging
from typing import Optional

from playwright.async_api import Error as PlaywrightError

from ..errors import CaptureError
from ..models.capture import PageCapture
from .config import CaptureSettings
from .page_session import PageSession

logger = logging.getLogger(__name__)

CHROME_STYLE_ID = "docpdf-chrome-suppression"

# Upsert so repeated calls never stack style elements
_UPSERT_STYLE_SCRIPT = """
([styleId, css]) => {
    let style = document.getElementById(styleId);
    if (!style) {
        style = document.createElement('style');
        style.id = styleId;
        (document.head || document.documentElement).appendChild(style);
    }
    style.textContent = css;
    return true;
}
"""


def build_chrome_css(selectors) -> str:
    """CSS rule hiding every chrome selector."""
    if not selectors:
        return ""
    return f"{', '.join(selectors)} {{ display: none !important; }}"


class CaptureEngine:
    """Snapshot the document viewer one page at a time."""

    def __init__(self, session: PageSession, settings: Optional[CaptureSettings] = None):
        """Initialize capture engine.

        Args:
            session: Page session positioned on the (ungated) document
            settings: Capture settings
        """
        self.session = session
        self.settings = settings or CaptureSettings()
        self.chrome_css = build_chrome_css(self.settings.chrome_selectors)
        self.stats = {
            'snapshots': 0,
            'bytes_captured': 0,
            'suppression_failures': 0,
        }

    @property
    def page(self):
        return self.session.page

    async def suppress_chrome(self) -> bool:
        """Hide viewer chrome with a single injected style element per frame.

        Viewers embedded in an iframe draw their toolbar inside that frame, so
        the style is upserted into the main document and every nested frame.

        Returns:
            True if the style was applied to at least one frame
        """
        if not self.chrome_css:
            return True
        applied = 0
        for frame in self.session.frames():
            try:
                await frame.evaluate(_UPSERT_STYLE_SCRIPT, [CHROME_STYLE_ID, self.chrome_css])
                applied += 1
            except PlaywrightError as e:
                # Detached and cross-origin frames refuse evaluation
                self.stats['suppression_failures'] += 1
                logger.debug(f"Chrome suppression failed in {(frame.url or '')[:80]}: {e}")
        return applied > 0

    async def focus_content(self) -> None:
        """Click the centre of the viewport so key presses reach the document."""
        viewport = self.page.viewport_size or {'width': 1280, 'height': 720}
        try:
            await self.page.mouse.click(viewport['width'] / 2, viewport['height'] / 2)
        except PlaywrightError as e:
            logger.debug(f"Focus click failed: {e}")

    async def prepare(self) -> None:
        await self.suppress_chrome()
        await self.focus_content()

    async def snapshot(self, index: int, label: Optional[str] = None) -> PageCapture:
        """Capture the viewport as one page.

        Args:
            index: 0-based capture index
            label: Page label observed before the snapshot

        Returns:
            PageCapture with the compressed image

        Raises:
            CaptureError: Screenshot failed or produced no bytes
        """
        options = {'type': self.settings.image_type, 'full_page': False}
        if self.settings.image_type == 'jpeg':
            options['quality'] = self.settings.jpeg_quality

        try:
            image = await self.page.screenshot(**options)
        except PlaywrightError as e:
            raise CaptureError(f"Screenshot failed for page {index}: {e}", index=index)

        if not image:
            raise CaptureError(f"Screenshot for page {index} was empty", index=index)

        self.stats['snapshots'] += 1
        self.stats['bytes_captured'] += len(image)
        logger.debug(f"Captured page {index} ({len(image)} bytes, label={label!r})")
        return PageCapture(index=index, image=image, label=label)
