"""Pagination walker.

Walks a paginated document viewer from its current page to the end using the
viewer's own next-page keyboard shortcut, taking one capture per page. The
end of the document is detected when the viewer shows a page label already
captured, or, for viewers that expose no label, a snapshot byte-identical to
one already captured. This covers viewers that stay put on the last page and
viewers that wrap around to the first. A hard page cap bounds the walk either way.
"""

import hashlib
import logging
import re
from typing import List, Optional, Set, Tuple

from playwright.async_api import Error as PlaywrightError

from ..errors import CaptureError
from ..models.capture import PageCapture
from .config import CaptureSettings
from .engine import CaptureEngine
from .page_session import PageSession

logger = logging.getLogger(__name__)

# "3 of 12", "3 / 12", "Page 3 of 12"
_POSITION_PATTERN = re.compile(r'(\d+)\s*(?:of|/)\s*(\d+)', re.IGNORECASE)


def parse_position(label: Optional[str]) -> Optional[Tuple[int, int]]:
    """Extract (current, total) from a page label, if it reports both."""
    if not label:
        return None
    match = _POSITION_PATTERN.search(label)
    if not match:
        return None
    current, total = int(match.group(1)), int(match.group(2))
    if total <= 0:
        return None
    return current, total


class PaginationWalker:
    """Capture every page of the document, in order, exactly once."""

    def __init__(
        self,
        session: PageSession,
        engine: Optional[CaptureEngine] = None,
        settings: Optional[CaptureSettings] = None,
    ):
        """Initialize pagination walker.

        Args:
            session: Page session positioned on the first document page
            engine: Capture engine (created from settings if omitted)
            settings: Capture settings
        """
        self.session = session
        self.settings = settings or (engine.settings if engine else CaptureSettings())
        self.engine = engine or CaptureEngine(session, self.settings)
        self._started = False

    async def read_label(self) -> Optional[str]:
        """Read the viewer's current page label, main document first."""
        for frame in self.session.frames():
            for selector in self.settings.label_selectors:
                try:
                    locator = frame.locator(selector).first
                    if await locator.count() == 0:
                        continue
                    text = await locator.text_content()
                except PlaywrightError as e:
                    logger.debug(f"Label read via {selector} failed: {e}")
                    continue
                if text and text.strip():
                    return ' '.join(text.split())
        return None

    async def advance(self, label: Optional[str]) -> None:
        """Send the next-page key and wait for the viewer to move on."""
        await self.session.page.keyboard.press(self.settings.next_page_key)
        await self.session.wait_for_settled(self.settings.page_settle_timeout_ms)

        if label is None:
            # No observable page signal; give the viewer time to render
            await self.session.pause(self.settings.render_pause_ms)
            return

        async def label_changed() -> bool:
            return await self.read_label() != label

        if not await self.session.wait_until(label_changed, self.settings.label_change_timeout_ms):
            logger.debug(f"Page label stayed at {label!r} after advancing")

    async def capture_all(self) -> List[PageCapture]:
        """Capture all pages.

        Returns:
            Captures with contiguous indices from 0

        Raises:
            CaptureError: Walk already performed on this walker, or a snapshot failed
        """
        if self._started:
            raise CaptureError("Pagination walk is not restartable; open a new session to recapture")
        self._started = True

        captures: List[PageCapture] = []
        seen_labels: Set[str] = set()
        seen_digests: Set[str] = set()

        while True:
            label = await self.read_label()
            await self.engine.prepare()
            capture = await self.engine.snapshot(len(captures), label)

            digest = hashlib.sha256(capture.image).hexdigest()
            if self._is_repeat(capture, digest, seen_labels, seen_digests):
                logger.info(f"End of document detected after {len(captures)} pages")
                break

            captures.append(capture)
            if label is not None:
                seen_labels.add(label)
            seen_digests.add(digest)
            logger.info(f"Captured page {capture.index + 1}" + (f" ({label})" if label else ""))

            position = parse_position(label)
            if position and position[0] >= position[1]:
                logger.info(f"Viewer reports last page ({label}), stopping")
                break

            if len(captures) >= self.settings.max_pages:
                logger.warning(f"Reached page cap ({self.settings.max_pages}), stopping")
                break

            await self.advance(label)

        return captures

    @staticmethod
    def _is_repeat(capture: PageCapture, digest: str, seen_labels: Set[str], seen_digests: Set[str]) -> bool:
        # A viewer that wraps to page 1 or ignores the key shows a page we already have
        if capture.label is not None:
            return capture.label in seen_labels
        return digest in seen_digests
