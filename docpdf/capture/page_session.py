"""Page session wrapper owning navigation and condition-based waits.

This module provides the PageSession class that every capture component
drives the live page through. It implements the configurable load-completion
wait strategies, the settled-state wait (no network activity and no visible
loading indicator), bounded predicate polling, and frame enumeration with the
main document first.
"""

import logging
import time
from typing import Awaitable, Callable, List, Optional, Sequence

from playwright.async_api import Frame, Page, Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from .config import WaitSettings, WaitStrategy

logger = logging.getLogger(__name__)


class PageSession:
    """Navigation and waiting on one live page."""

    def __init__(
        self,
        page: Page,
        settings: Optional[WaitSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize page session.

        Args:
            page: Playwright page for the conversion
            settings: Wait configuration
            clock: Monotonic clock in seconds, used for deadlines
        """
        self.page = page
        self.settings = settings or WaitSettings()
        self.clock = clock
        self.final_url: Optional[str] = None

    async def navigate(self, url: str) -> None:
        """Navigate to the target page and wait for load completion.

        Args:
            url: URL to navigate to
        """
        logger.info(f"Navigating to {url}")
        response = await self.page.goto(
            url,
            timeout=self.settings.load_timeout_ms or None,
            wait_until="domcontentloaded",
        )
        if response is not None:
            self.final_url = response.url
            if not response.ok:
                logger.warning(f"Document page responded with HTTP {response.status}")

        await self.wait_for_load_completion()
        await self.wait_for_settled()

    async def wait_for_load_completion(self) -> None:
        """Wait for page load completion based on configured strategy."""
        strategy = self.settings.wait_strategy
        timeout = self.settings.load_timeout_ms
        try:
            if strategy in (WaitStrategy.NETWORKIDLE, WaitStrategy.LOAD, WaitStrategy.DOMCONTENTLOADED):
                await self.page.wait_for_load_state(strategy, timeout=timeout)

            elif strategy == WaitStrategy.SELECTOR:
                if not self.settings.wait_selector:
                    raise ValueError("wait_selector required for selector strategy")
                await self.page.wait_for_selector(self.settings.wait_selector, timeout=timeout)

            elif strategy == WaitStrategy.TIMEOUT:
                await self.page.wait_for_timeout(timeout)

            logger.debug(f"Load completion detected: {strategy}")

        except PlaywrightTimeoutError:
            # Keep going with whatever has rendered
            logger.warning(f"Load wait timeout ({strategy})")

    async def wait_for_settled(self, timeout_ms: Optional[int] = None) -> bool:
        """Wait until the network is idle and no loading indicator is visible.

        Returns:
            True if both conditions were observed within the bound
        """
        timeout_ms = self.settings.settle_timeout_ms if timeout_ms is None else timeout_ms
        settled = True

        try:
            await self.page.wait_for_load_state("networkidle", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            logger.debug("Network did not go idle within settle timeout")
            settled = False

        selectors = ", ".join(self.settings.loading_indicator_selectors)
        if selectors:
            try:
                await self.page.locator(selectors).first.wait_for(state="hidden", timeout=timeout_ms)
            except PlaywrightTimeoutError:
                logger.debug("Loading indicator still visible after settle timeout")
                settled = False
            except PlaywrightError as e:
                logger.debug(f"Loading indicator check failed: {e}")

        return settled

    async def wait_until(
        self,
        predicate: Callable[[], Awaitable[bool]],
        timeout_ms: int,
        poll_ms: Optional[int] = None,
    ) -> bool:
        """Poll an async predicate until it holds or the bound elapses.

        Args:
            predicate: Async callable returning True when the condition holds
            timeout_ms: Maximum time to wait
            poll_ms: Poll interval (defaults to configured interval)

        Returns:
            True if the predicate held within the bound
        """
        poll_ms = poll_ms or self.settings.poll_interval_ms
        deadline = self.clock() + timeout_ms / 1000

        while True:
            try:
                if await predicate():
                    return True
            except PlaywrightError as e:
                logger.debug(f"Wait predicate raised: {e}")

            if self.clock() >= deadline:
                return False
            await self.page.wait_for_timeout(poll_ms)

    async def pause(self, ms: int) -> None:
        """Fixed delay, reserved for settle time that cannot be observed."""
        if ms > 0:
            await self.page.wait_for_timeout(ms)

    def deadline(self, timeout_ms: int) -> float:
        return self.clock() + timeout_ms / 1000

    def expired(self, deadline: float) -> bool:
        return self.clock() >= deadline

    def frames(self, url_hints: Sequence[str] = ()) -> List[Frame]:
        """Main frame first, then nested frames.

        Args:
            url_hints: Substrings; nested frames whose URL contains one are
                moved to the front of the nested list

        Returns:
            Ordered list of frames
        """
        main = self.page.main_frame
        nested = [frame for frame in self.page.frames if frame is not main]

        if url_hints:
            def hinted(frame: Frame) -> bool:
                url = (frame.url or "").lower()
                return any(hint in url for hint in url_hints)

            nested = [f for f in nested if hinted(f)] + [f for f in nested if not hinted(f)]

        return [main] + nested

    def __repr__(self) -> str:
        return f"PageSession(url={self.final_url or 'none'}, strategy={self.settings.wait_strategy})"
