"""Browser factory for opening and closing Playwright capture sessions.

This module provides the BrowserFactory class that owns the lifecycle of one
headless browser per conversion. Each BrowserSession holds exactly one
Playwright driver, one browser process, one context and one page, configured
for maximum compatibility with dynamic document viewers.
"""

import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional, Any, List, AsyncGenerator

from playwright.async_api import (
    Browser,
    BrowserContext,
    Playwright,
    async_playwright,
    Page,
    Error as PlaywrightError,
)

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

# Server-friendly launch flags; site isolation is relaxed so cross-origin
# gate frames stay reachable from the page.
DEFAULT_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-features=IsolateOrigins,site-per-process",
]


class BrowserEngineType:
    """Supported browser engine types."""
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


class BrowserConfig:
    """Configuration for browser launch and context setup."""

    def __init__(
        self,
        engine: str = BrowserEngineType.CHROMIUM,
        headless: bool = True,
        slow_mo: int = 0,
        viewport: Optional[Dict[str, int]] = None,
        user_agent: Optional[str] = DEFAULT_USER_AGENT,
        navigation_timeout_ms: int = 60000,
        bypass_csp: bool = True,
        java_script_enabled: bool = True,
        ignore_https_errors: bool = True,
        locale: Optional[str] = "en-US",
        launch_args: Optional[List[str]] = None,
        **kwargs
    ):
        """Initialize browser configuration.

        Args:
            engine: Browser engine to use (chromium, firefox, webkit)
            headless: Run browser without an OS window
            slow_mo: Slow down operations by specified milliseconds
            viewport: Viewport size dict with 'width' and 'height'
            user_agent: User-Agent string presented to the document site
            navigation_timeout_ms: Default navigation and action timeout
            bypass_csp: Bypass the page's Content-Security-Policy
            java_script_enabled: Enable JavaScript execution
            ignore_https_errors: Ignore SSL/TLS certificate errors
            locale: Locale for the browser context
            launch_args: Extra command line flags for the browser process
        """
        self.engine = engine
        self.headless = headless
        self.slow_mo = slow_mo
        self.viewport = viewport or {'width': 1280, 'height': 720}
        self.user_agent = user_agent
        self.navigation_timeout_ms = navigation_timeout_ms
        self.bypass_csp = bypass_csp
        self.java_script_enabled = java_script_enabled
        self.ignore_https_errors = ignore_https_errors
        self.locale = locale
        self.launch_args = list(DEFAULT_LAUNCH_ARGS) if launch_args is None else list(launch_args)
        self.extra_options = kwargs

    def to_browser_options(self) -> Dict[str, Any]:
        """Convert to Playwright browser launch options."""
        options = {
            'headless': self.headless,
            'slow_mo': self.slow_mo,
        }

        # Only chromium understands the chromium switches
        if self.launch_args and self.engine == BrowserEngineType.CHROMIUM:
            options['args'] = self.launch_args

        options.update(self.extra_options)

        return options

    def to_context_options(self) -> Dict[str, Any]:
        """Convert to Playwright browser context options."""
        options = {
            'viewport': self.viewport,
            'bypass_csp': self.bypass_csp,
        }

        if self.user_agent:
            options['user_agent'] = self.user_agent

        if self.ignore_https_errors:
            options['ignore_https_errors'] = True

        if not self.java_script_enabled:
            options['java_script_enabled'] = False

        if self.locale:
            options['locale'] = self.locale

        return options


class BrowserSession:
    """One browser process with one context and one page."""

    def __init__(self, config: BrowserConfig):
        self.config = config
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._closed = False

    async def open(self) -> 'BrowserSession':
        """Start Playwright, launch the browser and open the page."""
        if self.playwright is not None:
            logger.warning("Browser session already open")
            return self

        logger.info(f"Opening browser session (engine={self.config.engine}, headless={self.config.headless})")

        try:
            self.playwright = await async_playwright().start()

            if self.config.engine == BrowserEngineType.FIREFOX:
                browser_type = self.playwright.firefox
            elif self.config.engine == BrowserEngineType.WEBKIT:
                browser_type = self.playwright.webkit
            else:
                browser_type = self.playwright.chromium

            self.browser = await browser_type.launch(**self.config.to_browser_options())
            self.context = await self.browser.new_context(**self.config.to_context_options())
            self._page = await self.context.new_page()
            self._page.set_default_timeout(self.config.navigation_timeout_ms)
            self._page.set_default_navigation_timeout(self.config.navigation_timeout_ms)

            logger.info("Browser session opened")
            return self

        except Exception as e:
            logger.error(f"Failed to open browser session: {e}")
            await self.close()
            raise

    async def close(self) -> None:
        """Close page, context, browser and driver. Never raises."""
        if self._closed:
            return
        self._closed = True

        for name, closer in (
            ('page', self._page),
            ('context', self.context),
            ('browser', self.browser),
        ):
            if closer is None:
                continue
            try:
                await closer.close()
            except PlaywrightError as e:
                # Browser process already gone
                logger.debug(f"Ignoring error closing {name}: {e}")
            except Exception as e:
                logger.warning(f"Error closing {name}: {e}")

        if self.playwright is not None:
            try:
                await self.playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping Playwright: {e}")

        self._page = None
        self.context = None
        self.browser = None
        self.playwright = None
        logger.info("Browser session closed")

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser session not open. Call open() first.")
        return self._page

    @property
    def is_open(self) -> bool:
        """Check if the session's browser is still running."""
        if self.browser is None or self._closed:
            return False
        try:
            return self.browser.is_connected()
        except Exception:
            return False

    def __repr__(self) -> str:
        return (
            f"BrowserSession(engine={self.config.engine}, "
            f"headless={self.config.headless}, open={self.is_open})"
        )


class BrowserFactory:
    """Factory that opens one BrowserSession per conversion."""

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig()

    async def open(self) -> BrowserSession:
        """Open a new browser session."""
        session = BrowserSession(self.config)
        return await session.open()

    async def close(self, session: BrowserSession) -> None:
        """Close a session; a session whose browser is already gone is a no-op."""
        await session.close()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[BrowserSession, None]:
        """Context manager for one browser session.

        Yields:
            Open session that is closed on every exit path
        """
        session = await self.open()
        try:
            yield session
        finally:
            await self.close(session)

    def __repr__(self) -> str:
        return f"BrowserFactory(engine={self.config.engine}, headless={self.config.headless})"


def create_browser_factory(
    engine: str = BrowserEngineType.CHROMIUM,
    headless: bool = True,
    **kwargs
) -> BrowserFactory:
    """Create a browser factory with simple configuration.

    Args:
        engine: Browser engine to use
        headless: Run in headless mode
        **kwargs: Additional configuration options

    Returns:
        Configured BrowserFactory instance
    """
    config = BrowserConfig(engine=engine, headless=headless, **kwargs)
    return BrowserFactory(config)


def create_default_factory() -> BrowserFactory:
    """Create browser factory with default server configuration."""
    return create_browser_factory(
        engine=BrowserEngineType.CHROMIUM,
        headless=True,
        viewport={'width': 1280, 'height': 720},
    )


def create_debug_factory() -> BrowserFactory:
    """Create browser factory optimized for watching a conversion."""
    return create_browser_factory(
        engine=BrowserEngineType.CHROMIUM,
        headless=False,
        slow_mo=250,
        viewport={'width': 1280, 'height': 720},
    )
