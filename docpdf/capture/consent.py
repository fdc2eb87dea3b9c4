"""Consent overlay detection and dismissal.

Cookie and consent banners can sit in the main document or in an embedded
consent-platform frame and have to be accepted before gate forms and document
content become clickable. Known platform buttons are tried first, then
attribute and text heuristics; as a last resort the overlay is hidden with
injected CSS.
"""

import logging
from enum import Enum
from typing import Optional

from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from .config import GateSettings
from .page_session import PageSession
from .strategies import CssStrategy, ElementMatch, TextStrategy, activate, find_in_frames

logger = logging.getLogger(__name__)


class CMPPlatform(str, Enum):
    """Known consent platforms, identified by the strategy that matched."""
    ONETRUST = "onetrust"
    COOKIEBOT = "cookiebot"
    TRUSTARC = "trustarc"
    QUANTCAST = "quantcast"
    CUSTOM = "custom"


PLATFORM_ACCEPT_SELECTORS = {
    CMPPlatform.ONETRUST: ['#onetrust-accept-btn-handler', '#accept-recommended-btn-handler'],
    CMPPlatform.COOKIEBOT: [
        '#CybotCookiebotDialogBodyLevelButtonLevelOptinAllowAll',
        '#CybotCookiebotDialogBodyButtonAccept',
    ],
    CMPPlatform.TRUSTARC: ['#truste-consent-button', '.trustarc-agree-btn'],
    CMPPlatform.QUANTCAST: ['.qc-cmp2-summary-buttons button[mode="primary"]'],
}

GENERIC_ACCEPT_SELECTORS = [
    '#accept-cookies',
    '#acceptAllButton',
    'button[id*="accept" i]',
    'button[class*="accept" i]',
    '[data-testid*="accept" i]',
    'button[aria-label*="accept" i]',
    'button[class*="consent" i]',
]

ACCEPT_LABELS = [
    'Accept all',
    'Accept all cookies',
    'Allow all',
    'Accept cookies',
    'I agree',
    'Agree',
    'Accept',
    'Got it',
    'OK',
]

# iframe sources of hosted consent platforms
CONSENT_FRAME_HINTS = ('consent', 'cookie', 'cmp', 'privacy', 'sp_message', 'onetrust', 'trustarc')

CONSENT_HIDE_CSS = """
#onetrust-consent-sdk, #onetrust-banner-sdk, #CybotCookiebotDialog, #truste-consent-track,
.qc-cmp2-container, [id*="cookie-banner" i], [class*="cookie-banner" i],
[id*="consent" i][role="dialog"], [class*="consent" i][role="dialog"],
iframe[src*="consent" i], iframe[src*="sp_message" i] {
    display: none !important;
}
"""


def build_consent_strategies():
    strategies = [
        CssStrategy(platform.value, selectors)
        for platform, selectors in PLATFORM_ACCEPT_SELECTORS.items()
    ]
    strategies.append(CssStrategy('consent-attribute', GENERIC_ACCEPT_SELECTORS))
    strategies.append(TextStrategy('consent-text', ACCEPT_LABELS))
    return strategies


def platform_for(match: ElementMatch) -> CMPPlatform:
    try:
        return CMPPlatform(match.strategy)
    except ValueError:
        return CMPPlatform.CUSTOM


class ConsentDismisser:
    """Finds and accepts consent overlays across all frames."""

    def __init__(self, session: PageSession, settings: Optional[GateSettings] = None):
        self.session = session
        self.settings = settings or GateSettings()
        self.strategies = build_consent_strategies()
        self.failed_attempts = 0
        self.suppressed = False

    async def detect(self) -> Optional[ElementMatch]:
        """Locate a visible accept control, or None when no overlay is present."""
        if self.suppressed:
            return None
        return await find_in_frames(self.session, self.strategies, CONSENT_FRAME_HINTS)

    async def dismiss(self, match: Optional[ElementMatch] = None) -> bool:
        """Accept the overlay.

        Absence of an overlay counts as dismissed. Repeated failures end in
        CSS suppression so the overlay no longer blocks the resolution.

        Returns:
            True if the overlay is gone (or was never there)
        """
        match = match or await self.detect()
        if match is None:
            return True

        platform = platform_for(match)
        logger.info(f"Consent overlay detected ({platform.value}), accepting")

        if await activate(match.locator, self.settings.action_timeout_ms):
            try:
                await match.locator.wait_for(state='hidden', timeout=self.settings.consent_hide_timeout_ms)
                logger.info("Consent overlay dismissed")
                return True
            except PlaywrightTimeoutError:
                logger.debug("Consent control still visible after activation")
            except PlaywrightError as e:
                # Frame navigated away with the overlay
                logger.debug(f"Consent control detached: {e}")
                return True

        self.failed_attempts += 1
        logger.warning(
            f"Consent dismissal attempt {self.failed_attempts}/{self.settings.max_consent_attempts} failed"
        )

        if self.failed_attempts >= self.settings.max_consent_attempts:
            await self.suppress()
            return True
        return False

    async def suppress(self) -> None:
        """Hide consent containers with injected CSS in every frame."""
        for frame in self.session.frames():
            try:
                await frame.add_style_tag(content=CONSENT_HIDE_CSS)
            except PlaywrightError as e:
                logger.debug(f"Consent CSS injection failed for frame: {e}")
        self.suppressed = True
        logger.warning("Consent overlay could not be accepted, suppressed with CSS")
