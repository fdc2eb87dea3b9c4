"""Pluggable selector, activation, fill and submission strategies.

Gate UI differs from site to site, so every lookup or interaction is an
ordered list of small strategy objects tried in sequence until one succeeds.
A strategy that raises a Playwright error or finds nothing simply yields to
the next one; only the caller decides whether exhausting the list is fatal.
"""

import logging
import re
from typing import List, Optional, Sequence

from playwright.async_api import Frame, Locator, Error as PlaywrightError

from .page_session import PageSession

logger = logging.getLogger(__name__)


class ElementMatch:
    """An element located by a strategy, with the frame it lives in."""

    def __init__(self, locator: Locator, frame: Frame, strategy: str, is_main_frame: bool = True):
        self.locator = locator
        self.frame = frame
        self.strategy = strategy
        self.is_main_frame = is_main_frame

    def __repr__(self) -> str:
        where = "main" if self.is_main_frame else f"frame {self.frame.url[:80]}"
        return f"ElementMatch(strategy={self.strategy}, in={where})"


async def _visible(locator: Locator) -> bool:
    return await locator.count() > 0 and await locator.is_visible()


# Locate strategies

class LocateStrategy:
    """Base class for strategies that find one element in a frame."""

    def __init__(self, name: str):
        self.name = name

    async def locate(self, frame: Frame) -> Optional[Locator]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name})"


class CssStrategy(LocateStrategy):
    """First visible element matching any selector, in priority order."""

    def __init__(self, name: str, selectors: Sequence[str]):
        super().__init__(name)
        self.selectors = list(selectors)

    async def locate(self, frame: Frame) -> Optional[Locator]:
        for selector in self.selectors:
            locator = frame.locator(selector).first
            if await _visible(locator):
                return locator
        return None


class TextStrategy(LocateStrategy):
    """First visible clickable element whose text content matches a label."""

    def __init__(
        self,
        name: str,
        labels: Sequence[str],
        scope: str = 'button, [role="button"], a, input[type="submit"]',
    ):
        super().__init__(name)
        self.labels = list(labels)
        self.scope = scope

    async def locate(self, frame: Frame) -> Optional[Locator]:
        for label in self.labels:
            pattern = re.compile(rf"^\W*{re.escape(label)}\W*$", re.IGNORECASE)
            locator = frame.locator(self.scope).filter(has_text=pattern).first
            if await _visible(locator):
                return locator
        return None


class ScoredInputStrategy(LocateStrategy):
    """Enumerate all inputs and pick the best scoring one by whole-word keyword hits."""

    ATTRIBUTES = ('name', 'placeholder', 'id', 'aria-label', 'autocomplete')
    EXCLUDED_TYPES = (
        'hidden', 'submit', 'button', 'checkbox', 'radio', 'email',
        'number', 'search', 'tel', 'url', 'range', 'file', 'date', 'color',
    )

    def __init__(
        self,
        name: str,
        keywords: Sequence[str],
        excluded_types: Sequence[str] = EXCLUDED_TYPES,
        min_score: int = 1,
    ):
        super().__init__(name)
        self.keywords = [keyword.lower() for keyword in keywords]
        # "pin" must not hit "page-spinner"; "access code" also matches "access_code"
        self.patterns = [
            re.compile(r'(?<![a-z0-9])' + r'[\s_-]?'.join(map(re.escape, re.split(r'[\s_-]+', keyword))) + r'(?![a-z0-9])')
            for keyword in self.keywords
        ]
        self.excluded_types = set(excluded_types)
        self.min_score = min_score

    async def score(self, locator: Locator) -> int:
        input_type = (await locator.get_attribute('type') or 'text').lower()
        if input_type in self.excluded_types:
            return 0
        score = 0
        for attribute in self.ATTRIBUTES:
            value = (await locator.get_attribute(attribute) or '').lower()
            score += sum(1 for pattern in self.patterns if pattern.search(value))
        return score

    async def locate(self, frame: Frame) -> Optional[Locator]:
        inputs = frame.locator('input')
        best: Optional[Locator] = None
        best_score = 0
        for i in range(await inputs.count()):
            candidate = inputs.nth(i)
            if not await candidate.is_visible():
                continue
            score = await self.score(candidate)
            if score > best_score:
                best, best_score = candidate, score
        if best is not None and best_score >= self.min_score:
            return best
        return None


async def find_in_frames(
    session: PageSession,
    strategies: Sequence[LocateStrategy],
    frame_hints: Sequence[str] = (),
) -> Optional[ElementMatch]:
    """Search the main document, then every nested frame, strategy by strategy.

    Args:
        session: Page session whose frames are searched
        strategies: Locate strategies in priority order
        frame_hints: URL substrings that move matching nested frames forward

    Returns:
        First match, or None when every strategy misses in every frame
    """
    main = session.page.main_frame
    for frame in session.frames(frame_hints):
        for strategy in strategies:
            try:
                locator = await strategy.locate(frame)
            except PlaywrightError as e:
                # Detached or cross-origin frames raise here
                logger.debug(f"Strategy {strategy.name} failed in frame: {e}")
                continue
            if locator is not None:
                match = ElementMatch(locator, frame, strategy.name, is_main_frame=frame is main)
                logger.debug(f"Located element: {match}")
                return match
    return None


# Activation strategies

class ActivationStrategy:
    """Base class for ways to activate (click) an element."""

    name = "activation"

    async def activate(self, locator: Locator, timeout_ms: int) -> None:
        raise NotImplementedError


class DirectClick(ActivationStrategy):
    name = "click"

    async def activate(self, locator: Locator, timeout_ms: int) -> None:
        await locator.click(timeout=timeout_ms)


class SyntheticClickEvent(ActivationStrategy):
    name = "dispatch_event"

    async def activate(self, locator: Locator, timeout_ms: int) -> None:
        await locator.dispatch_event('click', timeout=timeout_ms)


class ScriptClick(ActivationStrategy):
    name = "script_click"

    async def activate(self, locator: Locator, timeout_ms: int) -> None:
        await locator.evaluate("el => el.click()")


ACTIVATION_STRATEGIES: List[ActivationStrategy] = [DirectClick(), SyntheticClickEvent(), ScriptClick()]


async def activate(
    locator: Locator,
    timeout_ms: int,
    strategies: Sequence[ActivationStrategy] = ACTIVATION_STRATEGIES,
) -> bool:
    """Activate an element, falling back through the activation strategies.

    Returns:
        True if any strategy completed without error
    """
    for strategy in strategies:
        try:
            await strategy.activate(locator, timeout_ms)
            logger.debug(f"Activated element via {strategy.name}")
            return True
        except PlaywrightError as e:
            logger.debug(f"Activation via {strategy.name} failed: {e}")
    return False


# Fill strategies

async def fill_field(locator: Locator, value: str, timeout_ms: int) -> bool:
    """Populate an input, falling back to per-key typing.

    Returns:
        True if the field was populated
    """
    try:
        await locator.fill(value, timeout=timeout_ms)
        return True
    except PlaywrightError as e:
        logger.debug(f"fill() failed, typing instead: {e}")

    try:
        await locator.click(timeout=timeout_ms)
        await locator.press_sequentially(value, timeout=timeout_ms)
        return True
    except PlaywrightError as e:
        logger.debug(f"Typing into field failed: {e}")
        return False


# Submission strategies

class SubmitStrategy:
    """Base class for ways to submit a populated form."""

    name = "submit"

    async def submit(self, match: ElementMatch, timeout_ms: int) -> bool:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class LabelSubmit(SubmitStrategy):
    """Click a visible button whose text is a known submit label."""

    name = "label"

    def __init__(self, labels: Sequence[str]):
        self.locate_strategy = TextStrategy('submit-label', labels)

    async def submit(self, match: ElementMatch, timeout_ms: int) -> bool:
        button = await self.locate_strategy.locate(match.frame)
        if button is None:
            return False
        return await activate(button, timeout_ms)


class SelectorSubmit(SubmitStrategy):
    """Click the first visible generic submit control."""

    name = "selector"

    SELECTORS = [
        'button[type="submit"]',
        'input[type="submit"]',
        '[data-testid*="submit"]',
        'form button',
        'button[class*="submit"]',
        'button[class*="continue"]',
    ]

    def __init__(self, selectors: Optional[Sequence[str]] = None):
        self.locate_strategy = CssStrategy('submit-selector', selectors or self.SELECTORS)

    async def submit(self, match: ElementMatch, timeout_ms: int) -> bool:
        button = await self.locate_strategy.locate(match.frame)
        if button is None:
            return False
        return await activate(button, timeout_ms)


class EnterKeySubmit(SubmitStrategy):
    """Press Enter inside the populated field."""

    name = "enter_key"

    async def submit(self, match: ElementMatch, timeout_ms: int) -> bool:
        try:
            await match.locator.press('Enter', timeout=timeout_ms)
            return True
        except PlaywrightError as e:
            logger.debug(f"Enter key submission failed: {e}")
            return False


def default_submit_strategies(labels: Sequence[str]) -> List[SubmitStrategy]:
    return [LabelSubmit(labels), SelectorSubmit(), EnterKeySubmit()]


async def submit_form(
    match: ElementMatch,
    strategies: Sequence[SubmitStrategy],
    timeout_ms: int,
    start: int = 0,
) -> Optional[str]:
    """Try each submission strategy, beginning at ``start`` and wrapping around.

    Returns:
        Name of the strategy that submitted, or None if all failed
    """
    count = len(strategies)
    for offset in range(count):
        strategy = strategies[(start + offset) % count]
        try:
            if await strategy.submit(match, timeout_ms):
                logger.debug(f"Submitted form via {strategy.name}")
                return strategy.name
        except PlaywrightError as e:
            logger.debug(f"Submission via {strategy.name} failed: {e}")
    return None
