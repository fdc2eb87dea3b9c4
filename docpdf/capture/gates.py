"""Gate detection and resolution.

The document viewer may present a consent overlay, an email-capture form, a
passcode form, or an email and passcode form together, in any order and more
than once (a consent banner can come back after the email is submitted).
GateResolver re-inspects the live page after every action and only reports
success after observing no gate on consecutive passes.
"""

import logging
from typing import Dict, List, Optional

from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from ..errors import ACCESS_NOT_PROVIDED_MESSAGE, ConfigurationError, GateUnresolvedError
from ..models.capture import Credentials, GateOutcome, GateState
from .config import GateSettings
from .consent import ConsentDismisser
from .page_session import PageSession
from .strategies import (
    CssStrategy,
    ElementMatch,
    ScoredInputStrategy,
    default_submit_strategies,
    fill_field,
    find_in_frames,
    submit_form,
)

logger = logging.getLogger(__name__)


EMAIL_STRATEGIES = [
    CssStrategy('email-type', ['input[type="email"]']),
    CssStrategy('email-name', [
        'input[name="visitor[email]"]',
        'input[name*="email" i]',
        'input[autocomplete="email"]',
    ]),
    CssStrategy('email-placeholder', [
        'input[placeholder*="email" i]',
        'input[aria-label*="email" i]',
    ]),
]

PASSCODE_STRATEGIES = [
    CssStrategy('passcode-type', ['input[type="password"]']),
    CssStrategy('passcode-attribute', [
        'input[name*="passcode" i]',
        'input[name*="password" i]',
        'input[placeholder*="passcode" i]',
        'input[placeholder*="password" i]',
        'input[id*="passcode" i]',
        'input[id*="password" i]',
        'input[class*="password" i]',
    ]),
    ScoredInputStrategy('passcode-scored', ['passcode', 'password', 'passwd', 'access code', 'pin']),
]


class GateInspection:
    """What one inspection pass found on the page."""

    def __init__(
        self,
        consent: Optional[ElementMatch] = None,
        email: Optional[ElementMatch] = None,
        passcode: Optional[ElementMatch] = None,
    ):
        self.consent = consent
        self.email = email
        self.passcode = passcode

    @property
    def state(self) -> GateState:
        # Consent first: an overlay intercepts clicks on any form beneath it
        if self.consent is not None:
            return GateState.CONSENT_OVERLAY
        if self.email is not None and self.passcode is not None:
            return GateState.EMAIL_AND_PASSCODE_FORM
        if self.email is not None:
            return GateState.EMAIL_FORM
        if self.passcode is not None:
            return GateState.PASSCODE_FORM
        return GateState.NO_GATE

    def shows(self, form: GateState) -> bool:
        """Whether the fields of a form gate are still on the page, overlays aside."""
        if form == GateState.EMAIL_FORM:
            return self.email is not None
        if form == GateState.PASSCODE_FORM:
            return self.passcode is not None
        if form == GateState.EMAIL_AND_PASSCODE_FORM:
            return self.email is not None or self.passcode is not None
        return self.state == form

    def __repr__(self) -> str:
        return f"GateInspection(state={self.state.value})"


class GateResolver:
    """Clears consent, email and passcode gates in whatever order they appear."""

    def __init__(
        self,
        session: PageSession,
        credentials: Optional[Credentials] = None,
        settings: Optional[GateSettings] = None,
    ):
        """Initialize gate resolver.

        Args:
            session: Page session for the conversion
            credentials: Email and passcode available for this request
            settings: Gate timing and attempt bounds
        """
        self.session = session
        self.credentials = credentials or Credentials()
        self.settings = settings or GateSettings()
        self.consent = ConsentDismisser(session, self.settings)
        self.submit_strategies = default_submit_strategies(self.settings.submit_labels)
        self._submissions: Dict[GateState, int] = {}
        self._cleared: List[GateState] = []
        self._pending: Optional[GateState] = None

    async def inspect(self) -> GateInspection:
        """Derive the current gate state from the live DOM across all frames."""
        consent = await self.consent.detect()
        email = await find_in_frames(self.session, EMAIL_STRATEGIES)
        passcode = await find_in_frames(self.session, PASSCODE_STRATEGIES)
        inspection = GateInspection(consent=consent, email=email, passcode=passcode)
        logger.debug(f"Inspection: {inspection}")
        return inspection

    async def resolve(self, url: str) -> GateOutcome:
        """Navigate to the document and clear every gate it presents.

        Args:
            url: Document URL

        Returns:
            GateOutcome; cleared=False when the overall timeout elapsed

        Raises:
            ConfigurationError: A gate needs a credential that was not provided
            GateUnresolvedError: A present gate could not be cleared
        """
        await self.session.navigate(url)

        deadline = self.session.deadline(self.settings.resolution_timeout_ms)
        clear_streak = 0
        passes = 0

        while not self.session.expired(deadline):
            passes += 1
            inspection = await self.inspect()
            state = inspection.state

            # A submitted form counts as cleared once a later pass no longer shows it
            if self._pending is not None and not inspection.shows(self._pending):
                self._cleared.append(self._pending)
                self._pending = None

            if state == GateState.NO_GATE:
                clear_streak += 1
                if clear_streak >= self.settings.required_clear_observations:
                    detail = f"Gates cleared after {passes} passes: {[g.value for g in self._cleared] or 'none'}"
                    logger.info(detail)
                    return GateOutcome(cleared=True, detail=detail, gates_cleared=list(self._cleared), passes=passes)
                await self.session.wait_for_settled()
                await self.session.pause(self.session.settings.poll_interval_ms)
                continue

            clear_streak = 0
            logger.info(f"Gate detected: {state.value}")

            if state == GateState.CONSENT_OVERLAY:
                if await self.consent.dismiss(inspection.consent):
                    self._cleared.append(state)
                continue

            await self._handle_form(state, inspection)

        detail = f"Gate resolution timed out after {passes} passes"
        logger.warning(detail)
        return GateOutcome(cleared=False, detail=detail, gates_cleared=list(self._cleared), passes=passes)

    async def _handle_form(self, state: GateState, inspection: GateInspection) -> None:
        attempts = self._submissions.get(state, 0)
        if attempts >= self.settings.max_submit_attempts:
            raise GateUnresolvedError(
                f"{state.value} still present after {attempts} submissions",
                gate=state.value,
                attempts=attempts,
            )

        fields = []
        if inspection.email is not None:
            if not self.credentials.has_email:
                raise ConfigurationError(
                    "Document requires an email address but none is configured",
                    missing="email",
                )
            fields.append((inspection.email, self.credentials.email, "email"))

        if inspection.passcode is not None:
            if not self.credentials.has_passcode:
                raise ConfigurationError(
                    "Document requires a passcode but none was provided",
                    missing="passcode",
                    user_message=ACCESS_NOT_PROVIDED_MESSAGE,
                )
            fields.append((inspection.passcode, self.credentials.passcode, "passcode"))

        for match, value, kind in fields:
            if not await fill_field(match.locator, value, self.settings.action_timeout_ms):
                raise GateUnresolvedError(f"Could not populate {kind} field", gate=state.value)
            logger.debug(f"Populated {kind} field ({match.strategy})")

        # Submit from the last populated field so Enter lands in the right form
        submit_from = fields[-1][0]
        strategy = await submit_form(
            submit_from,
            self.submit_strategies,
            self.settings.action_timeout_ms,
            start=attempts % len(self.submit_strategies),
        )
        self._submissions[state] = attempts + 1

        if strategy is None:
            raise GateUnresolvedError(
                f"Every submission strategy failed for {state.value}",
                gate=state.value,
                attempts=attempts + 1,
            )

        logger.info(f"Submitted {state.value} via {strategy}")
        await self._wait_after_submit(submit_from)
        self._pending = state

    async def _wait_after_submit(self, field: ElementMatch) -> None:
        """Wait for the submitted field to go away (navigation or re-render), bounded."""
        try:
            await field.locator.wait_for(state='detached', timeout=self.settings.submit_wait_ms)
        except PlaywrightTimeoutError:
            logger.debug("Submitted field still attached after submit wait")
        except PlaywrightError as e:
            # Frame was replaced by a navigation
            logger.debug(f"Submitted field's frame went away: {e}")
        await self.session.wait_for_settled()
