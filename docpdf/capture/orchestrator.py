"""Conversion orchestrator.

This module provides the CaptureOrchestrator class that runs one conversion
end to end as a small state machine:

    init -> session_open -> gate_resolving -> capture_loop -> assembling -> done

with a transition to ``failed`` from every state. The browser session is opened
once per request and closed on every exit path. Two fallbacks apply after
gating succeeds: a direct download link, when present, short-circuits raster
capture entirely; a failed pagination walk degrades to a single snapshot of
whatever is currently rendered.

All state is per invocation; one orchestrator can serve concurrent requests.
"""

import logging
import time
from enum import Enum
from typing import Callable, List, Optional
from urllib.parse import urljoin

from playwright.async_api import Error as PlaywrightError

from ..errors import (
    CaptureError,
    ConfigurationError,
    ContentNotFoundError,
    ConversionError,
    GateUnresolvedError,
)
from ..models.capture import CapturePath, ConversionRequest, ConversionResult, PageCapture
from .assembler import PDF_MAGIC, PdfAssembler
from .browser_factory import BrowserFactory
from .config import ConverterConfig
from .engine import CaptureEngine
from .gates import GateResolver
from .page_session import PageSession
from .pagination import PaginationWalker
from .strategies import CssStrategy, find_in_frames

logger = logging.getLogger(__name__)


class OrchestratorState(str, Enum):
    """Conversion state machine states."""
    INIT = "init"
    SESSION_OPEN = "session_open"
    GATE_RESOLVING = "gate_resolving"
    DIRECT_DOWNLOAD = "direct_download"
    CAPTURE_LOOP = "capture_loop"
    SINGLE_SHOT = "single_shot"
    ASSEMBLING = "assembling"
    DONE = "done"
    FAILED = "failed"


class ConversionRun:
    """Mutable bookkeeping for one conversion."""

    def __init__(self, request: ConversionRequest, clock: Callable[[], float]):
        self.request = request
        self.clock = clock
        self.started = clock()
        self.history: List[OrchestratorState] = [OrchestratorState.INIT]

    def transition(self, state: OrchestratorState) -> None:
        logger.debug(f"{self.history[-1].value} -> {state.value}")
        self.history.append(state)

    @property
    def state(self) -> OrchestratorState:
        return self.history[-1]

    def summary(self) -> dict:
        return {
            'state_history': [state.value for state in self.history],
            'duration_ms': (self.clock() - self.started) * 1000,
        }


class CaptureOrchestrator:
    """Run conversions from ConversionRequest to ConversionResult."""

    def __init__(
        self,
        config: Optional[ConverterConfig] = None,
        session_factory: Optional[BrowserFactory] = None,
        assembler: Optional[PdfAssembler] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize orchestrator.

        Args:
            config: Converter configuration (defaults if None)
            session_factory: Opens browser sessions (built from config if None)
            assembler: PDF assembler (built from config if None)
            clock: Monotonic clock in seconds for all deadlines
        """
        self.config = config or ConverterConfig()
        self.session_factory = session_factory or BrowserFactory(self.config.get_browser_config())
        self.assembler = assembler or PdfAssembler(self.config.assembly)
        self.clock = clock

    async def convert(self, request: ConversionRequest) -> ConversionResult:
        """Convert one document.

        Classified failures are returned, never raised.

        Args:
            request: Document URL and credentials

        Returns:
            ConversionResult (success with PDF bytes, or failure)
        """
        run = ConversionRun(request, self.clock)
        logger.info(f"Starting conversion for {request.host}")

        try:
            result = await self._run(run)
        except ConversionError as e:
            run.transition(OrchestratorState.FAILED)
            logger.error(f"Conversion failed ({e.error_code}) in {run.history[-2].value}: {e.message}")
            return ConversionResult.failure(e, **run.summary())
        except Exception as e:
            run.transition(OrchestratorState.FAILED)
            logger.exception(f"Unexpected error during conversion: {e}")
            return ConversionResult.failure(ConversionError(f"Unexpected error: {e}"), **run.summary())

        run.transition(OrchestratorState.DONE)
        result = result.model_copy(update=run.summary())
        logger.info(
            f"Conversion finished via {result.capture_path.value}: "
            f"{len(result.pdf_bytes)} bytes in {result.duration_ms:.0f}ms"
        )
        return result

    async def _run(self, run: ConversionRun) -> ConversionResult:
        credentials = run.request.credentials.merged_with(self.config.default_credentials)

        async with self.session_factory.session() as browser_session:
            run.transition(OrchestratorState.SESSION_OPEN)
            session = PageSession(browser_session.page, self.config.waits, clock=self.clock)

            run.transition(OrchestratorState.GATE_RESOLVING)
            resolver = GateResolver(session, credentials, self.config.gates)
            outcome = await resolver.resolve(run.request.document_url)
            if not outcome.cleared:
                raise GateUnresolvedError(outcome.detail, attempts=outcome.passes)

            if self.config.orchestrator.prefer_direct_download:
                pdf_bytes = await self.fetch_direct_download(session)
                if pdf_bytes is not None:
                    run.transition(OrchestratorState.DIRECT_DOWNLOAD)
                    return ConversionResult.success(
                        pdf_bytes,
                        CapturePath.DIRECT_DOWNLOAD,
                        metadata={'gates_cleared': [g.value for g in outcome.gates_cleared]},
                    )

            await self.ensure_content(session, run.request.document_url)

            engine = CaptureEngine(session, self.config.capture)
            run.transition(OrchestratorState.CAPTURE_LOOP)
            capture_path = CapturePath.PAGINATED
            try:
                captures = await PaginationWalker(session, engine, self.config.capture).capture_all()
                run.transition(OrchestratorState.ASSEMBLING)
                pdf_bytes = self.assembler.assemble(captures)
            except ConfigurationError:
                raise
            except Exception as e:
                if not self.config.orchestrator.single_shot_fallback:
                    raise
                logger.warning(f"Paginated capture failed in {run.state.value}, taking single snapshot: {e}")
                run.transition(OrchestratorState.SINGLE_SHOT)
                captures = [await self.single_shot(engine)]
                capture_path = CapturePath.SINGLE_SHOT
                run.transition(OrchestratorState.ASSEMBLING)
                pdf_bytes = self.assembler.assemble(captures)

            return ConversionResult.success(
                pdf_bytes,
                capture_path,
                captures=captures,
                metadata={
                    'gates_cleared': [g.value for g in outcome.gates_cleared],
                    'labels': [capture.label for capture in captures],
                },
            )

    async def ensure_content(self, session: PageSession, url: str) -> None:
        """Wait (bounded) for renderable document content.

        Raises:
            ContentNotFoundError: No content selector matched in any frame
        """
        strategy = CssStrategy('content', self.config.capture.content_selectors)

        async def content_present() -> bool:
            return await find_in_frames(session, [strategy]) is not None

        if not await session.wait_until(content_present, self.config.capture.content_timeout_ms):
            raise ContentNotFoundError(url=url)

    async def fetch_direct_download(self, session: PageSession) -> Optional[bytes]:
        """Fetch the document's own PDF when the viewer links to it.

        The request goes through the page's browser context so cookies set
        while clearing gates are sent along.

        Returns:
            PDF bytes, or None when no link exists or it did not yield a PDF
        """
        strategy = CssStrategy('direct-download', self.config.orchestrator.direct_download_selectors)
        match = await find_in_frames(session, [strategy])
        if match is None:
            return None

        try:
            href = await match.locator.get_attribute('href')
        except PlaywrightError as e:
            logger.debug(f"Download link unreadable: {e}")
            return None
        if not href:
            return None

        url = urljoin(match.frame.url or session.page.url, href)
        logger.info("Direct download link found, fetching original document")

        try:
            response = await session.page.context.request.get(
                url, timeout=self.config.orchestrator.download_timeout_ms
            )
            if not response.ok:
                logger.warning(f"Direct download returned HTTP {response.status}, capturing instead")
                return None
            body = await response.body()
        except PlaywrightError as e:
            logger.warning(f"Direct download failed, capturing instead: {e}")
            return None

        if not body.startswith(PDF_MAGIC):
            logger.warning("Direct download is not a PDF, capturing instead")
            return None
        return body

    async def single_shot(self, engine: CaptureEngine) -> PageCapture:
        """Best-effort snapshot of whatever is currently rendered.

        Raises:
            CaptureError: Snapshot failed
        """
        await engine.suppress_chrome()
        return await engine.snapshot(0, label=None)


def create_orchestrator(config: Optional[ConverterConfig] = None) -> CaptureOrchestrator:
    """Create an orchestrator from configuration."""
    return CaptureOrchestrator(config or ConverterConfig())
