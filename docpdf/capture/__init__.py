"""Browser capture pipeline for docpdf.

This package drives a headless browser through a gated, paginated document
viewer and turns what it renders into a PDF.

Main Components:
- Browser Factory: one browser, context and page per conversion
- Page Session: navigation and condition-based waits
- Strategies: ordered locate/activate/fill/submit cascades
- Consent Dismisser: cookie and consent overlays
- Gate Resolver: consent, email and passcode gates in any order
- Capture Engine: chrome suppression, focus and viewport snapshots
- Pagination Walker: page-by-page capture until the document ends
- PDF Assembler: one PDF page per capture, sized to the image
- Capture Orchestrator: the conversion state machine and its fallbacks

Usage:
    from docpdf.capture import create_orchestrator

    orchestrator = create_orchestrator(config)
    result = await orchestrator.convert(request)
"""

__all__ = [
    # Components
    "BrowserFactory",
    "BrowserConfig",
    "BrowserSession",
    "PageSession",
    "ConsentDismisser",
    "GateResolver",
    "GateInspection",
    "CaptureEngine",
    "PaginationWalker",
    "PdfAssembler",
    "CaptureOrchestrator",
    "OrchestratorState",

    # Configuration
    "ConverterConfig",
    "ConfigManager",
    "WaitStrategy",
    "load_config",

    # Convenience functions
    "create_orchestrator",
    "create_default_factory",
]

from .browser_factory import (
    BrowserFactory,
    BrowserConfig,
    BrowserSession,
    create_default_factory,
)

from .config import (
    ConverterConfig,
    ConfigManager,
    WaitStrategy,
    load_config,
)

from .page_session import PageSession
from .consent import ConsentDismisser
from .gates import GateResolver, GateInspection
from .engine import CaptureEngine
from .pagination import PaginationWalker
from .assembler import PdfAssembler
from .orchestrator import CaptureOrchestrator, OrchestratorState, create_orchestrator
