"""End-to-end conversion scenarios against the in-process fake DOM.

Each scenario wires a FakePage (gates, viewer, download link) into the real
orchestrator, gate resolver, pagination walker and PDF assembler; only the
browser itself is replaced.
"""

import io

import pytest
from playwright.async_api import Error as PlaywrightError
from pypdf import PdfReader

from docpdf.capture.orchestrator import CaptureOrchestrator, OrchestratorState
from docpdf.errors import ACCESS_NOT_PROVIDED_MESSAGE
from docpdf.models.capture import CapturePath, ConversionRequest, ConversionStatus, Credentials, GateState
from tests.fakes import (
    FakeAPIResponse,
    FakeElement,
    FakePage,
    FakeSessionFactory,
    FakeViewer,
    install_consent,
    install_email_gate,
)

pytestmark = pytest.mark.integration

DOC_URL = "https://docs.example.com/view/abc123"


def pdf_page_count(pdf_bytes):
    return len(PdfReader(io.BytesIO(pdf_bytes)).pages)


def orchestrator_for(page, config):
    factory = FakeSessionFactory(page)
    orchestrator = CaptureOrchestrator(config, session_factory=factory, clock=page.clock)
    return orchestrator, factory


def request(email=None, passcode=None):
    return ConversionRequest(document_url=DOC_URL, credentials=Credentials(email=email, passcode=passcode))


class TestGatedConversions:

    @pytest.mark.asyncio
    async def test_email_gate_three_labelled_pages(self, test_config):
        page = FakePage(DOC_URL)
        viewer = FakeViewer(page, page_count=3)
        install_email_gate(page, then=viewer.install)
        orchestrator, factory = orchestrator_for(page, test_config)

        result = await orchestrator.convert(request(email="reader@example.com"))

        assert result.status == ConversionStatus.SUCCESS
        assert result.capture_path == CapturePath.PAGINATED
        assert [c.index for c in result.captures] == [0, 1, 2]
        assert [c.label for c in result.captures] == ["1", "2", "3"]
        assert pdf_page_count(result.pdf_bytes) == 3
        assert result.metadata['gates_cleared'] == [GateState.EMAIL_FORM.value]
        assert result.state_history == ['init', 'session_open', 'gate_resolving', 'capture_loop', 'assembling', 'done']
        assert factory.closed == 1

    @pytest.mark.asyncio
    async def test_missing_email_is_configuration_failure(self, test_config):
        page = FakePage(DOC_URL)
        install_email_gate(page, then=FakeViewer(page).install)
        orchestrator, factory = orchestrator_for(page, test_config)

        result = await orchestrator.convert(request())

        assert result.status == ConversionStatus.FAILED
        assert result.error_code == "configuration_error"
        assert result.user_message == ACCESS_NOT_PROVIDED_MESSAGE
        assert result.state_history[-1] == OrchestratorState.FAILED.value
        assert factory.opened == 1
        assert factory.closed == 1

    @pytest.mark.asyncio
    async def test_default_email_from_config(self, test_config):
        page = FakePage(DOC_URL)
        install_email_gate(page, then=FakeViewer(page, page_count=2).install)
        config = test_config.model_copy(update={'default_credentials': Credentials(email="ops@example.com")})
        orchestrator, _ = orchestrator_for(page, config)

        result = await orchestrator.convert(request())

        assert result.is_successful
        assert result.capture_count == 2

    @pytest.mark.asyncio
    async def test_consent_email_consent_again(self, test_config):
        page = FakePage(DOC_URL)
        viewer = FakeViewer(page, page_count=2)

        def after_email():
            install_consent(page, then=viewer.install)

        install_consent(page, then=lambda: install_email_gate(page, then=after_email))
        orchestrator, factory = orchestrator_for(page, test_config)

        result = await orchestrator.convert(request(email="reader@example.com"))

        assert result.is_successful
        assert result.metadata['gates_cleared'] == [
            GateState.CONSENT_OVERLAY.value,
            GateState.EMAIL_FORM.value,
            GateState.CONSENT_OVERLAY.value,
        ]
        assert pdf_page_count(result.pdf_bytes) == 2
        assert factory.closed == 1

    @pytest.mark.asyncio
    async def test_unresolvable_gate_fails(self, test_config):
        page = FakePage(DOC_URL)
        field, submit = install_email_gate(page)
        submit.on_click = None
        orchestrator, factory = orchestrator_for(page, test_config)

        result = await orchestrator.convert(request(email="reader@example.com"))

        assert result.error_code == "gate_unresolved"
        assert factory.closed == 1


class TestFallbacks:

    @pytest.mark.asyncio
    async def test_capture_loop_failure_degrades_to_single_page(self, test_config):
        page = FakePage(DOC_URL)
        FakeViewer(page, page_count=3).install()

        def broken_key(_key):
            raise PlaywrightError("Target page, context or browser has been closed")

        page.on_key = broken_key
        orchestrator, factory = orchestrator_for(page, test_config)

        result = await orchestrator.convert(request())

        assert result.status == ConversionStatus.SUCCESS
        assert result.capture_path == CapturePath.SINGLE_SHOT
        assert result.capture_count == 1
        assert pdf_page_count(result.pdf_bytes) == 1
        assert OrchestratorState.SINGLE_SHOT.value in result.state_history
        assert factory.closed == 1

    @pytest.mark.asyncio
    async def test_single_shot_disabled_fails(self, test_config):
        page = FakePage(DOC_URL)
        FakeViewer(page, page_count=3).install()

        def broken_key(_key):
            raise PlaywrightError("closed")

        page.on_key = broken_key
        config = test_config.model_copy(deep=True)
        config.orchestrator.single_shot_fallback = False
        orchestrator, _ = orchestrator_for(page, config)

        result = await orchestrator.convert(request())

        assert result.status == ConversionStatus.FAILED
        assert result.error_code == "conversion_failed"

    @pytest.mark.asyncio
    async def test_direct_download_preferred(self, test_config):
        page = FakePage(DOC_URL)
        FakeViewer(page, page_count=3).install()
        page.add(FakeElement('a', selectors={'a[download]'}, attrs={'href': '/download/abc123.pdf'}))
        original = b"%PDF-1.7\n" + b"0" * 400
        page.context.request.responses["https://docs.example.com/download/abc123.pdf"] = FakeAPIResponse(200, original)
        orchestrator, factory = orchestrator_for(page, test_config)

        result = await orchestrator.convert(request())

        assert result.capture_path == CapturePath.DIRECT_DOWNLOAD
        assert result.pdf_bytes == original
        assert result.captures == []
        assert page.screenshots == []
        assert factory.closed == 1

    @pytest.mark.asyncio
    async def test_non_pdf_download_falls_back_to_capture(self, test_config):
        page = FakePage(DOC_URL)
        FakeViewer(page, page_count=2).install()
        page.add(FakeElement('a', selectors={'a[download]'}, attrs={'href': '/download/abc123'}))
        page.context.request.responses["https://docs.example.com/download/abc123"] = FakeAPIResponse(
            200, b"<html>sign in</html>"
        )
        orchestrator, _ = orchestrator_for(page, test_config)

        result = await orchestrator.convert(request())

        assert result.capture_path == CapturePath.PAGINATED
        assert result.capture_count == 2


class TestEdgeDocuments:

    @pytest.mark.asyncio
    async def test_single_page_document(self, test_config):
        page = FakePage(DOC_URL)
        FakeViewer(page, page_count=1).install()
        orchestrator, _ = orchestrator_for(page, test_config)

        result = await orchestrator.convert(request())

        assert result.capture_count == 1
        assert pdf_page_count(result.pdf_bytes) == 1

    @pytest.mark.asyncio
    async def test_unlabelled_document_terminates(self, test_config):
        page = FakePage(DOC_URL)
        FakeViewer(page, page_count=4, label_format=None).install()
        orchestrator, _ = orchestrator_for(page, test_config)

        result = await orchestrator.convert(request())

        assert result.capture_count == 4
        assert pdf_page_count(result.pdf_bytes) == 4

    @pytest.mark.asyncio
    async def test_no_content_is_content_not_found(self, test_config):
        page = FakePage(DOC_URL)
        orchestrator, factory = orchestrator_for(page, test_config)

        result = await orchestrator.convert(request())

        assert result.error_code == "content_not_found"
        assert factory.closed == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("attrs", [
        {'type': 'number', 'class': 'page-spinner', 'name': 'page'},
        {'type': 'text', 'id': 'shipping-notes'},
    ])
    async def test_viewer_with_page_input_is_not_gated(self, test_config, attrs):
        page = FakePage(DOC_URL)
        FakeViewer(page, page_count=2).install()
        page.add(FakeElement('input', attrs=attrs))
        orchestrator, _ = orchestrator_for(page, test_config)

        result = await orchestrator.convert(request())

        assert result.status == ConversionStatus.SUCCESS
        assert result.metadata['gates_cleared'] == []
        assert pdf_page_count(result.pdf_bytes) == 2

    @pytest.mark.asyncio
    async def test_wrapping_viewer_captures_each_page_once(self, test_config):
        page = FakePage(DOC_URL)
        FakeViewer(page, page_count=3, wraps=True).install()
        orchestrator, _ = orchestrator_for(page, test_config)

        result = await orchestrator.convert(request())

        assert result.metadata['labels'] == ["1", "2", "3"]
        assert pdf_page_count(result.pdf_bytes) == 3
