"""Shared test fixtures and configuration for docpdf tests."""

import sys
from pathlib import Path

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from docpdf.capture.config import ConverterConfig, WaitSettings
from docpdf.capture.page_session import PageSession
from docpdf.models.capture import Credentials, ConversionRequest, PageCapture
from tests.fakes import FakePage, make_image


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests with no browser")
    config.addinivalue_line("markers", "integration: end-to-end scenarios against the fake DOM")
    config.addinivalue_line("markers", "slow: tests that take longer to run")


@pytest.fixture
def fake_page():
    """Empty fake page on a document URL."""
    return FakePage()


@pytest.fixture
def page_session(fake_page):
    """Page session over the fake page, driven by its fake clock."""
    return PageSession(fake_page, WaitSettings(), clock=fake_page.clock)


@pytest.fixture
def test_config():
    """Converter configuration with short bounds for scenarios."""
    return ConverterConfig(
        environment="test",
        gates={'resolution_timeout_ms': 20000, 'submit_wait_ms': 2000},
        capture={'max_pages': 20, 'render_pause_ms': 100},
    )


@pytest.fixture
def sample_request():
    """Conversion request with an email credential."""
    return ConversionRequest(
        document_url="https://docs.example.com/view/abc123",
        raw_trigger_text="https://docs.example.com/view/abc123",
        credentials=Credentials(email="reader@example.com"),
    )


@pytest.fixture
def sample_captures():
    """Three decodable captures with distinct sizes."""
    sizes = [(64, 48), (80, 60), (100, 40)]
    return [
        PageCapture(index=i, image=make_image((20 * i, 120, 220), size=size), label=str(i + 1))
        for i, size in enumerate(sizes)
    ]
