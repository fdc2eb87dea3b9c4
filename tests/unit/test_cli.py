"""Unit tests for the command line interface."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from docpdf import __version__
from docpdf.cli.main import ExitCode, app
from docpdf.errors import ConfigurationError, GateUnresolvedError
from docpdf.models.capture import CapturePath, ConversionResult, PageCapture

runner = CliRunner()


@pytest.fixture
def orchestrator():
    """Patch the orchestrator factory and capture the request it receives."""
    mock = MagicMock()
    mock.convert = AsyncMock()
    with patch('docpdf.cli.main.create_orchestrator', return_value=mock) as factory:
        mock.factory = factory
        yield mock


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_convert_writes_pdf(orchestrator, tmp_path):
    captures = [PageCapture(index=i, image=b"img") for i in range(2)]
    orchestrator.convert.return_value = ConversionResult.success(
        b"%PDF-1.4 fake", CapturePath.PAGINATED, captures=captures
    )
    out = tmp_path / "deck.pdf"

    result = runner.invoke(app, [
        "convert", "look https://docs.example.com/view/abc pw:hunter2",
        "--out", str(out), "--email", "reader@example.com",
    ])

    assert result.exit_code == ExitCode.SUCCESS
    assert out.read_bytes() == b"%PDF-1.4 fake"
    assert "2 pages" in result.output

    request = orchestrator.convert.call_args.args[0]
    assert request.document_url == "https://docs.example.com/view/abc"
    assert request.credentials.email == "reader@example.com"
    assert request.credentials.passcode == "hunter2"


def test_passcode_option_overrides_token(orchestrator, tmp_path):
    orchestrator.convert.return_value = ConversionResult.success(b"%PDF-1.4", CapturePath.DIRECT_DOWNLOAD)

    result = runner.invoke(app, [
        "convert", "https://docs.example.com/view/abc pw:old",
        "--passcode", "new", "--out", str(tmp_path / "x.pdf"),
    ])

    assert result.exit_code == ExitCode.SUCCESS
    assert orchestrator.convert.call_args.args[0].credentials.passcode == "new"


def test_headful_flag_reaches_config(orchestrator, tmp_path):
    orchestrator.convert.return_value = ConversionResult.success(b"%PDF-1.4", CapturePath.DIRECT_DOWNLOAD)

    runner.invoke(app, ["convert", "https://docs.example.com/view/abc", "--headful", "--out", str(tmp_path / "x.pdf")])

    config = orchestrator.factory.call_args.args[0]
    assert config.browser.headless is False


def test_conversion_failure_exit_code(orchestrator, tmp_path):
    orchestrator.convert.return_value = ConversionResult.failure(GateUnresolvedError("stuck"))
    out = tmp_path / "x.pdf"

    result = runner.invoke(app, ["convert", "https://docs.example.com/view/abc", "--out", str(out)])

    assert result.exit_code == ExitCode.CONVERSION_FAILED
    assert not out.exists()
    assert "could not be converted" in result.output


def test_configuration_failure_exit_code(orchestrator, tmp_path):
    orchestrator.convert.return_value = ConversionResult.failure(ConfigurationError(missing="email"))

    result = runner.invoke(app, ["convert", "https://docs.example.com/view/abc", "--out", str(tmp_path / "x.pdf")])

    assert result.exit_code == ExitCode.CONFIG_ERROR


def test_missing_url(orchestrator):
    result = runner.invoke(app, ["convert", "nothing to see"])

    assert result.exit_code == ExitCode.CONFIG_ERROR
    orchestrator.convert.assert_not_called()


def test_missing_config_file(orchestrator, tmp_path):
    result = runner.invoke(app, [
        "convert", "https://docs.example.com/view/abc", "--config", str(tmp_path / "missing.yaml"),
    ])

    assert result.exit_code == ExitCode.CONFIG_ERROR
    assert "Configuration error" in result.output
