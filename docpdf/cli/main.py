#!/usr/bin/env python3
"""Main CLI entry point for docpdf using Typer.

Parses trigger text for a document link (and optional passcode), runs one
conversion through the capture orchestrator and writes the resulting PDF.
"""

import asyncio
import logging
from enum import IntEnum
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .. import __version__
from ..capture.config import ConfigManager
from ..capture.orchestrator import create_orchestrator
from ..errors import ConfigurationError
from ..input.trigger_parser import parse_trigger


class ExitCode(IntEnum):
    """CLI exit codes."""
    SUCCESS = 0
    CONVERSION_FAILED = 1
    CONFIG_ERROR = 2


app = typer.Typer(
    name="docpdf",
    help="docpdf - convert gated, paginated web documents to PDF",
    add_completion=False,
)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.callback()
def main():
    """
    docpdf - convert gated, paginated web documents to PDF.

    Clears consent, email and passcode gates, captures every page of the
    document viewer and assembles one PDF page per captured page.
    """
    pass


@app.command(name="version")
def show_version():
    """Show version information."""
    typer.echo(f"docpdf v{__version__}")


@app.command()
def convert(
    text: Annotated[
        str,
        typer.Argument(help="Trigger text containing the document URL (and optionally pw:<passcode>)")
    ],
    out: Annotated[
        Path,
        typer.Option("--out", "-o", help="Where to write the PDF")
    ] = Path("document.pdf"),
    email: Annotated[
        Optional[str],
        typer.Option("--email", help="Email for email-capture gates (default: DOCPDF_EMAIL)")
    ] = None,
    passcode: Annotated[
        Optional[str],
        typer.Option("--passcode", help="Document passcode (overrides pw: token and URL parameter)")
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to capture configuration YAML")
    ] = None,
    env: Annotated[
        Optional[str],
        typer.Option("--env", "-e", help="Configuration environment (production, staging, development, test)")
    ] = None,
    host_pattern: Annotated[
        Optional[str],
        typer.Option("--host-pattern", help="Regex the document host must match")
    ] = None,
    headful: Annotated[
        bool,
        typer.Option("--headful", help="Run browser with GUI (for debugging)")
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Verbose output")
    ] = False,
):
    """
    Convert the document linked in TEXT to a PDF.

    Examples:

        # Public document
        docpdf convert "https://docs.example.com/view/abc123" -o deck.pdf

        # Passcode-protected document, email gate
        docpdf convert "see https://docs.example.com/view/abc123 pw:hunter2" \\
            --email reader@example.com
    """
    configure_logging(verbose)

    try:
        config = ConfigManager(config_path).load_config(environment=env)
    except (FileNotFoundError, ValueError) as e:
        typer.echo(f"❌ Configuration error: {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    if headful:
        config.browser.headless = False

    try:
        request = parse_trigger(text, host_pattern=host_pattern)
    except ConfigurationError as e:
        typer.echo(f"❌ {e.user_message}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    if email or passcode:
        request = request.model_copy(update={
            'credentials': request.credentials.model_copy(update={
                'email': email or request.credentials.email,
                'passcode': passcode or request.credentials.passcode,
            })
        })

    result = asyncio.run(create_orchestrator(config).convert(request))

    if not result.is_successful:
        typer.echo(f"❌ {result.user_message}", err=True)
        code = ExitCode.CONFIG_ERROR if result.error_code == "configuration_error" else ExitCode.CONVERSION_FAILED
        raise typer.Exit(code=code.value)

    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(result.pdf_bytes)

    pages = f"{result.capture_count} pages" if result.capture_count else "original document"
    typer.echo(f"✅ Saved {pages} ({result.capture_path.value}) to {out}")


if __name__ == "__main__":
    app()
