"""Data models for docpdf."""

from .capture import (
    Credentials,
    ConversionRequest,
    ConversionResult,
    ConversionStatus,
    CapturePath,
    GateOutcome,
    GateState,
    PageCapture,
)

__all__ = [
    "Credentials",
    "ConversionRequest",
    "ConversionResult",
    "ConversionStatus",
    "CapturePath",
    "GateOutcome",
    "GateState",
    "PageCapture",
]
