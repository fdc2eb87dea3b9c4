"""Error taxonomy for document conversion.

Every failure that can leave the capture core is a ConversionError subclass
carrying a stable error code, internal details for logging and the message
that may be shown to the requester.
"""

from typing import Optional

GENERIC_USER_MESSAGE = "Sorry, the document could not be converted to a PDF."
ACCESS_NOT_PROVIDED_MESSAGE = (
    "This document requires access that was not provided "
    "(an email address or passcode is needed)."
)


class ConversionError(Exception):
    """Base conversion error."""

    def __init__(
        self,
        message: str = "Document conversion failed",
        error_code: str = "conversion_failed",
        details: Optional[dict] = None,
        user_message: str = GENERIC_USER_MESSAGE,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.user_message = user_message
        super().__init__(self.message)


class ConfigurationError(ConversionError):
    """Raised when a required credential or setting is missing. Never retried."""

    def __init__(
        self,
        message: str = "Required credential is not configured",
        missing: Optional[str] = None,
        user_message: str = ACCESS_NOT_PROVIDED_MESSAGE,
    ):
        super().__init__(
            message=message,
            error_code="configuration_error",
            details={"missing": missing} if missing else {},
            user_message=user_message,
        )


class GateUnresolvedError(ConversionError):
    """Raised when gating is present but could not be cleared."""

    def __init__(
        self,
        message: str = "Document gate could not be cleared",
        gate: Optional[str] = None,
        attempts: Optional[int] = None,
    ):
        details = {}
        if gate:
            details["gate"] = gate
        if attempts is not None:
            details["attempts"] = attempts
        super().__init__(
            message=message,
            error_code="gate_unresolved",
            details=details,
        )


class ContentNotFoundError(ConversionError):
    """Raised when gating cleared but no document content was located."""

    def __init__(self, message: str = "No document content found on page", url: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="content_not_found",
            details={"url": url} if url else {},
        )


class CaptureError(ConversionError):
    """Raised when a page snapshot or image decode fails."""

    def __init__(self, message: str = "Page capture failed", index: Optional[int] = None):
        super().__init__(
            message=message,
            error_code="capture_failed",
            details={"index": index} if index is not None else {},
        )


class AssemblyError(ConversionError):
    """Raised when the assembled PDF is missing or invalid."""

    def __init__(self, message: str = "PDF assembly failed", size: Optional[int] = None):
        super().__init__(
            message=message,
            error_code="assembly_failed",
            details={"size": size} if size is not None else {},
        )
