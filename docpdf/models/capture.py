"""Pydantic models for document conversion requests, captures and results.

This module defines the data passed between the capture components: the
credentials a request carries, the gate state observed on the live page,
one raster capture per document page, and the terminal conversion result
handed back to the caller.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Any
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..errors import GENERIC_USER_MESSAGE, ConversionError


class GateState(str, Enum):
    """Gating presented by the current page."""
    NO_GATE = "no_gate"
    CONSENT_OVERLAY = "consent_overlay"
    EMAIL_FORM = "email_form"
    PASSCODE_FORM = "passcode_form"
    EMAIL_AND_PASSCODE_FORM = "email_and_passcode_form"


class CapturePath(str, Enum):
    """How the returned PDF was produced."""
    PAGINATED = "paginated"
    SINGLE_SHOT = "single_shot"
    DIRECT_DOWNLOAD = "direct_download"


class ConversionStatus(str, Enum):
    """Terminal status of one conversion."""
    SUCCESS = "success"
    FAILED = "failed"


class Credentials(BaseModel):
    """Credential material for clearing email and passcode gates."""

    email: Optional[str] = Field(default=None, description="Email for email-capture forms")
    passcode: Optional[str] = Field(
        default=None,
        description="Passcode for password-protected documents",
        repr=False,
        exclude=True,
    )

    @field_validator('email', 'passcode')
    @classmethod
    def blank_to_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v.strip() if v is not None else v

    @property
    def has_email(self) -> bool:
        return self.email is not None

    @property
    def has_passcode(self) -> bool:
        return self.passcode is not None

    def merged_with(self, defaults: Optional['Credentials']) -> 'Credentials':
        """Fill missing fields from configured defaults; explicit values win."""
        if defaults is None:
            return self
        return Credentials(
            email=self.email or defaults.email,
            passcode=self.passcode or defaults.passcode,
        )


class ConversionRequest(BaseModel):
    """Already-extracted input for one conversion."""

    document_url: str = Field(description="URL of the document viewer")
    raw_trigger_text: str = Field(default="", description="Original trigger text")
    credentials: Credentials = Field(default_factory=Credentials)

    @field_validator('document_url')
    @classmethod
    def validate_url(cls, v):
        """Validate URL format."""
        result = urlparse(v)
        if result.scheme not in ('http', 'https') or not result.netloc:
            raise ValueError(f"Invalid document URL: {v}")
        return v

    @property
    def host(self) -> str:
        return urlparse(self.document_url).netloc


class GateOutcome(BaseModel):
    """Result of gate resolution."""

    cleared: bool = Field(description="Whether NoGate was confirmed")
    detail: str = Field(default="", description="Human-readable summary")
    gates_cleared: List[GateState] = Field(
        default_factory=list,
        description="Gates handled, in the order they were handled"
    )
    passes: int = Field(default=0, description="Inspection passes performed")


class PageCapture(BaseModel):
    """One raster capture of one logical document page."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0, description="0-based sequence index")
    image: bytes = Field(description="Compressed raster image", repr=False)
    label: Optional[str] = Field(
        default=None,
        description="Page label read from the document's own UI"
    )
    captured_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator('image')
    @classmethod
    def validate_image(cls, v):
        if not v:
            raise ValueError("Capture image must not be empty")
        return v

    @property
    def size_bytes(self) -> int:
        return len(self.image)


class ConversionResult(BaseModel):
    """Terminal value of one conversion: PDF bytes or a classified failure."""

    status: ConversionStatus
    pdf_bytes: Optional[bytes] = Field(default=None, repr=False)
    captures: List[PageCapture] = Field(default_factory=list, repr=False)
    capture_path: Optional[CapturePath] = None

    error_code: Optional[str] = None
    error_detail: Optional[str] = Field(
        default=None,
        description="Internal detail, for logs only"
    )
    user_message: Optional[str] = None

    state_history: List[str] = Field(default_factory=list)
    duration_ms: Optional[float] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode='after')
    def validate_captures(self):
        indices = [capture.index for capture in self.captures]
        if indices != list(range(len(indices))):
            raise ValueError(f"Capture indices must be contiguous from 0, got {indices}")
        return self

    @classmethod
    def success(
        cls,
        pdf_bytes: bytes,
        capture_path: CapturePath,
        captures: Optional[List[PageCapture]] = None,
        **kwargs
    ) -> 'ConversionResult':
        return cls(
            status=ConversionStatus.SUCCESS,
            pdf_bytes=pdf_bytes,
            captures=captures or [],
            capture_path=capture_path,
            **kwargs
        )

    @classmethod
    def failure(cls, error: ConversionError, **kwargs) -> 'ConversionResult':
        return cls(
            status=ConversionStatus.FAILED,
            error_code=error.error_code,
            error_detail=error.message,
            user_message=error.user_message or GENERIC_USER_MESSAGE,
            **kwargs
        )

    @property
    def is_successful(self) -> bool:
        return self.status == ConversionStatus.SUCCESS

    @property
    def capture_count(self) -> int:
        return len(self.captures)
