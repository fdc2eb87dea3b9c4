"""PDF assembly from page captures.

One PDF page per capture, in index order, each page sized in points to the
capture's pixel dimensions with the image drawn at the origin. img2pdf embeds
JPEG and PNG streams without re-compression; anything it cannot embed as-is
is normalised with Pillow first.
"""

import io
import logging
from typing import List, Sequence, Tuple

import img2pdf
from PIL import Image, UnidentifiedImageError

from ..errors import AssemblyError, CaptureError
from ..models.capture import PageCapture
from .config import AssemblySettings

logger = logging.getLogger(__name__)

# img2pdf logs a warning per page for alpha channels and DPI metadata
logging.getLogger("img2pdf").setLevel(logging.ERROR)

PDF_MAGIC = b"%PDF-"

# 72 dpi makes one PDF point equal one image pixel
_PIXEL_LAYOUT = img2pdf.get_fixed_dpi_layout_fun((72, 72))

_EMBEDDABLE_FORMATS = {'JPEG', 'PNG'}


def decode_capture(capture: PageCapture) -> Tuple[bytes, int, int]:
    """Decode one capture and return embeddable bytes with its pixel size.

    Raises:
        CaptureError: Image bytes could not be decoded
    """
    try:
        with Image.open(io.BytesIO(capture.image)) as image:
            image.load()
            width, height = image.size
            image_format = image.format
            needs_reencode = image_format not in _EMBEDDABLE_FORMATS or image.mode in ('RGBA', 'LA', 'P', 'PA')
            if not needs_reencode:
                return capture.image, width, height

            buffer = io.BytesIO()
            image.convert('RGB').save(buffer, format='PNG')
            logger.debug(f"Re-encoded page {capture.index} ({image_format}, {image.mode}) as RGB PNG")
            return buffer.getvalue(), width, height
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise CaptureError(f"Capture {capture.index} could not be decoded: {e}", index=capture.index)


class PdfAssembler:
    """Build one PDF from an ordered list of page captures."""

    def __init__(self, settings: AssemblySettings = None):
        self.settings = settings or AssemblySettings()

    def assemble(self, captures: Sequence[PageCapture]) -> bytes:
        """Assemble captures into a PDF.

        Args:
            captures: Captures with indices 0..n-1, in order

        Returns:
            PDF bytes with exactly len(captures) pages

        Raises:
            AssemblyError: Empty or out-of-order input, or an invalid PDF was produced
            CaptureError: A capture could not be decoded (no partial PDF is returned)
        """
        if not captures:
            raise AssemblyError("No captures to assemble", size=0)

        indices = [capture.index for capture in captures]
        if indices != list(range(len(captures))):
            raise AssemblyError(f"Captures must be ordered 0..{len(captures) - 1}, got {indices}")

        images: List[bytes] = []
        for capture in captures:
            data, width, height = decode_capture(capture)
            logger.debug(f"Page {capture.index}: {width}x{height}px")
            images.append(data)

        try:
            pdf_bytes = img2pdf.convert(images, layout_fun=_PIXEL_LAYOUT)
        except (img2pdf.ImageOpenError, img2pdf.AlphaChannelError, ValueError) as e:
            raise AssemblyError(f"PDF serialization failed: {e}")

        self.validate(pdf_bytes)
        logger.info(f"Assembled PDF: {len(captures)} pages, {len(pdf_bytes)} bytes")
        return pdf_bytes

    def validate(self, pdf_bytes: bytes) -> None:
        """Check the serialized document is a plausible PDF.

        Raises:
            AssemblyError: Empty, missing the PDF header, or implausibly small
        """
        size = len(pdf_bytes) if pdf_bytes else 0
        if not pdf_bytes:
            raise AssemblyError("Assembled PDF is empty", size=0)
        if not pdf_bytes.startswith(PDF_MAGIC):
            raise AssemblyError("Assembled output is not a PDF", size=size)
        if size < self.settings.min_pdf_bytes:
            raise AssemblyError(f"Assembled PDF is implausibly small ({size} bytes)", size=size)
