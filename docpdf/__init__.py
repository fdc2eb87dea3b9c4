"""docpdf: convert gated, paginated web documents into page-faithful PDFs.

The capture core lives in ``docpdf.capture``; ``docpdf.input`` turns free-form
trigger text into a ConversionRequest and ``docpdf.cli`` exposes both on the
command line.
"""

__version__ = "1.0.0"
