"""Command line interface for docpdf."""

from .main import app

__all__ = ['app']
