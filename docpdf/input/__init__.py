"""Trigger input parsing package."""

from .trigger_parser import extract_document_url, extract_passcode, parse_trigger

__all__ = [
    'extract_document_url',
    'extract_passcode',
    'parse_trigger',
]
