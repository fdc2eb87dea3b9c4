"""Trigger text parsing.

Turns free-form trigger text (a chat message, a command line argument) into a
ConversionRequest: the first document URL it mentions and an optional passcode,
given either as a ``pw:<value>`` token in the text or as the URL's
``password`` query parameter.
"""

import logging
import re
from typing import Optional
from urllib.parse import parse_qs, urlparse

from ..errors import ConfigurationError
from ..models.capture import ConversionRequest, Credentials

logger = logging.getLogger(__name__)

# Stops at chat link markup: <https://host/path|label>
_URL_PATTERN = re.compile(r'https?://[^\s<>|"\']+', re.IGNORECASE)
_PASSCODE_TOKEN = re.compile(r'(?:^|\s)pw:(\S+)', re.IGNORECASE)
_TRAILING_PUNCTUATION = '.,;:!?)]}'


def extract_document_url(text: str, host_pattern: Optional[str] = None) -> Optional[str]:
    """Find the first http(s) URL in the text.

    Args:
        text: Trigger text
        host_pattern: Regex the URL's host must match (any host if None)

    Returns:
        URL, or None if the text mentions no matching URL
    """
    if not text:
        return None

    host_re = re.compile(host_pattern, re.IGNORECASE) if host_pattern else None
    for match in _URL_PATTERN.finditer(text):
        url = match.group(0).rstrip(_TRAILING_PUNCTUATION)
        host = urlparse(url).netloc
        if not host:
            continue
        if host_re is not None and not host_re.search(host):
            continue
        return url
    return None


def extract_passcode(text: str, url: Optional[str] = None) -> Optional[str]:
    """Passcode from a ``pw:<value>`` token, else from the URL's password parameter."""
    token = _PASSCODE_TOKEN.search(text or '')
    if token:
        return token.group(1)

    if url:
        values = parse_qs(urlparse(url).query).get('password')
        if values and values[0]:
            return values[0]
    return None


def parse_trigger(
    text: str,
    host_pattern: Optional[str] = None,
    email: Optional[str] = None,
) -> ConversionRequest:
    """Build a ConversionRequest from trigger text.

    Args:
        text: Trigger text
        host_pattern: Regex restricting which hosts count as documents
        email: Email to offer to email-capture gates

    Returns:
        ConversionRequest with the extracted URL and credentials

    Raises:
        ConfigurationError: No document URL in the text
    """
    url = extract_document_url(text, host_pattern)
    if url is None:
        raise ConfigurationError(
            "No document URL found in trigger text",
            missing="document_url",
            user_message="No document link was found in the message.",
        )

    passcode = extract_passcode(text, url)
    logger.debug(f"Parsed trigger: url={url}, passcode={'yes' if passcode else 'no'}")
    return ConversionRequest(
        document_url=url,
        raw_trigger_text=text,
        credentials=Credentials(email=email, passcode=passcode),
    )
