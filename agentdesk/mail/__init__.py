"""
Mail provider capability and its Gmail implementation.
"""

from .provider import MailProvider, GmailClient
from .oauth import GoogleOAuth, GMAIL_SCOPES
from .messages import extract_headers, extract_text, build_raw_message

__all__ = [
    "MailProvider",
    "GmailClient",
    "GoogleOAuth",
    "GMAIL_SCOPES",
    "extract_headers",
    "extract_text",
    "build_raw_message",
]
