"""
Utility functions for the response monitor.

- HTML → plain-text conversion
- Plain-text body selection for parsed email messages
- IMAP search date formatting
- Sender matching
"""

import html
import logging
import re
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import parsedate_to_datetime
from typing import Optional

logger = logging.getLogger(__name__)

# IMAP date-text months are fixed English abbreviations, independent of locale
_IMAP_MONTHS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


# ── HTML → plain text ───────────────────────────────────────────


def html_to_text(html_body: str) -> str:
    """Simple HTML to plain-text conversion."""
    text = re.sub(r"<br\s*/?>", "\n", html_body, flags=re.IGNORECASE)
    text = re.sub(r"<p[^>]*>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</p>", "", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    text = html.unescape(text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def extract_body_text(plain_body: Optional[str], html_body: Optional[str]) -> str:
    """Get the best plain-text representation of an email body."""
    if plain_body and plain_body.strip():
        return plain_body.strip()
    if html_body:
        return html_to_text(html_body)
    return ""


def message_body_text(message: EmailMessage) -> str:
    """Plain-text body of a parsed message, else its HTML as text, else the subject."""
    subject = str(message.get("Subject", "") or "")
    try:
        plain_part = message.get_body(preferencelist=("plain",))
        html_part = message.get_body(preferencelist=("html",))
        text = extract_body_text(
            plain_part.get_content() if plain_part is not None else None,
            html_part.get_content() if html_part is not None else None,
        )
    except (KeyError, LookupError, UnicodeError) as e:
        # Unknown charset or broken MIME structure
        logger.warning("Could not decode message body (%s), using subject", e)
        return subject
    return text or subject


# ── Dates ────────────────────────────────────────────────────────


def imap_date(value: datetime) -> str:
    """Format a datetime as an IMAP search date, e.g. ``07-Mar-2025``."""
    return f"{value.day:02d}-{_IMAP_MONTHS[value.month - 1]}-{value.year:04d}"


def parse_header_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 2822 ``Date`` header into an aware datetime (naive → UTC)."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(str(value))
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ── Sender matching ─────────────────────────────────────────────


def sender_matches(from_header: str, identity: str) -> bool:
    """Check whether ``identity`` appears in a ``From`` header (case-insensitive)."""
    if not from_header or not identity:
        return False
    return identity.strip().lower() in from_header.lower()
