"""
Response extraction from free-form reply bodies.

Replies are typed by people (often from a phone), so there is no grammar
to parse. The extractor applies a short list of heuristics in order and
the first acceptable capture wins:

1. ``Response: <text>`` anywhere in the body
2. ``Command: <text>`` anywhere in the body
3. a body with exactly one non-empty line (split on ``\\n`` only) is the
   response itself

Keyword matching is case-insensitive. A capture that is empty after
trimming, or that starts with ``From:`` or ``To:``, is rejected and the
next rule is tried; this keeps quoted mail headers out of the output when
a client frames the reply oddly.
"""

import re
from typing import Optional

_KEYWORD_PATTERNS = (
    re.compile(r"Response:\s*(.+)", re.IGNORECASE | re.MULTILINE),
    re.compile(r"Command:\s*(.+)", re.IGNORECASE | re.MULTILINE),
)

_REJECTED_PREFIXES = ("From:", "To:")


def _accept(candidate: Optional[str]) -> Optional[str]:
    if candidate is None:
        return None
    candidate = candidate.strip()
    if not candidate or candidate.startswith(_REJECTED_PREFIXES):
        return None
    return candidate


def _single_line(body: str) -> Optional[str]:
    lines = [line for line in body.split("\n") if line.strip()]
    if len(lines) != 1:
        return None
    return lines[0]


def extract_response(body: Optional[str]) -> Optional[str]:
    """
    Extract the response text from a message body.

    Args:
        body: Plain-text message body

    Returns:
        The trimmed response, or None if no rule produced an acceptable capture
    """
    if not body:
        return None

    for pattern in _KEYWORD_PATTERNS:
        match = pattern.search(body)
        if match:
            accepted = _accept(match.group(1))
            if accepted is not None:
                return accepted

    return _accept(_single_line(body))
