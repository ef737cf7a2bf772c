"""Issue key normalization.

Issue keys reach us as raw keys ("kan-12"), browse URLs
("https://acme.atlassian.net/browse/KAN-12") or free text pasted into a
Slack form ("please look at KAN-12 today").
"""

import re

_BROWSE_KEY_RE = re.compile(r"/browse/([A-Z][A-Z0-9_]+-\d+)", re.IGNORECASE)
_BARE_KEY_RE = re.compile(r"([A-Z][A-Z0-9_]+-\d+)", re.IGNORECASE)


class InvalidIssueKeyError(ValueError):
    """Raised when no usable issue key can be derived from the input."""


def normalize_issue_key(value: str | None) -> str:
    """Extract an upper-cased issue key from a key, URL or free text.

    A browse URL wins over any other key-shaped token in the input. When no
    key-shaped token exists the trimmed input is upper-cased as-is.

    Args:
        value: Raw user or payload input.

    Returns:
        The normalized issue key, e.g. "KAN-123".

    Raises:
        InvalidIssueKeyError: If the input is empty after trimming.
    """
    text = (value or "").strip()

    match = _BROWSE_KEY_RE.search(text) or _BARE_KEY_RE.search(text)
    key = match.group(1) if match else text
    key = key.upper()

    if not key:
        raise InvalidIssueKeyError(f'Issue key is empty (input="{value}")')
    return key
