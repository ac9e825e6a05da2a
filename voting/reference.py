"""Bible reference normalization and validation

Accepted shapes (after normalization):
    John 3
    John 3:16
    John 3:1-21
    1 Corinthians 13
    Song of Solomon 2:8-17
    Psalm 23:1-6

Normalization collapses whitespace runs and turns en/em dashes into "-".
It is idempotent: normalize_reference(normalize_reference(x)) == normalize_reference(x).
"""

import re

REFERENCE_PATTERN = re.compile(
    r"^(?:[1-3]\s)?[A-Za-z]+(?:\s+[A-Za-z]+)*\s+\d+(?:(?::\d+)?\s*-\s*\d+|:\d+)?$"
)

_DASHES = re.compile("[\u2012\u2013\u2014\u2212]")
_WHITESPACE = re.compile(r"\s+")


def normalize_reference(raw: str) -> str:
    """Collapse whitespace and dash variants

    Examples:
        >>> normalize_reference("  john   3:1–21 ")
        'john 3:1-21'
    """
    if not raw:
        return ""
    text = _DASHES.sub("-", raw)
    text = _WHITESPACE.sub(" ", text)
    return text.strip()


def is_valid_reference(raw: str) -> bool:
    """Check a free-text reference against the structural pattern"""
    normalized = normalize_reference(raw)
    if not normalized:
        return False
    return REFERENCE_PATTERN.match(normalized) is not None


def reference_key(reference: str) -> str:
    """Comparison key: normalized, trimmed, case-folded"""
    return normalize_reference(reference).lower()
