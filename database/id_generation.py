"""
ID Generation - identifiers for groups, weeks and everything hanging off them

Single source of truth for ALL ID generation; both store implementations
call into here so ids look the same in tests and production.

Entity ID Patterns:
- User:         usr_{16 hex}
- Group:        grp_{16 hex}
- Week:         wk_{16 hex}
- Proposal:     prp_{16 hex}
- Reading item: rdg_{16 hex}
- Comment:      cmt_{16 hex}
- Annotation:   ann_{16 hex}
- Annot. reply: anr_{16 hex}
- Notification: ntf_{16 hex}

Invite tokens are URL-safe and shorter because people paste them.
"""

import re
import secrets
import uuid

USER_PREFIX = "usr"
GROUP_PREFIX = "grp"
WEEK_PREFIX = "wk"
PROPOSAL_PREFIX = "prp"
READING_PREFIX = "rdg"
COMMENT_PREFIX = "cmt"
ANNOTATION_PREFIX = "ann"
ANNOTATION_REPLY_PREFIX = "anr"
NOTIFICATION_PREFIX = "ntf"

_ID_PATTERN = re.compile(r"^[a-z]{2,3}_[0-9a-f]{16}$")


def generate_id(prefix: str) -> str:
    """Generate a random prefixed identifier

    Args:
        prefix: Entity prefix (e.g., "wk")

    Returns:
        Identifier such as "wk_3f9a0c1d2b4e5f60"
    """
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


def generate_invite_token() -> str:
    """Generate a short URL-safe invite token (8 characters)"""
    return secrets.token_urlsafe(6)


def validate_id(value: str, prefix: str) -> bool:
    """Check that an identifier has the expected prefix and shape

    Examples:
        >>> validate_id("wk_3f9a0c1d2b4e5f60", "wk")
        True
        >>> validate_id("grp_3f9a0c1d2b4e5f60", "wk")
        False
    """
    if not value or not _ID_PATTERN.match(value):
        return False
    return value.split("_", 1)[0] == prefix
