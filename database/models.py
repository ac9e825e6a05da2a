"""
Domain models for groups, weekly votes and reading discussion

Plain dataclasses returned by every store implementation. Rows that can be
soft-deleted (proposals, comments, annotations and their replies) carry an
explicit lifecycle value, Active or Deleted(at), instead of a nullable
timestamp.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional, Union


class Role(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"

    @property
    def weight(self) -> int:
        return _ROLE_WEIGHTS[self]

    def at_least(self, other: "Role") -> bool:
        return self.weight >= other.weight


_ROLE_WEIGHTS = {Role.OWNER: 3, Role.ADMIN: 2, Role.MEMBER: 1}


class TiePolicy(str, Enum):
    ADMIN_PICK = "ADMIN_PICK"
    RANDOM = "RANDOM"
    EARLIEST = "EARLIEST"


class WeekStatus(str, Enum):
    VOTING_OPEN = "VOTING_OPEN"
    RESOLVED = "RESOLVED"
    PENDING_MANUAL = "PENDING_MANUAL"


class ReadStatus(str, Enum):
    NOT_MARKED = "NOT_MARKED"
    PLANNED = "PLANNED"
    READ = "READ"


class NotificationType(str, Enum):
    VOTING_OPENED = "VOTING_OPENED"
    VOTING_REMINDER = "VOTING_REMINDER"
    WINNER_SELECTED = "WINNER_SELECTED"
    COMMENT_REPLY = "COMMENT_REPLY"
    MENTION = "MENTION"


# ---------------------------------------------------------------------------
# Soft-delete lifecycle
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Active:
    """Row is live"""


@dataclass(frozen=True)
class Deleted:
    """Row was soft-deleted at the given instant"""
    at: datetime


ACTIVE = Active()

Lifecycle = Union[Active, Deleted]


def lifecycle_from(deleted_at: Optional[datetime]) -> Lifecycle:
    """Map a deleted_at column onto the lifecycle value"""
    return ACTIVE if deleted_at is None else Deleted(at=deleted_at)


def _iso(value: Optional[Union[date, datetime]]) -> Optional[str]:
    return value.isoformat() if value is not None else None


# ---------------------------------------------------------------------------
# Groups and membership
# ---------------------------------------------------------------------------


@dataclass
class User:
    id: str
    name: str
    email: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email}


@dataclass
class Group:
    id: str
    name: str
    timezone: str
    owner_id: str
    tie_policy: TiePolicy = TiePolicy.ADMIN_PICK
    live_tally: bool = True
    voting_duration_hours: int = 68
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "timezone": self.timezone,
            "owner_id": self.owner_id,
            "tie_policy": self.tie_policy.value,
            "live_tally": self.live_tally,
            "voting_duration_hours": self.voting_duration_hours,
            "created_at": _iso(self.created_at),
        }


@dataclass
class Member:
    """A user's membership in a group, with their display name"""
    group_id: str
    user_id: str
    name: str
    role: Role
    joined_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {"id": self.user_id, "name": self.name, "role": self.role.value}


@dataclass
class Invite:
    token: str
    group_id: str
    created_by: str
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def is_valid(self, now: datetime) -> bool:
        return self.expires_at is None or self.expires_at > now


@dataclass
class UserGroup:
    """A group as seen from one member's group list"""
    group: Group
    role: Role
    invite_token: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.group.id,
            "name": self.group.name,
            "timezone": self.group.timezone,
            "role": self.role.value,
            "invite_token": self.invite_token,
        }


# ---------------------------------------------------------------------------
# Weekly voting
# ---------------------------------------------------------------------------


@dataclass
class Week:
    id: str
    group_id: str
    start_date: date
    voting_close_at: datetime
    status: WeekStatus = WeekStatus.VOTING_OPEN
    resolved_reading_id: Optional[str] = None
    reminder_sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def is_resolved(self) -> bool:
        return self.status == WeekStatus.RESOLVED

    def is_expired(self, now: datetime) -> bool:
        return now >= self.voting_close_at

    def accepts_votes(self, now: datetime) -> bool:
        return self.status == WeekStatus.VOTING_OPEN and not self.is_expired(now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "group_id": self.group_id,
            "start_date": _iso(self.start_date),
            "voting_close_at": _iso(self.voting_close_at),
            "status": self.status.value,
            "resolved_reading_id": self.resolved_reading_id,
        }


@dataclass
class Proposal:
    id: str
    week_id: str
    proposer_id: str
    reference: str
    note: Optional[str] = None
    is_seed: bool = False
    created_at: Optional[datetime] = None
    lifecycle: Lifecycle = ACTIVE
    proposer_name: Optional[str] = None

    @property
    def is_live(self) -> bool:
        return isinstance(self.lifecycle, Active)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "week_id": self.week_id,
            "proposer_id": self.proposer_id,
            "proposer_name": self.proposer_name,
            "reference": self.reference,
            "note": self.note,
            "is_seed": self.is_seed,
            "created_at": _iso(self.created_at),
        }


@dataclass(frozen=True)
class ProposalDraft:
    """Proposal about to be inserted (seeds and reseeds)"""
    reference: str
    note: Optional[str] = None
    is_seed: bool = True


@dataclass(frozen=True)
class ProposalTally:
    """A live proposal with its vote count, input to the winner calculation"""
    proposal_id: str
    reference: str
    created_at: datetime
    vote_count: int


@dataclass
class Vote:
    week_id: str
    user_id: str
    proposal_id: str
    user_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class ReadingItem:
    id: str
    week_id: str
    group_id: str
    reference: str
    proposal_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "week_id": self.week_id,
            "reference": self.reference,
            "proposal_id": self.proposal_id,
        }


@dataclass
class FinalizeOutcome:
    """Result of the locked finalize transaction"""
    reading_item: ReadingItem
    already_resolved: bool


@dataclass
class HistoryEntry:
    week_id: str
    start_date: date
    reading_item_id: str
    reference: str
    comment_count: int = 0
    read_count: int = 0

    def to_dict(self) -> dict:
        return {
            "week_id": self.week_id,
            "start_date": _iso(self.start_date),
            "reading_item_id": self.reading_item_id,
            "reference": self.reference,
            "comment_count": self.comment_count,
            "read_count": self.read_count,
        }


# ---------------------------------------------------------------------------
# Discussion
# ---------------------------------------------------------------------------


@dataclass
class ReadMark:
    user_id: str
    reading_item_id: str
    status: ReadStatus
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {"user_id": self.user_id, "status": self.status.value}


@dataclass
class Comment:
    id: str
    reading_item_id: str
    author_id: str
    text: str
    parent_id: Optional[str] = None
    author_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    lifecycle: Lifecycle = ACTIVE

    @property
    def is_live(self) -> bool:
        return isinstance(self.lifecycle, Active)


@dataclass
class Annotation:
    id: str
    reading_item_id: str
    author_id: str
    start_verse: int
    end_verse: int
    text: str
    author_name: Optional[str] = None
    created_at: Optional[datetime] = None
    lifecycle: Lifecycle = ACTIVE

    @property
    def is_live(self) -> bool:
        return isinstance(self.lifecycle, Active)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reading_item_id": self.reading_item_id,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "start_verse": self.start_verse,
            "end_verse": self.end_verse,
            "text": self.text,
            "created_at": _iso(self.created_at),
        }


@dataclass
class AnnotationReply:
    id: str
    annotation_id: str
    author_id: str
    text: str
    author_name: Optional[str] = None
    created_at: Optional[datetime] = None
    lifecycle: Lifecycle = ACTIVE

    @property
    def is_live(self) -> bool:
        return isinstance(self.lifecycle, Active)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "text": self.text,
            "created_at": _iso(self.created_at),
        }


@dataclass
class NotificationDraft:
    """Notification to fan out, optionally skipping the acting user"""
    type: NotificationType
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    exclude_user_id: Optional[str] = None


@dataclass
class Notification:
    id: str
    user_id: str
    group_id: Optional[str]
    type: NotificationType
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    read_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "group_id": self.group_id,
            "type": self.type.value,
            "text": self.text,
            "metadata": self.metadata,
            "created_at": _iso(self.created_at),
            "read_at": _iso(self.read_at),
        }
