"""Store Protocol - repository surface the voting core depends on

The core receives a store explicitly (no process-wide pool), so it runs the
same against PostgreSQL (database.db_postgres.Database) and the in-process
double (database.memory.MemoryDatabase).

Invariants every implementation must uphold:
- create_week inserts nothing when the group already has a non-RESOLVED week
- cast_vote keeps one row per (week, user); a second call replaces the choice
- sync_for_week never touches the reading item of a RESOLVED week
- finalize_week is all-or-nothing and converges when raced
- claim_reminder returns True for exactly one caller per week
"""

from datetime import date, datetime
from typing import List, Optional, Protocol, Sequence, Set

from database.models import (
    Annotation,
    AnnotationReply,
    Comment,
    FinalizeOutcome,
    Group,
    HistoryEntry,
    Invite,
    Member,
    Notification,
    NotificationDraft,
    Proposal,
    ProposalDraft,
    ProposalTally,
    ReadingItem,
    ReadMark,
    ReadStatus,
    Role,
    TiePolicy,
    User,
    UserGroup,
    Vote,
    Week,
)


class UserStore(Protocol):
    async def create_user(self, name: str, email: Optional[str] = None) -> User: ...
    async def get_user(self, user_id: str) -> Optional[User]: ...
    async def get_user_by_email(self, email: str) -> Optional[User]: ...


class GroupStore(Protocol):
    async def create_group(
        self,
        name: str,
        timezone: str,
        owner_id: str,
        tie_policy: TiePolicy,
        live_tally: bool,
        voting_duration_hours: int,
    ) -> Group: ...
    async def get_group(self, group_id: str) -> Optional[Group]: ...
    async def get_group_ids(self) -> List[str]: ...
    async def update_settings(
        self,
        group_id: str,
        voting_duration_hours: Optional[int] = None,
        tie_policy: Optional[TiePolicy] = None,
        live_tally: Optional[bool] = None,
    ) -> Optional[Group]: ...
    async def get_member(self, group_id: str, user_id: str) -> Optional[Member]: ...
    async def get_members(self, group_id: str) -> List[Member]: ...
    async def count_members(self, group_id: str) -> int: ...
    async def add_member(self, group_id: str, user_id: str, role: Role = Role.MEMBER) -> Member: ...
    async def create_invite(
        self, group_id: str, created_by: str, expires_at: Optional[datetime] = None
    ) -> Invite: ...
    async def get_invite(self, token: str) -> Optional[Invite]: ...
    async def get_latest_invite(self, group_id: str, now: datetime) -> Optional[Invite]: ...
    async def get_user_groups(self, user_id: str, now: datetime) -> List[UserGroup]: ...


class WeekStore(Protocol):
    async def get_week(self, week_id: str) -> Optional[Week]: ...
    async def get_active_week(self, group_id: str) -> Optional[Week]: ...
    async def get_latest_week(self, group_id: str) -> Optional[Week]: ...
    async def create_week(
        self,
        group_id: str,
        start_date: date,
        voting_close_at: datetime,
        proposer_id: str,
        seeds: Sequence[ProposalDraft],
        reading_index: Optional[int] = None,
    ) -> Optional[Week]: ...
    async def claim_reminder(self, week_id: str, now: datetime) -> bool: ...
    async def mark_pending_manual(self, week_id: str) -> bool: ...
    async def finalize_week(
        self, week_id: str, proposal_id: str, notification: NotificationDraft
    ) -> FinalizeOutcome: ...
    async def get_history(
        self, group_id: str, exclude_week_id: Optional[str], limit: int = 8
    ) -> List[HistoryEntry]: ...


class ProposalStore(Protocol):
    async def add_proposal(self, week_id: str, proposer_id: str, draft: ProposalDraft) -> Proposal: ...
    async def get_proposal(self, proposal_id: str) -> Optional[Proposal]: ...
    async def get_live_proposals(self, week_id: str) -> List[Proposal]: ...
    async def get_week_references(self, week_id: str) -> List[str]: ...
    async def soft_delete(self, proposal_id: str, at: datetime) -> bool: ...
    async def get_tallies(self, week_id: str) -> List[ProposalTally]: ...


class VoteStore(Protocol):
    async def cast_vote(self, week_id: str, proposal_id: str, user_id: str, at: datetime) -> Vote: ...
    async def get_votes(self, week_id: str) -> List[Vote]: ...
    async def count_voters(self, week_id: str) -> int: ...


class ReadingStore(Protocol):
    async def get_reading_item(self, reading_item_id: str) -> Optional[ReadingItem]: ...
    async def get_for_week(self, week_id: str) -> Optional[ReadingItem]: ...
    async def sync_for_week(self, week_id: str, proposal_id: str, reference: str) -> Optional[ReadingItem]: ...
    async def get_read_references(self, group_id: Optional[str] = None) -> Set[str]: ...


class DiscussionStore(Protocol):
    async def set_read_mark(
        self, user_id: str, reading_item_id: str, status: ReadStatus, at: datetime
    ) -> ReadMark: ...
    async def get_read_marks(self, reading_item_id: str) -> List[ReadMark]: ...
    async def add_comment(
        self, reading_item_id: str, author_id: str, text: str, parent_id: Optional[str] = None
    ) -> Comment: ...
    async def get_comment(self, comment_id: str) -> Optional[Comment]: ...
    async def get_comments(self, reading_item_id: str) -> List[Comment]: ...
    async def count_comments(self, reading_item_id: str) -> int: ...
    async def edit_comment(self, comment_id: str, text: str, at: datetime) -> bool: ...
    async def delete_comment(self, comment_id: str, at: datetime) -> bool: ...
    async def add_annotation(
        self, reading_item_id: str, author_id: str, start_verse: int, end_verse: int, text: str
    ) -> Annotation: ...
    async def get_annotation(self, annotation_id: str) -> Optional[Annotation]: ...
    async def get_annotations(self, reading_item_id: str) -> List[Annotation]: ...
    async def delete_annotation(self, annotation_id: str, at: datetime) -> bool: ...
    async def add_annotation_reply(self, annotation_id: str, author_id: str, text: str) -> AnnotationReply: ...
    async def get_annotation_reply(self, reply_id: str) -> Optional[AnnotationReply]: ...
    async def get_annotation_replies(self, annotation_ids: Sequence[str]) -> List[AnnotationReply]: ...
    async def delete_annotation_reply(self, reply_id: str, at: datetime) -> bool: ...


class NotificationStore(Protocol):
    async def notify_group(self, group_id: str, draft: NotificationDraft) -> int: ...
    async def notify_users(
        self, user_ids: Sequence[str], group_id: Optional[str], draft: NotificationDraft
    ) -> int: ...
    async def get_notifications(self, user_id: str, limit: int = 30) -> List[Notification]: ...


class Store(Protocol):
    """Everything the voting core reads and writes"""

    users: UserStore
    groups: GroupStore
    weeks: WeekStore
    proposals: ProposalStore
    votes: VoteStore
    readings: ReadingStore
    discussion: DiscussionStore
    notifications: NotificationStore

    async def close(self) -> None: ...
