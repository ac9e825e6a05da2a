"""In-process store with the same surface and guarantees as Database

Used by the test suite and for running the API without PostgreSQL.
Every method yields to the event loop before touching state, so concurrent
callers really interleave; each check-then-write runs without an await in
between, which plays the role of the unique indexes. Finalize holds a
per-week asyncio.Lock across its awaits, mirroring SELECT ... FOR UPDATE.

Usage:
    db = MemoryDatabase(clock=lambda: fixed_now)
    group = await db.groups.create_group(...)
"""

import asyncio
from collections import defaultdict
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from config import get_logger
from database.id_generation import (
    ANNOTATION_PREFIX,
    ANNOTATION_REPLY_PREFIX,
    COMMENT_PREFIX,
    GROUP_PREFIX,
    NOTIFICATION_PREFIX,
    PROPOSAL_PREFIX,
    READING_PREFIX,
    USER_PREFIX,
    WEEK_PREFIX,
    generate_id,
    generate_invite_token,
)
from database.models import (
    ACTIVE,
    Annotation,
    AnnotationReply,
    Comment,
    Deleted,
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
    WeekStatus,
)
from exceptions import DataIntegrityError, InvalidStateError, NotFoundError

logger = get_logger(__name__).bind(component="memory_store")

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _State:
    """Tables shared by every memory repository of one MemoryDatabase"""

    def __init__(self, clock: Clock):
        self.clock = clock
        self._last_stamp: Optional[datetime] = None

        self.users: Dict[str, User] = {}
        self.groups: Dict[str, Group] = {}
        self.members: Dict[Tuple[str, str], Member] = {}
        self.invites: Dict[str, Invite] = {}
        self.weeks: Dict[str, Week] = {}
        self.proposals: Dict[str, Proposal] = {}
        self.votes: Dict[Tuple[str, str], Vote] = {}
        self.readings: Dict[str, ReadingItem] = {}
        self.read_marks: Dict[Tuple[str, str], ReadMark] = {}
        self.comments: Dict[str, Comment] = {}
        self.annotations: Dict[str, Annotation] = {}
        self.annotation_replies: Dict[str, AnnotationReply] = {}
        self.notifications: List[Notification] = []

        self.week_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def stamp(self) -> datetime:
        """Strictly increasing creation timestamp, so creation order is total"""
        now = self.clock()
        if self._last_stamp is not None and now <= self._last_stamp:
            now = self._last_stamp + timedelta(microseconds=1)
        self._last_stamp = now
        return now

    def user_name(self, user_id: str) -> Optional[str]:
        user = self.users.get(user_id)
        return user.name if user else None

    def reading_for_week(self, week_id: str) -> Optional[ReadingItem]:
        for reading in self.readings.values():
            if reading.week_id == week_id:
                return reading
        return None

    def upsert_reading(self, week: Week, proposal_id: str, reference: str) -> ReadingItem:
        existing = self.reading_for_week(week.id)
        if existing:
            existing.proposal_id = proposal_id
            existing.reference = reference
            return replace(existing)
        reading = ReadingItem(
            id=generate_id(READING_PREFIX),
            week_id=week.id,
            group_id=week.group_id,
            proposal_id=proposal_id,
            reference=reference,
            created_at=self.stamp(),
        )
        self.readings[reading.id] = reading
        return replace(reading)

    def insert_notifications(
        self, user_ids: Sequence[str], group_id: Optional[str], draft: NotificationDraft
    ) -> int:
        recipients = [uid for uid in dict.fromkeys(user_ids) if uid != draft.exclude_user_id]
        for uid in recipients:
            self.notifications.append(
                Notification(
                    id=generate_id(NOTIFICATION_PREFIX),
                    user_id=uid,
                    group_id=group_id,
                    type=draft.type,
                    text=draft.text,
                    metadata=dict(draft.metadata),
                    created_at=self.stamp(),
                )
            )
        return len(recipients)

    def member_ids(self, group_id: str) -> List[str]:
        return sorted(uid for (gid, uid) in self.members if gid == group_id)


class _MemoryRepository:
    def __init__(self, state: _State):
        self._state = state

    @staticmethod
    async def _yield():
        await asyncio.sleep(0)


class MemoryUserRepository(_MemoryRepository):
    async def create_user(self, name: str, email: Optional[str] = None) -> User:
        await self._yield()
        user = User(id=generate_id(USER_PREFIX), name=name, email=email, created_at=self._state.stamp())
        self._state.users[user.id] = user
        return replace(user)

    async def get_user(self, user_id: str) -> Optional[User]:
        await self._yield()
        user = self._state.users.get(user_id)
        return replace(user) if user else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        await self._yield()
        for user in self._state.users.values():
            if user.email == email:
                return replace(user)
        return None


class MemoryGroupRepository(_MemoryRepository):
    async def create_group(
        self,
        name: str,
        timezone: str,
        owner_id: str,
        tie_policy: TiePolicy,
        live_tally: bool,
        voting_duration_hours: int,
    ) -> Group:
        await self._yield()
        if owner_id not in self._state.users:
            raise DataIntegrityError("owner does not exist", table="groups", constraint="groups_owner_id_fkey")
        group = Group(
            id=generate_id(GROUP_PREFIX),
            name=name,
            timezone=timezone,
            owner_id=owner_id,
            tie_policy=tie_policy,
            live_tally=live_tally,
            voting_duration_hours=voting_duration_hours,
            created_at=self._state.stamp(),
        )
        self._state.groups[group.id] = group
        self._state.members[(group.id, owner_id)] = Member(
            group_id=group.id,
            user_id=owner_id,
            name=self._state.user_name(owner_id),
            role=Role.OWNER,
            joined_at=group.created_at,
        )
        return replace(group)

    async def get_group(self, group_id: str) -> Optional[Group]:
        await self._yield()
        group = self._state.groups.get(group_id)
        return replace(group) if group else None

    async def get_group_ids(self) -> List[str]:
        await self._yield()
        groups = sorted(self._state.groups.values(), key=lambda g: (g.created_at, g.id))
        return [g.id for g in groups]

    async def update_settings(
        self,
        group_id: str,
        voting_duration_hours: Optional[int] = None,
        tie_policy: Optional[TiePolicy] = None,
        live_tally: Optional[bool] = None,
    ) -> Optional[Group]:
        await self._yield()
        group = self._state.groups.get(group_id)
        if not group:
            return None
        if voting_duration_hours is not None:
            group.voting_duration_hours = voting_duration_hours
        if tie_policy is not None:
            group.tie_policy = tie_policy
        if live_tally is not None:
            group.live_tally = live_tally
        return replace(group)

    async def get_member(self, group_id: str, user_id: str) -> Optional[Member]:
        await self._yield()
        member = self._state.members.get((group_id, user_id))
        return replace(member) if member else None

    async def get_members(self, group_id: str) -> List[Member]:
        await self._yield()
        members = [m for (gid, _), m in self._state.members.items() if gid == group_id]
        return [replace(m) for m in sorted(members, key=lambda m: (m.name, m.user_id))]

    async def count_members(self, group_id: str) -> int:
        await self._yield()
        return sum(1 for (gid, _) in self._state.members if gid == group_id)

    async def add_member(self, group_id: str, user_id: str, role: Role = Role.MEMBER) -> Member:
        await self._yield()
        if group_id not in self._state.groups or user_id not in self._state.users:
            raise DataIntegrityError("unknown group or user", table="group_members")
        key = (group_id, user_id)
        if key not in self._state.members:
            self._state.members[key] = Member(
                group_id=group_id,
                user_id=user_id,
                name=self._state.user_name(user_id),
                role=role,
                joined_at=self._state.stamp(),
            )
        return replace(self._state.members[key])

    async def create_invite(
        self, group_id: str, created_by: str, expires_at: Optional[datetime] = None
    ) -> Invite:
        await self._yield()
        invite = Invite(
            token=generate_invite_token(),
            group_id=group_id,
            created_by=created_by,
            expires_at=expires_at,
            created_at=self._state.stamp(),
        )
        self._state.invites[invite.token] = invite
        return replace(invite)

    async def get_invite(self, token: str) -> Optional[Invite]:
        await self._yield()
        invite = self._state.invites.get(token)
        return replace(invite) if invite else None

    async def get_latest_invite(self, group_id: str, now: datetime) -> Optional[Invite]:
        await self._yield()
        candidates = [
            i for i in self._state.invites.values()
            if i.group_id == group_id and i.is_valid(now)
        ]
        if not candidates:
            return None
        return replace(max(candidates, key=lambda i: i.created_at))

    async def get_user_groups(self, user_id: str, now: datetime) -> List[UserGroup]:
        await self._yield()
        memberships = sorted(
            (m for (_, uid), m in self._state.members.items() if uid == user_id),
            key=lambda m: m.joined_at,
        )
        result = []
        for member in memberships:
            invites = [
                i for i in self._state.invites.values()
                if i.group_id == member.group_id and i.is_valid(now)
            ]
            latest = max(invites, key=lambda i: i.created_at) if invites else None
            result.append(
                UserGroup(
                    group=replace(self._state.groups[member.group_id]),
                    role=member.role,
                    invite_token=latest.token if latest else None,
                )
            )
        return result


class MemoryWeekRepository(_MemoryRepository):
    def _active(self, group_id: str) -> Optional[Week]:
        for week in self._state.weeks.values():
            if week.group_id == group_id and week.status != WeekStatus.RESOLVED:
                return week
        return None

    async def get_week(self, week_id: str) -> Optional[Week]:
        await self._yield()
        week = self._state.weeks.get(week_id)
        return replace(week) if week else None

    async def get_active_week(self, group_id: str) -> Optional[Week]:
        await self._yield()
        week = self._active(group_id)
        return replace(week) if week else None

    async def get_latest_week(self, group_id: str) -> Optional[Week]:
        await self._yield()
        weeks = [w for w in self._state.weeks.values() if w.group_id == group_id]
        if not weeks:
            return None
        return replace(max(weeks, key=lambda w: (w.start_date, w.created_at)))

    async def create_week(
        self,
        group_id: str,
        start_date: date,
        voting_close_at: datetime,
        proposer_id: str,
        seeds: Sequence[ProposalDraft],
        reading_index: Optional[int] = None,
    ) -> Optional[Week]:
        await self._yield()
        if self._active(group_id):
            return None

        week = Week(
            id=generate_id(WEEK_PREFIX),
            group_id=group_id,
            start_date=start_date,
            voting_close_at=voting_close_at,
            status=WeekStatus.VOTING_OPEN,
            created_at=self._state.stamp(),
        )
        self._state.weeks[week.id] = week

        inserted = []
        for draft in seeds:
            proposal = Proposal(
                id=generate_id(PROPOSAL_PREFIX),
                week_id=week.id,
                proposer_id=proposer_id,
                reference=draft.reference,
                note=draft.note,
                is_seed=draft.is_seed,
                created_at=self._state.stamp(),
            )
            self._state.proposals[proposal.id] = proposal
            inserted.append(proposal)

        if reading_index is not None and 0 <= reading_index < len(inserted):
            chosen = inserted[reading_index]
            self._state.upsert_reading(week, chosen.id, chosen.reference)

        logger.info("created week", group_id=group_id, week_id=week.id, seeds=len(inserted))
        return replace(week)

    async def claim_reminder(self, week_id: str, now: datetime) -> bool:
        await self._yield()
        week = self._state.weeks.get(week_id)
        if not week or week.reminder_sent_at is not None or week.status != WeekStatus.VOTING_OPEN:
            return False
        week.reminder_sent_at = now
        return True

    async def mark_pending_manual(self, week_id: str) -> bool:
        await self._yield()
        week = self._state.weeks.get(week_id)
        if not week or week.status != WeekStatus.VOTING_OPEN:
            return False
        week.status = WeekStatus.PENDING_MANUAL
        return True

    async def finalize_week(
        self, week_id: str, proposal_id: str, notification: NotificationDraft
    ) -> FinalizeOutcome:
        async with self._state.week_locks[week_id]:
            await self._yield()
            week = self._state.weeks.get(week_id)
            if not week:
                raise NotFoundError("Week not found", entity="week", entity_id=week_id)

            if week.resolved_reading_id:
                existing = self._state.readings[week.resolved_reading_id]
                return FinalizeOutcome(reading_item=replace(existing), already_resolved=True)

            proposal = self._state.proposals.get(proposal_id)
            if not proposal or proposal.week_id != week_id or not proposal.is_live:
                raise InvalidStateError("Proposal is not eligible for this week")

            # Yield while holding the lock so racing callers queue up behind it
            await self._yield()

            reading = self._state.upsert_reading(week, proposal.id, proposal.reference)
            week.status = WeekStatus.RESOLVED
            week.resolved_reading_id = reading.id
            self._state.insert_notifications(self._state.member_ids(week.group_id), week.group_id, notification)

        logger.info("week finalized", week_id=week_id, proposal_id=proposal_id, reading_item_id=reading.id)
        return FinalizeOutcome(reading_item=reading, already_resolved=False)

    async def get_history(
        self, group_id: str, exclude_week_id: Optional[str], limit: int = 8
    ) -> List[HistoryEntry]:
        await self._yield()
        weeks = [
            w for w in self._state.weeks.values()
            if w.group_id == group_id
            and w.status == WeekStatus.RESOLVED
            and w.resolved_reading_id
            and w.id != exclude_week_id
        ]
        weeks.sort(key=lambda w: (w.start_date, w.created_at), reverse=True)

        entries = []
        for week in weeks[:limit]:
            reading = self._state.readings[week.resolved_reading_id]
            entries.append(
                HistoryEntry(
                    week_id=week.id,
                    start_date=week.start_date,
                    reading_item_id=reading.id,
                    reference=reading.reference,
                    comment_count=sum(
                        1 for c in self._state.comments.values()
                        if c.reading_item_id == reading.id and c.is_live
                    ),
                    read_count=sum(
                        1 for m in self._state.read_marks.values()
                        if m.reading_item_id == reading.id and m.status == ReadStatus.READ
                    ),
                )
            )
        return entries


class MemoryReadingRepository(_MemoryRepository):
    async def get_reading_item(self, reading_item_id: str) -> Optional[ReadingItem]:
        await self._yield()
        reading = self._state.readings.get(reading_item_id)
        return replace(reading) if reading else None

    async def get_for_week(self, week_id: str) -> Optional[ReadingItem]:
        await self._yield()
        reading = self._state.reading_for_week(week_id)
        return replace(reading) if reading else None

    async def sync_for_week(self, week_id: str, proposal_id: str, reference: str) -> Optional[ReadingItem]:
        async with self._state.week_locks[week_id]:
            await self._yield()
            week = self._state.weeks.get(week_id)
            if not week or week.status == WeekStatus.RESOLVED:
                return None
            return self._state.upsert_reading(week, proposal_id, reference)

    async def get_read_references(self, group_id: Optional[str] = None) -> Set[str]:
        await self._yield()
        references = set()
        for week in self._state.weeks.values():
            if not week.resolved_reading_id:
                continue
            if group_id and week.group_id != group_id:
                continue
            references.add(self._state.readings[week.resolved_reading_id].reference)
        return references


class MemoryProposalRepository(_MemoryRepository):
    def _with_name(self, proposal: Proposal) -> Proposal:
        return replace(proposal, proposer_name=self._state.user_name(proposal.proposer_id))

    async def add_proposal(self, week_id: str, proposer_id: str, draft: ProposalDraft) -> Proposal:
        await self._yield()
        if week_id not in self._state.weeks:
            raise DataIntegrityError("week does not exist", table="proposals", constraint="proposals_week_id_fkey")
        proposal = Proposal(
            id=generate_id(PROPOSAL_PREFIX),
            week_id=week_id,
            proposer_id=proposer_id,
            reference=draft.reference,
            note=draft.note,
            is_seed=draft.is_seed,
            created_at=self._state.stamp(),
        )
        self._state.proposals[proposal.id] = proposal
        return self._with_name(proposal)

    async def get_proposal(self, proposal_id: str) -> Optional[Proposal]:
        await self._yield()
        proposal = self._state.proposals.get(proposal_id)
        return self._with_name(proposal) if proposal else None

    def _live(self, week_id: str) -> List[Proposal]:
        live = [p for p in self._state.proposals.values() if p.week_id == week_id and p.is_live]
        return sorted(live, key=lambda p: (p.created_at, p.id))

    async def get_live_proposals(self, week_id: str) -> List[Proposal]:
        await self._yield()
        return [self._with_name(p) for p in self._live(week_id)]

    async def get_week_references(self, week_id: str) -> List[str]:
        await self._yield()
        proposals = sorted(
            (p for p in self._state.proposals.values() if p.week_id == week_id),
            key=lambda p: p.created_at,
        )
        return [p.reference for p in proposals]

    async def soft_delete(self, proposal_id: str, at: datetime) -> bool:
        await self._yield()
        proposal = self._state.proposals.get(proposal_id)
        if not proposal or not proposal.is_live:
            return False
        proposal.lifecycle = Deleted(at=at)
        return True

    async def get_tallies(self, week_id: str) -> List[ProposalTally]:
        await self._yield()
        counts: Dict[str, int] = defaultdict(int)
        for (wid, _), vote in self._state.votes.items():
            if wid == week_id:
                counts[vote.proposal_id] += 1
        tallies = [
            ProposalTally(
                proposal_id=p.id,
                reference=p.reference,
                created_at=p.created_at,
                vote_count=counts[p.id],
            )
            for p in self._live(week_id)
        ]
        return sorted(tallies, key=lambda t: (-t.vote_count, t.created_at, t.proposal_id))


class MemoryVoteRepository(_MemoryRepository):
    def _live_votes(self, week_id: str) -> List[Vote]:
        votes = []
        for (wid, _), vote in self._state.votes.items():
            proposal = self._state.proposals.get(vote.proposal_id)
            if wid == week_id and proposal and proposal.is_live:
                votes.append(vote)
        return votes

    async def cast_vote(self, week_id: str, proposal_id: str, user_id: str, at: datetime) -> Vote:
        await self._yield()
        key = (week_id, user_id)
        existing = self._state.votes.get(key)
        if existing:
            existing.proposal_id = proposal_id
            existing.updated_at = at
        else:
            self._state.votes[key] = Vote(
                week_id=week_id,
                user_id=user_id,
                proposal_id=proposal_id,
                created_at=at,
                updated_at=at,
            )
        return replace(self._state.votes[key])

    async def get_votes(self, week_id: str) -> List[Vote]:
        await self._yield()
        votes = [
            replace(v, user_name=self._state.user_name(v.user_id))
            for v in self._live_votes(week_id)
        ]
        return sorted(votes, key=lambda v: (v.user_name or "", v.user_id))

    async def count_voters(self, week_id: str) -> int:
        await self._yield()
        return len(self._live_votes(week_id))


class MemoryDiscussionRepository(_MemoryRepository):
    async def set_read_mark(
        self, user_id: str, reading_item_id: str, status: ReadStatus, at: datetime
    ) -> ReadMark:
        await self._yield()
        mark = ReadMark(user_id=user_id, reading_item_id=reading_item_id, status=status, updated_at=at)
        self._state.read_marks[(user_id, reading_item_id)] = mark
        return replace(mark)

    async def get_read_marks(self, reading_item_id: str) -> List[ReadMark]:
        await self._yield()
        marks = [m for m in self._state.read_marks.values() if m.reading_item_id == reading_item_id]
        return [replace(m) for m in sorted(marks, key=lambda m: m.user_id)]

    def _named(self, comment: Comment) -> Comment:
        return replace(comment, author_name=self._state.user_name(comment.author_id))

    async def add_comment(
        self, reading_item_id: str, author_id: str, text: str, parent_id: Optional[str] = None
    ) -> Comment:
        await self._yield()
        if reading_item_id not in self._state.readings:
            raise DataIntegrityError("reading item does not exist", table="comments")
        now = self._state.stamp()
        comment = Comment(
            id=generate_id(COMMENT_PREFIX),
            reading_item_id=reading_item_id,
            parent_id=parent_id,
            author_id=author_id,
            text=text,
            created_at=now,
            updated_at=now,
        )
        self._state.comments[comment.id] = comment
        return self._named(comment)

    async def get_comment(self, comment_id: str) -> Optional[Comment]:
        await self._yield()
        comment = self._state.comments.get(comment_id)
        return self._named(comment) if comment else None

    async def get_comments(self, reading_item_id: str) -> List[Comment]:
        await self._yield()
        comments = [
            c for c in self._state.comments.values()
            if c.reading_item_id == reading_item_id and c.is_live
        ]
        return [self._named(c) for c in sorted(comments, key=lambda c: (c.created_at, c.id))]

    async def count_comments(self, reading_item_id: str) -> int:
        await self._yield()
        return sum(
            1 for c in self._state.comments.values()
            if c.reading_item_id == reading_item_id and c.is_live
        )

    async def edit_comment(self, comment_id: str, text: str, at: datetime) -> bool:
        await self._yield()
        comment = self._state.comments.get(comment_id)
        if not comment or not comment.is_live:
            return False
        comment.text = text
        comment.updated_at = at
        return True

    async def delete_comment(self, comment_id: str, at: datetime) -> bool:
        await self._yield()
        comment = self._state.comments.get(comment_id)
        if not comment or not comment.is_live:
            return False
        comment.lifecycle = Deleted(at=at)
        return True

    async def add_annotation(
        self, reading_item_id: str, author_id: str, start_verse: int, end_verse: int, text: str
    ) -> Annotation:
        await self._yield()
        if reading_item_id not in self._state.readings:
            raise DataIntegrityError("reading item does not exist", table="annotations")
        annotation = Annotation(
            id=generate_id(ANNOTATION_PREFIX),
            reading_item_id=reading_item_id,
            author_id=author_id,
            start_verse=start_verse,
            end_verse=end_verse,
            text=text,
            created_at=self._state.stamp(),
            lifecycle=ACTIVE,
        )
        self._state.annotations[annotation.id] = annotation
        return replace(annotation, author_name=self._state.user_name(author_id))

    async def get_annotation(self, annotation_id: str) -> Optional[Annotation]:
        await self._yield()
        annotation = self._state.annotations.get(annotation_id)
        if not annotation:
            return None
        return replace(annotation, author_name=self._state.user_name(annotation.author_id))

    async def get_annotations(self, reading_item_id: str) -> List[Annotation]:
        await self._yield()
        annotations = [
            a for a in self._state.annotations.values()
            if a.reading_item_id == reading_item_id and a.is_live
        ]
        annotations.sort(key=lambda a: (a.start_verse, a.created_at))
        return [replace(a, author_name=self._state.user_name(a.author_id)) for a in annotations]

    async def delete_annotation(self, annotation_id: str, at: datetime) -> bool:
        await self._yield()
        annotation = self._state.annotations.get(annotation_id)
        if not annotation or not annotation.is_live:
            return False
        annotation.lifecycle = Deleted(at=at)
        return True

    async def add_annotation_reply(self, annotation_id: str, author_id: str, text: str) -> AnnotationReply:
        await self._yield()
        if annotation_id not in self._state.annotations:
            raise DataIntegrityError("annotation does not exist", table="annotation_replies")
        reply = AnnotationReply(
            id=generate_id(ANNOTATION_REPLY_PREFIX),
            annotation_id=annotation_id,
            author_id=author_id,
            text=text,
            created_at=self._state.stamp(),
        )
        self._state.annotation_replies[reply.id] = reply
        return replace(reply, author_name=self._state.user_name(author_id))

    async def get_annotation_reply(self, reply_id: str) -> Optional[AnnotationReply]:
        await self._yield()
        reply = self._state.annotation_replies.get(reply_id)
        if not reply:
            return None
        return replace(reply, author_name=self._state.user_name(reply.author_id))

    async def get_annotation_replies(self, annotation_ids: Sequence[str]) -> List[AnnotationReply]:
        await self._yield()
        wanted = set(annotation_ids)
        replies = [
            r for r in self._state.annotation_replies.values()
            if r.annotation_id in wanted and r.is_live
        ]
        replies.sort(key=lambda r: (r.created_at, r.id))
        return [replace(r, author_name=self._state.user_name(r.author_id)) for r in replies]

    async def delete_annotation_reply(self, reply_id: str, at: datetime) -> bool:
        await self._yield()
        reply = self._state.annotation_replies.get(reply_id)
        if not reply or not reply.is_live:
            return False
        reply.lifecycle = Deleted(at=at)
        return True


class MemoryNotificationRepository(_MemoryRepository):
    async def notify_group(self, group_id: str, draft: NotificationDraft) -> int:
        await self._yield()
        return self._state.insert_notifications(self._state.member_ids(group_id), group_id, draft)

    async def notify_users(
        self, user_ids: Sequence[str], group_id: Optional[str], draft: NotificationDraft
    ) -> int:
        await self._yield()
        return self._state.insert_notifications(user_ids, group_id, draft)

    async def get_notifications(self, user_id: str, limit: int = 30) -> List[Notification]:
        await self._yield()
        mine = [n for n in self._state.notifications if n.user_id == user_id]
        mine.sort(key=lambda n: n.created_at, reverse=True)
        return [replace(n) for n in mine[:limit]]


class MemoryDatabase:
    """Store double with the same repository attributes as Database"""

    def __init__(self, clock: Optional[Clock] = None):
        self._state = _State(clock or _utcnow)

        self.users = MemoryUserRepository(self._state)
        self.groups = MemoryGroupRepository(self._state)
        self.weeks = MemoryWeekRepository(self._state)
        self.proposals = MemoryProposalRepository(self._state)
        self.votes = MemoryVoteRepository(self._state)
        self.readings = MemoryReadingRepository(self._state)
        self.discussion = MemoryDiscussionRepository(self._state)
        self.notifications = MemoryNotificationRepository(self._state)

    async def close(self):
        pass

    # Inspection helpers for tests; not part of the Store protocol

    def weeks_for_group(self, group_id: str) -> List[Week]:
        return [replace(w) for w in self._state.weeks.values() if w.group_id == group_id]

    def readings_for_week(self, week_id: str) -> List[ReadingItem]:
        return [replace(r) for r in self._state.readings.values() if r.week_id == week_id]

    def votes_for_week(self, week_id: str) -> List[Vote]:
        return [replace(v) for (wid, _), v in self._state.votes.items() if wid == week_id]

    def all_notifications(self) -> List[Notification]:
        return list(self._state.notifications)
