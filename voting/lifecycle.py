"""Week lifecycle: creation, seeding, voting, resolution and rollover

State machine per group (one non-RESOLVED week at a time):

    (no active week) --create--> VOTING_OPEN
    VOTING_OPEN --expired, decidable--> RESOLVED
    VOTING_OPEN --expired, undecidable--> PENDING_MANUAL
    VOTING_OPEN --everyone voted, decidable--> RESOLVED
    VOTING_OPEN / PENDING_MANUAL --admin resolve--> RESOLVED
    RESOLVED --start new vote--> (new week) VOTING_OPEN

Every operation touching the current week goes through ensure_current_week
first, which may create the week, send the 24h reminder, auto-resolve an
expired week and re-point the reading item, in that order.

All writes that must not race live in the store (unique active week,
one vote per user, locked finalize). This module keeps no state of its
own beyond the injected clock, random source and metrics.
"""

import random
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from config import get_logger
from database.models import (
    Group,
    Proposal,
    ProposalDraft,
    ProposalTally,
    ReadingItem,
    Role,
    Week,
    WeekStatus,
)
from database.store import Store
from exceptions import InvalidInputError, InvalidStateError, NotFoundError, ForbiddenError
from voting.groups import require_admin, require_member
from voting.metrics import NullMetrics, VotingMetrics
from voting.notifications import NotificationEmitter, is_reminder_due, winner_selected
from voting.reference import is_valid_reference, normalize_reference
from voting.seeds import RandomSource, pick_index, pick_seed_passages, pick_seeds_for_date
from voting.tally import ResolutionReason, calculate_winner, order_tallies, unique_leader

logger = get_logger(__name__).bind(component="lifecycle")

Clock = Callable[[], datetime]

DEFAULT_SEED_COUNT = 3
REMINDER_WINDOW_HOURS = 24
MAX_NOTE_LENGTH = 240


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def compute_week_window(now: datetime, timezone_name: str, duration_hours: int) -> Tuple[date, datetime]:
    """Start date and close instant of the calendar week containing now

    The week starts Monday 00:00 in the group's timezone and closes
    duration_hours of wall-clock time later. A close that has already
    passed (a group created late in the week) is pushed to now + duration.

    Returns:
        (start_date, voting_close_at in UTC)
    """
    tz = ZoneInfo(timezone_name)
    local_now = now.astimezone(tz)
    monday = local_now.date() - timedelta(days=local_now.weekday())
    week_start = datetime.combine(monday, time.min, tzinfo=tz)
    close_at = (week_start + timedelta(hours=duration_hours)).astimezone(timezone.utc)
    if close_at <= now:
        close_at = now.astimezone(timezone.utc) + timedelta(hours=duration_hours)
    return monday, close_at


@dataclass
class ResolutionResult:
    status: WeekStatus
    week_id: str
    reading_item_id: Optional[str] = None
    reference: Optional[str] = None
    reason: Optional[ResolutionReason] = None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "week_id": self.week_id,
            "reading_item_id": self.reading_item_id,
            "reference": self.reference,
            "reason": self.reason.value if self.reason else None,
        }


@dataclass
class VoteResult:
    auto_resolved: bool
    reading_item_id: Optional[str] = None
    reference: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "auto_resolved": self.auto_resolved,
            "reading_item_id": self.reading_item_id,
            "reference": self.reference,
        }


@dataclass
class RolloverFailure:
    group_id: str
    error: str


@dataclass
class RolloverReport:
    processed_group_ids: List[str] = field(default_factory=list)
    failures: List[RolloverFailure] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.processed_group_ids)

    @property
    def failed(self) -> int:
        return len(self.failures)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "failed": self.failed,
            "processed_group_ids": list(self.processed_group_ids),
            "failures": [{"group_id": f.group_id, "error": f.error} for f in self.failures],
        }


class WeekLifecycleManager:
    """Owns the weekly voting state machine for every group

    Args:
        db: Store implementation (Database or MemoryDatabase)
        rng: Zero-argument callable returning floats in [0, 1)
        clock: Zero-argument callable returning an aware datetime
        metrics: Counters for weeks created/resolved, votes and rollover failures
        seed_count: Seed proposals inserted into each new week
    """

    def __init__(
        self,
        db: Store,
        rng: RandomSource = random.random,
        clock: Optional[Clock] = None,
        metrics: Optional[VotingMetrics] = None,
        seed_count: int = DEFAULT_SEED_COUNT,
        reminder_window_hours: int = REMINDER_WINDOW_HOURS,
    ):
        self.db = db
        self.rng = rng
        self.clock = clock or _utcnow
        self.metrics = metrics or NullMetrics()
        self.seed_count = seed_count
        self.reminder_window_hours = reminder_window_hours
        self.emitter = NotificationEmitter(db)

    # -------------------------------------------------------------------------
    # Current week
    # -------------------------------------------------------------------------

    async def ensure_current_week(self, group_id: str) -> Week:
        """Return the group's current week, creating and advancing it as needed

        Safe to run concurrently with itself and with every other operation.

        Raises:
            NotFoundError: Group does not exist
        """
        group = await self._get_group(group_id)
        week = await self._advance(group, await self._get_or_create_week(group))
        if week.is_resolved and self._is_stale(group, week):
            # Last calendar week's vote just closed; this week's opens now
            week = await self._advance(group, await self._get_or_create_week(group))
        return week

    def _is_stale(self, group: Group, week: Week) -> bool:
        start_date, _ = compute_week_window(self.clock(), group.timezone, group.voting_duration_hours)
        return week.start_date < start_date

    async def _get_group(self, group_id: str) -> Group:
        group = await self.db.groups.get_group(group_id)
        if not group:
            raise NotFoundError("Group not found", entity="group", entity_id=group_id)
        return group

    async def _get_or_create_week(self, group: Group) -> Week:
        active = await self.db.weeks.get_active_week(group.id)
        if active:
            return active

        now = self.clock()
        start_date, close_at = compute_week_window(now, group.timezone, group.voting_duration_hours)

        # A week already resolved this calendar week stays current until
        # someone explicitly starts a new vote.
        latest = await self.db.weeks.get_latest_week(group.id)
        if latest and latest.start_date >= start_date:
            return latest

        excluded = await self.db.readings.get_read_references()
        seeds = pick_seeds_for_date(start_date, self.seed_count, excluded)
        created = await self._create_week(group, start_date, close_at, seeds)

        if created is None:
            # Lost the creation race; the winner's row is the current week
            active = await self.db.weeks.get_active_week(group.id)
            if active:
                return active
            latest = await self.db.weeks.get_latest_week(group.id)
            if latest:
                return latest
            raise InvalidStateError("Could not create the current week")

        await self.emitter.voting_opened(created)
        return created

    async def _create_week(self, group: Group, start_date: date, close_at: datetime,
                           seeds) -> Optional[Week]:
        drafts = [seed.to_draft() for seed in seeds]
        reading_index = pick_index(self.rng, len(drafts)) if drafts else None
        week = await self.db.weeks.create_week(
            group.id,
            start_date,
            close_at,
            group.owner_id,
            drafts,
            reading_index,
        )
        if week:
            self.metrics.weeks_created.inc()
            logger.info(
                "week opened",
                group_id=group.id,
                week_id=week.id,
                start_date=start_date.isoformat(),
                close_at=close_at.isoformat(),
                seeds=[d.reference for d in drafts],
            )
        return week

    async def _advance(self, group: Group, week: Week) -> Week:
        """Reminder, then expiry resolution, then reading item sync"""
        if week.is_resolved:
            return week

        now = self.clock()

        if week.status == WeekStatus.VOTING_OPEN and is_reminder_due(week, now, self.reminder_window_hours):
            if await self.db.weeks.claim_reminder(week.id, now):
                await self.emitter.voting_reminder(week)

        if week.status == WeekStatus.VOTING_OPEN and week.is_expired(now):
            await self._resolve_expired(group, week)
            week = await self.db.weeks.get_week(week.id)

        if not week.is_resolved:
            await self._sync_reading_item(week)

        return week

    async def _resolve_expired(self, group: Group, week: Week) -> None:
        tallies = await self.db.proposals.get_tallies(week.id)
        decision = calculate_winner(tallies, group.tie_policy, self.rng)
        if decision.is_decisive:
            await self.finalize_week(week.id, decision.proposal_id, reason=decision.reason)
            return
        if await self.db.weeks.mark_pending_manual(week.id):
            logger.info(
                "voting closed without a winner",
                group_id=group.id,
                week_id=week.id,
                reason=decision.reason.value,
            )

    async def _sync_reading_item(self, week: Week) -> Optional[ReadingItem]:
        """Point an unresolved week's reading item at the vote leader

        Without a unique leader the current item stays if its proposal is
        still live; otherwise a random live proposal takes its place.
        """
        tallies = await self.db.proposals.get_tallies(week.id)
        current = await self.db.readings.get_for_week(week.id)
        if not tallies:
            return current

        leader = unique_leader(tallies)
        if leader:
            if current and current.proposal_id == leader.proposal_id:
                return current
            return await self.db.readings.sync_for_week(week.id, leader.proposal_id, leader.reference)

        live_ids = {t.proposal_id for t in tallies}
        if current and current.proposal_id in live_ids:
            return current

        by_creation = sorted(tallies, key=lambda t: (t.created_at, t.proposal_id))
        pick = by_creation[pick_index(self.rng, len(by_creation))]
        return await self.db.readings.sync_for_week(week.id, pick.proposal_id, pick.reference)

    async def _sync_to_leader(self, week: Week, tallies: List[ProposalTally]) -> None:
        leader = unique_leader(tallies)
        if leader:
            await self.db.readings.sync_for_week(week.id, leader.proposal_id, leader.reference)

    async def _insert_seeds(self, week: Week, group: Group, count: int,
                            excluded: Iterable[str]) -> List[Proposal]:
        inserted = []
        for seed in pick_seed_passages(count, excluded, self.rng):
            inserted.append(await self.db.proposals.add_proposal(week.id, group.owner_id, seed.to_draft()))
        return inserted

    async def _proposal_in_group(self, group_id: str, proposal_id: str) -> Tuple[Proposal, Week]:
        proposal = await self.db.proposals.get_proposal(proposal_id)
        if not proposal or not proposal.is_live:
            raise NotFoundError("Proposal not found", entity="proposal", entity_id=proposal_id)
        week = await self.db.weeks.get_week(proposal.week_id)
        if not week or week.group_id != group_id:
            raise NotFoundError("Proposal not found", entity="proposal", entity_id=proposal_id)
        return proposal, week

    # -------------------------------------------------------------------------
    # Ballot
    # -------------------------------------------------------------------------

    async def add_proposal(self, group_id: str, user_id: str, reference: str,
                           note: Optional[str] = None) -> Proposal:
        """Add a member's proposal to the open week

        Raises:
            InvalidStateError: Voting is closed
            InvalidInputError: Reference does not parse
        """
        await require_member(self.db, group_id, user_id)
        week = await self.ensure_current_week(group_id)

        if not week.accepts_votes(self.clock()):
            raise InvalidStateError("Voting is closed for this week")

        normalized = normalize_reference(reference)
        if not is_valid_reference(normalized):
            raise InvalidInputError(
                "Invalid reference format (ex: John 3:1-21)", field="reference", value=reference
            )

        clean_note = (note or "").strip()[:MAX_NOTE_LENGTH] or None
        proposal = await self.db.proposals.add_proposal(
            week.id, user_id, ProposalDraft(reference=normalized, note=clean_note, is_seed=False)
        )
        logger.info("proposal added", group_id=group_id, week_id=week.id, proposal_id=proposal.id)
        return proposal

    async def remove_proposal(self, group_id: str, user_id: str, proposal_id: str) -> None:
        """Soft-delete a proposal; admins or the proposer only

        An open week left with no live proposals gets one fresh seed.
        """
        member = await require_member(self.db, group_id, user_id)
        await self.ensure_current_week(group_id)
        proposal, week = await self._proposal_in_group(group_id, proposal_id)

        if not member.role.at_least(Role.ADMIN) and proposal.proposer_id != user_id:
            raise ForbiddenError("Only admins or the proposer can remove this proposal")

        await self.db.proposals.soft_delete(proposal.id, self.clock())
        logger.info("proposal removed", group_id=group_id, week_id=week.id, proposal_id=proposal.id)

        week = await self.db.weeks.get_week(week.id)
        if week.is_resolved:
            return

        if not await self.db.proposals.get_live_proposals(week.id):
            group = await self._get_group(group_id)
            excluded = set(await self.db.readings.get_read_references())
            excluded.update(await self.db.proposals.get_week_references(week.id))
            reseeded = await self._insert_seeds(week, group, 1, excluded)
            logger.info("ballot reseeded", week_id=week.id, seeds=[p.reference for p in reseeded])

        await self._sync_reading_item(week)

    async def reroll_seed_proposal(self, group_id: str, user_id: str,
                                   proposal_id: str) -> Optional[Proposal]:
        """Replace one seed proposal with a freshly picked seed (admin only)

        The replacement avoids everything the group has read and everything
        already proposed this week.

        Returns:
            The new seed, or None if the catalog has nothing left to offer
        """
        await require_admin(self.db, group_id, user_id)
        await self.ensure_current_week(group_id)
        proposal, week = await self._proposal_in_group(group_id, proposal_id)

        if not proposal.is_seed:
            raise InvalidStateError("Only seed proposals can be rerolled")

        await self.db.proposals.soft_delete(proposal.id, self.clock())

        group = await self._get_group(group_id)
        excluded = set(await self.db.readings.get_read_references(group_id))
        excluded.update(await self.db.proposals.get_week_references(week.id))
        replacement = await self._insert_seeds(week, group, 1, excluded)

        week = await self.db.weeks.get_week(week.id)
        if not week.is_resolved:
            await self._sync_reading_item(week)

        logger.info(
            "seed rerolled",
            group_id=group_id,
            week_id=week.id,
            removed=proposal.reference,
            added=replacement[0].reference if replacement else None,
        )
        return replacement[0] if replacement else None

    async def cast_vote(self, group_id: str, user_id: str, proposal_id: str) -> VoteResult:
        """Record (or replace) the member's vote for this week

        Resolves immediately once every member has voted and the tally is
        decisive. A full-turnout ADMIN_PICK tie leaves the week open.
        """
        await require_member(self.db, group_id, user_id)
        week = await self.ensure_current_week(group_id)
        now = self.clock()

        if not week.accepts_votes(now):
            raise InvalidStateError("Voting is closed")

        proposal = await self.db.proposals.get_proposal(proposal_id)
        if not proposal or proposal.week_id != week.id or not proposal.is_live:
            raise NotFoundError("Proposal not found for current week", entity="proposal", entity_id=proposal_id)

        await self.db.votes.cast_vote(week.id, proposal.id, user_id, now)
        self.metrics.votes_cast.inc()

        tallies = await self.db.proposals.get_tallies(week.id)
        await self._sync_to_leader(week, tallies)

        voters = await self.db.votes.count_voters(week.id)
        members = await self.db.groups.count_members(group_id)
        if members == 0 or voters < members:
            return VoteResult(auto_resolved=False)

        group = await self._get_group(group_id)
        decision = calculate_winner(tallies, group.tie_policy, self.rng)
        if not decision.is_decisive:
            logger.info("full turnout without decisive winner", week_id=week.id, reason=decision.reason.value)
            return VoteResult(auto_resolved=False)

        result = await self.finalize_week(week.id, decision.proposal_id, reason=decision.reason)
        return VoteResult(auto_resolved=True, reading_item_id=result.reading_item_id, reference=result.reference)

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    async def resolve_current_week(self, group_id: str, user_id: str,
                                   manual_proposal_id: Optional[str] = None) -> ResolutionResult:
        """Admin resolve: manual pick, tally, random fallback, in that order

        Only a ballot with zero live proposals ends up PENDING_MANUAL.
        Already-resolved weeks return their existing result.
        """
        await require_admin(self.db, group_id, user_id)
        group = await self._get_group(group_id)
        week = await self.ensure_current_week(group_id)

        if week.resolved_reading_id:
            return await self._existing_result(week)

        if manual_proposal_id:
            return await self.finalize_week(
                week.id, manual_proposal_id, actor_user_id=user_id, reason=ResolutionReason.MANUAL_PICK
            )

        tallies = await self.db.proposals.get_tallies(week.id)
        decision = calculate_winner(tallies, group.tie_policy, self.rng)
        if decision.is_decisive:
            return await self.finalize_week(
                week.id, decision.proposal_id, actor_user_id=user_id, reason=decision.reason
            )

        if tallies:
            ordered = order_tallies(tallies)
            pick = ordered[pick_index(self.rng, len(ordered))]
            return await self.finalize_week(
                week.id, pick.proposal_id, actor_user_id=user_id, reason=ResolutionReason.FALLBACK_RANDOM
            )

        await self.db.weeks.mark_pending_manual(week.id)
        return ResolutionResult(
            status=WeekStatus.PENDING_MANUAL, week_id=week.id, reason=ResolutionReason.NO_PROPOSALS
        )

    async def finalize_week(self, week_id: str, proposal_id: str, actor_user_id: Optional[str] = None,
                            reason: Optional[ResolutionReason] = None) -> ResolutionResult:
        """Resolve a week to one proposal; idempotent under concurrent calls

        Raises:
            NotFoundError: Week does not exist
            InvalidStateError: Proposal is deleted or from another week
        """
        week = await self.db.weeks.get_week(week_id)
        if not week:
            raise NotFoundError("Week not found", entity="week", entity_id=week_id)
        if week.resolved_reading_id:
            return await self._existing_result(week)

        proposal = await self.db.proposals.get_proposal(proposal_id)
        if not proposal or proposal.week_id != week.id or not proposal.is_live:
            raise InvalidStateError("Proposal is not eligible for this week")

        draft = winner_selected(week, proposal.reference, actor_user_id=actor_user_id)
        outcome = await self.db.weeks.finalize_week(week.id, proposal.id, draft)
        reading = outcome.reading_item

        if outcome.already_resolved:
            return ResolutionResult(
                status=WeekStatus.RESOLVED, week_id=week.id,
                reading_item_id=reading.id, reference=reading.reference,
            )

        self.metrics.weeks_resolved.labels(reason=reason.value if reason else "UNSPECIFIED").inc()
        logger.info(
            "week resolved",
            group_id=week.group_id,
            week_id=week.id,
            reference=reading.reference,
            reason=reason.value if reason else None,
        )
        return ResolutionResult(
            status=WeekStatus.RESOLVED,
            week_id=week.id,
            reading_item_id=reading.id,
            reference=reading.reference,
            reason=reason,
        )

    async def _existing_result(self, week: Week) -> ResolutionResult:
        reading = await self.db.readings.get_reading_item(week.resolved_reading_id)
        return ResolutionResult(
            status=WeekStatus.RESOLVED,
            week_id=week.id,
            reading_item_id=reading.id if reading else week.resolved_reading_id,
            reference=reading.reference if reading else None,
        )

    # -------------------------------------------------------------------------
    # New rounds and rollover
    # -------------------------------------------------------------------------

    async def start_new_vote(self, group_id: str, user_id: str) -> Week:
        """Open an ad hoc round after the latest week resolved

        The close time counts from now, not from the calendar week.

        Raises:
            InvalidStateError: No previous week, or the latest one is still open
        """
        await require_member(self.db, group_id, user_id)
        group = await self._get_group(group_id)

        latest = await self.db.weeks.get_latest_week(group_id)
        if not latest:
            raise InvalidStateError("No previous week found")
        if not latest.is_resolved:
            latest = await self.ensure_current_week(group_id)
        if not latest.is_resolved:
            raise InvalidStateError("Current vote must be resolved before starting a new one")

        now = self.clock()
        start_date = now.astimezone(ZoneInfo(group.timezone)).date()
        close_at = now.astimezone(timezone.utc) + timedelta(hours=group.voting_duration_hours)

        excluded = await self.db.readings.get_read_references(group_id)
        seeds = pick_seed_passages(self.seed_count, excluded, self.rng)
        week = await self._create_week(group, start_date, close_at, seeds)
        if week is None:
            raise InvalidStateError("Current vote must be resolved before starting a new one")

        await self.emitter.voting_opened(week, actor_user_id=user_id)
        return week

    async def run_weekly_rollover(self, group_id: Optional[str] = None) -> RolloverReport:
        """Ensure every group (or one group) has an up-to-date current week

        Each group is handled independently; failures are collected, never
        merged, and never stop the rest of the batch.
        """
        group_ids = [group_id] if group_id else await self.db.groups.get_group_ids()
        report = RolloverReport()

        for gid in group_ids:
            try:
                await self.ensure_current_week(gid)
                report.processed_group_ids.append(gid)
            except Exception as e:
                logger.error("rollover failed for group", group_id=gid, error=str(e), exc_info=True)
                self.metrics.rollover_failures.inc()
                report.failures.append(RolloverFailure(group_id=gid, error=str(e)))

        logger.info("weekly rollover complete", processed=report.processed, failed=report.failed)
        return report
