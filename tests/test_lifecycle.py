"""
Tests for WeekLifecycleManager

Week creation, ballot changes, voting, resolution paths and new rounds,
all against MemoryDatabase with a controllable clock and pinned randomness.
"""

import asyncio
from datetime import timedelta

import pytest

from conftest import NOW, VOTING_CLOSE, WEEK_START, FixedRandom
from database.models import NotificationType, Role, TiePolicy, WeekStatus
from exceptions import ForbiddenError, InvalidInputError, InvalidStateError, NotFoundError
from voting.lifecycle import compute_week_window
from voting.notifications import NEW_ROUND_TEXT
from voting.tally import ResolutionReason


def _of_type(db, notification_type):
    return [n for n in db.all_notifications() if n.type == notification_type]


class TestWeekWindow:
    """Calendar week and close time in the group's timezone"""

    def test_calendar_week_in_group_timezone(self):
        """Week starts Monday local midnight and closes 68 hours later"""
        start, close = compute_week_window(NOW, "America/New_York", 68)
        assert start == WEEK_START
        assert close == VOTING_CLOSE

    def test_past_close_counts_from_now(self):
        """A window already over (late-week creation) closes duration hours from now"""
        late = VOTING_CLOSE + timedelta(days=1)
        start, close = compute_week_window(late, "America/New_York", 68)
        assert start == WEEK_START
        assert close == late + timedelta(hours=68)


class TestEnsureCurrentWeek:
    """Week creation, reminders and expiry on read"""

    async def test_creates_seeded_week_with_reading_item(self, services, db, group):
        """New week gets seed proposals and a provisional reading item"""
        week = await services.lifecycle.ensure_current_week(group.id)

        assert week.status == WeekStatus.VOTING_OPEN
        assert week.start_date == WEEK_START
        assert week.voting_close_at == VOTING_CLOSE

        proposals = await db.proposals.get_live_proposals(week.id)
        assert len(proposals) == 3
        assert all(p.is_seed for p in proposals)

        reading = await db.readings.get_for_week(week.id)
        assert reading is not None
        assert reading.proposal_id in {p.id for p in proposals}

    async def test_broadcasts_voting_opened(self, services, db, group, owner, member):
        """Every member hears that voting opened"""
        await services.lifecycle.ensure_current_week(group.id)
        opened = _of_type(db, NotificationType.VOTING_OPENED)
        assert sorted(n.user_id for n in opened) == sorted([owner.id, member.id])

    async def test_idempotent(self, services, db, group):
        """Repeat calls return the same week and notify once"""
        first = await services.lifecycle.ensure_current_week(group.id)
        second = await services.lifecycle.ensure_current_week(group.id)
        assert first.id == second.id
        assert len(db.weeks_for_group(group.id)) == 1
        assert len(_of_type(db, NotificationType.VOTING_OPENED)) == 2

    async def test_missing_group(self, services):
        """Unknown group is not found"""
        with pytest.raises(NotFoundError):
            await services.lifecycle.ensure_current_week("grp_0000000000000000")

    async def test_reminder_sent_once_inside_window(self, services, db, group, clock):
        """Reminder goes out once inside the last 24 hours"""
        await services.lifecycle.ensure_current_week(group.id)
        clock.now = VOTING_CLOSE - timedelta(hours=10)

        await services.lifecycle.ensure_current_week(group.id)
        await services.lifecycle.ensure_current_week(group.id)

        reminders = _of_type(db, NotificationType.VOTING_REMINDER)
        assert len(reminders) == 2  # one per member, sent once

    async def test_concurrent_calls_send_reminder_once(self, services, db, group, owner, member, clock):
        """Six overlapping calls still remind each member exactly once"""
        await services.lifecycle.ensure_current_week(group.id)
        clock.now = VOTING_CLOSE - timedelta(hours=10)

        weeks = await asyncio.gather(*[services.lifecycle.ensure_current_week(group.id) for _ in range(6)])

        assert len({w.id for w in weeks}) == 1
        reminders = _of_type(db, NotificationType.VOTING_REMINDER)
        assert sorted(n.user_id for n in reminders) == sorted([owner.id, member.id])

    async def test_expired_week_with_no_votes_resolves(self, services, db, group, clock):
        """Past close with no votes resolves to one of the proposals"""
        week = await services.lifecycle.ensure_current_week(group.id)
        clock.now = VOTING_CLOSE + timedelta(minutes=1)

        current = await services.lifecycle.ensure_current_week(group.id)

        assert current.id == week.id
        assert current.status == WeekStatus.RESOLVED
        assert current.resolved_reading_id is not None
        assert len(_of_type(db, NotificationType.WINNER_SELECTED)) == 2

    async def test_expired_admin_pick_tie_goes_pending(self, bare_services, db, make_group, owner, member, clock):
        """Past close with an ADMIN_PICK tie waits for a manual pick"""
        group = await make_group(extra_members=1)
        lifecycle = bare_services.lifecycle
        a = await lifecycle.add_proposal(group.id, owner.id, "John 1")
        b = await lifecycle.add_proposal(group.id, member.id, "John 2")
        await lifecycle.cast_vote(group.id, owner.id, a.id)
        await lifecycle.cast_vote(group.id, member.id, b.id)

        clock.now = VOTING_CLOSE
        week = await lifecycle.ensure_current_week(group.id)
        assert week.status == WeekStatus.PENDING_MANUAL

        # Admin breaks the tie by hand
        result = await lifecycle.resolve_current_week(group.id, owner.id, manual_proposal_id=b.id)
        assert result.status == WeekStatus.RESOLVED
        assert result.reference == "John 2"
        assert result.reason == ResolutionReason.MANUAL_PICK

    async def test_resolved_week_stays_current_within_calendar_week(self, services, db, group, owner, clock):
        """Resolved week stays current until the calendar week ends"""
        week = await services.lifecycle.ensure_current_week(group.id)
        await services.lifecycle.resolve_current_week(group.id, owner.id)
        clock.advance(hours=2)

        current = await services.lifecycle.ensure_current_week(group.id)
        assert current.id == week.id
        assert current.status == WeekStatus.RESOLVED
        assert len(db.weeks_for_group(group.id)) == 1

    async def test_next_calendar_week_opens_new_week(self, services, db, group, owner, clock):
        """New calendar week opens a fresh round avoiding the last winner"""
        await services.lifecycle.ensure_current_week(group.id)
        resolved = await services.lifecycle.resolve_current_week(group.id, owner.id)
        clock.advance(days=7)

        week = await services.lifecycle.ensure_current_week(group.id)
        assert week.status == WeekStatus.VOTING_OPEN
        assert week.start_date == WEEK_START + timedelta(days=7)

        seeds = await db.proposals.get_live_proposals(week.id)
        assert resolved.reference not in {p.reference for p in seeds}


class TestProposals:
    """Adding, removing and rerolling proposals"""

    async def test_add_normalizes_reference_and_trims_note(self, services, group, member):
        """Reference is normalized and the note capped at 240 characters"""
        proposal = await services.lifecycle.add_proposal(group.id, member.id, "  john   3:1–21 ", "x" * 300)
        assert proposal.reference == "john 3:1-21"
        assert len(proposal.note) == 240
        assert not proposal.is_seed

    async def test_invalid_reference_is_422(self, services, group, member):
        """Unparseable reference raises an input error"""
        with pytest.raises(InvalidInputError) as exc_info:
            await services.lifecycle.add_proposal(group.id, member.id, "not a passage")
        assert exc_info.value.status_code == 422
        assert exc_info.value.message == "Invalid reference format (ex: John 3:1-21)"

    async def test_outsider_is_forbidden(self, services, group, outsider):
        """Non-members cannot propose"""
        with pytest.raises(ForbiddenError) as exc_info:
            await services.lifecycle.add_proposal(group.id, outsider.id, "John 3")
        assert exc_info.value.status_code == 403

    async def test_add_after_close_is_rejected(self, services, group, member, clock):
        """No proposals once voting has closed"""
        await services.lifecycle.ensure_current_week(group.id)
        clock.now = VOTING_CLOSE + timedelta(hours=1)
        with pytest.raises(InvalidStateError):
            await services.lifecycle.add_proposal(group.id, member.id, "John 3")

    async def test_member_cannot_remove_others_proposal(self, services, group, owner, member):
        """Members remove only their own proposals"""
        proposal = await services.lifecycle.add_proposal(group.id, owner.id, "John 3")
        with pytest.raises(ForbiddenError):
            await services.lifecycle.remove_proposal(group.id, member.id, proposal.id)

    async def test_proposer_can_remove_own(self, services, db, group, member):
        """Removal is a soft delete"""
        proposal = await services.lifecycle.add_proposal(group.id, member.id, "John 3")
        await services.lifecycle.remove_proposal(group.id, member.id, proposal.id)

        stored = await db.proposals.get_proposal(proposal.id)
        assert not stored.is_live
        live = await db.proposals.get_live_proposals(proposal.week_id)
        assert proposal.id not in {p.id for p in live}

    async def test_removing_last_proposal_reseeds_one(self, bare_services, db, group, member):
        """Ballot never goes empty; a seed replaces the last proposal"""
        lifecycle = bare_services.lifecycle
        proposal = await lifecycle.add_proposal(group.id, member.id, "John 3")
        await lifecycle.remove_proposal(group.id, member.id, proposal.id)

        live = await db.proposals.get_live_proposals(proposal.week_id)
        assert len(live) == 1
        assert live[0].is_seed

        reading = await db.readings.get_for_week(proposal.week_id)
        assert reading.proposal_id == live[0].id

    async def test_reroll_replaces_only_the_seed(self, services, db, group, owner, member):
        """Reroll swaps one seed for a fresh reference and keeps the rest"""
        lifecycle = services.lifecycle
        week = await lifecycle.ensure_current_week(group.id)
        user_proposal = await lifecycle.add_proposal(group.id, member.id, "John 3", "Nicodemus")
        before = await db.proposals.get_live_proposals(week.id)
        seed = next(p for p in before if p.is_seed)

        replacement = await lifecycle.reroll_seed_proposal(group.id, owner.id, seed.id)

        after = await db.proposals.get_live_proposals(week.id)
        assert len(after) == len(before)
        assert seed.id not in {p.id for p in after}
        assert replacement.is_seed
        assert replacement.reference not in {p.reference for p in before}

        kept = next(p for p in after if p.id == user_proposal.id)
        assert (kept.reference, kept.note) == ("John 3", "Nicodemus")

    async def test_reroll_requires_admin(self, services, db, group, member):
        """Reroll is admin only"""
        week = await services.lifecycle.ensure_current_week(group.id)
        seed = (await db.proposals.get_live_proposals(week.id))[0]
        with pytest.raises(ForbiddenError):
            await services.lifecycle.reroll_seed_proposal(group.id, member.id, seed.id)

    async def test_reroll_rejects_user_proposal(self, services, group, owner, member):
        """Only seed proposals can be rerolled"""
        proposal = await services.lifecycle.add_proposal(group.id, member.id, "John 3")
        with pytest.raises(InvalidStateError):
            await services.lifecycle.reroll_seed_proposal(group.id, owner.id, proposal.id)


class TestVoting:
    """Casting votes and auto-resolution on full turnout"""

    async def test_full_turnout_auto_resolves(self, bare_services, db, group, owner, member):
        """Last member's vote resolves a clear winner"""
        lifecycle = bare_services.lifecycle
        a = await lifecycle.add_proposal(group.id, owner.id, "Romans 8")
        await lifecycle.add_proposal(group.id, member.id, "Psalm 23")

        first = await lifecycle.cast_vote(group.id, owner.id, a.id)
        second = await lifecycle.cast_vote(group.id, member.id, a.id)

        assert not first.auto_resolved
        assert second.auto_resolved
        assert second.reference == "Romans 8"

        week = await db.weeks.get_week(a.week_id)
        assert week.status == WeekStatus.RESOLVED
        reading = await db.readings.get_reading_item(week.resolved_reading_id)
        assert reading.reference == "Romans 8"

    async def test_full_turnout_admin_pick_tie_stays_open(self, bare_services, db, group, owner, member):
        """Full turnout tie under ADMIN_PICK leaves voting open"""
        lifecycle = bare_services.lifecycle
        a = await lifecycle.add_proposal(group.id, owner.id, "Romans 8")
        b = await lifecycle.add_proposal(group.id, member.id, "Psalm 23")

        await lifecycle.cast_vote(group.id, owner.id, a.id)
        result = await lifecycle.cast_vote(group.id, member.id, b.id)

        assert not result.auto_resolved
        week = await db.weeks.get_week(a.week_id)
        assert week.status == WeekStatus.VOTING_OPEN

    async def test_revote_replaces_choice(self, bare_services, db, make_group, owner):
        """One vote per member; a second vote replaces the first"""
        group = await make_group(extra_members=1)
        lifecycle = bare_services.lifecycle
        a = await lifecycle.add_proposal(group.id, owner.id, "Romans 8")
        b = await lifecycle.add_proposal(group.id, owner.id, "Psalm 23")

        await lifecycle.cast_vote(group.id, owner.id, a.id)
        await lifecycle.cast_vote(group.id, owner.id, b.id)

        votes = db.votes_for_week(a.week_id)
        assert len(votes) == 1
        assert votes[0].proposal_id == b.id

    async def test_vote_moves_reading_to_unique_leader(self, bare_services, db, make_group, owner):
        """Provisional reading follows the unique leader"""
        group = await make_group(extra_members=1)
        lifecycle = bare_services.lifecycle
        await lifecycle.add_proposal(group.id, owner.id, "Romans 8")
        b = await lifecycle.add_proposal(group.id, owner.id, "Psalm 23")

        await lifecycle.cast_vote(group.id, owner.id, b.id)
        reading = await db.readings.get_for_week(b.week_id)
        assert reading.proposal_id == b.id

    async def test_vote_for_unknown_proposal(self, services, group, member):
        """Unknown proposal is not found for the current week"""
        await services.lifecycle.ensure_current_week(group.id)
        with pytest.raises(NotFoundError) as exc_info:
            await services.lifecycle.cast_vote(group.id, member.id, "prp_0000000000000000")
        assert exc_info.value.message == "Proposal not found for current week"

    async def test_vote_for_deleted_proposal(self, services, group, member):
        """Deleted proposals take no votes"""
        proposal = await services.lifecycle.add_proposal(group.id, member.id, "John 3")
        await services.lifecycle.remove_proposal(group.id, member.id, proposal.id)
        with pytest.raises(NotFoundError):
            await services.lifecycle.cast_vote(group.id, member.id, proposal.id)

    async def test_vote_after_resolution_is_closed(self, bare_services, group, owner, member):
        """Resolved week refuses votes"""
        lifecycle = bare_services.lifecycle
        a = await lifecycle.add_proposal(group.id, owner.id, "Romans 8")
        await lifecycle.resolve_current_week(group.id, owner.id)
        with pytest.raises(InvalidStateError) as exc_info:
            await lifecycle.cast_vote(group.id, member.id, a.id)
        assert exc_info.value.message == "Voting is closed"


class TestResolution:
    """Manual and automatic resolution paths"""

    async def test_no_vote_fallback(self, services, db, group, owner):
        """Nobody voted; admin resolve picks one of the existing proposals"""
        week = await services.lifecycle.ensure_current_week(group.id)
        references = {p.reference for p in await db.proposals.get_live_proposals(week.id)}

        result = await services.lifecycle.resolve_current_week(group.id, owner.id)

        assert result.status == WeekStatus.RESOLVED
        assert result.reference in references
        assert result.reason == ResolutionReason.NO_VOTES_RANDOM

    async def test_random_tie_policy_is_deterministic(self, make_services, db, make_group, owner, member):
        """RANDOM tie policy draws from the tied set with the injected source"""
        group = await make_group(tie_policy=TiePolicy.RANDOM, extra_members=1)
        lifecycle = make_services(seed_count=0, random_source=FixedRandom(0.6)).lifecycle
        await lifecycle.add_proposal(group.id, owner.id, "Romans 8")
        b = await lifecycle.add_proposal(group.id, member.id, "Psalm 23")
        a_id = (await db.proposals.get_live_proposals(b.week_id))[0].id

        await lifecycle.cast_vote(group.id, owner.id, a_id)
        await lifecycle.cast_vote(group.id, member.id, b.id)

        result = await lifecycle.resolve_current_week(group.id, owner.id)
        assert result.reference == "Psalm 23"
        assert result.reason == ResolutionReason.TIE_RANDOM

    async def test_admin_pick_tie_falls_back_to_random(self, make_services, make_group, owner, member):
        """A manual resolve always produces an outcome"""
        group = await make_group(extra_members=1)
        lifecycle = make_services(seed_count=0, random_source=FixedRandom(0.0)).lifecycle
        a = await lifecycle.add_proposal(group.id, owner.id, "Romans 8")
        b = await lifecycle.add_proposal(group.id, member.id, "Psalm 23")
        await lifecycle.cast_vote(group.id, owner.id, a.id)
        await lifecycle.cast_vote(group.id, member.id, b.id)

        result = await lifecycle.resolve_current_week(group.id, owner.id)
        assert result.status == WeekStatus.RESOLVED
        assert result.reason == ResolutionReason.FALLBACK_RANDOM
        assert result.reference == "Romans 8"

    async def test_empty_ballot_goes_pending(self, bare_services, db, group, owner):
        """Nothing to pick leaves the week pending"""
        week = await bare_services.lifecycle.ensure_current_week(group.id)
        result = await bare_services.lifecycle.resolve_current_week(group.id, owner.id)
        assert result.status == WeekStatus.PENDING_MANUAL
        assert (await db.weeks.get_week(week.id)).status == WeekStatus.PENDING_MANUAL

    async def test_resolve_requires_admin(self, services, group, member):
        """Plain members cannot resolve"""
        with pytest.raises(ForbiddenError):
            await services.lifecycle.resolve_current_week(group.id, member.id)

    async def test_admin_can_resolve(self, services, db, group):
        """ADMIN role is enough to resolve"""
        admin = await db.users.create_user("Dee Admin", "dee@example.com")
        await db.groups.add_member(group.id, admin.id, Role.ADMIN)
        result = await services.lifecycle.resolve_current_week(group.id, admin.id)
        assert result.status == WeekStatus.RESOLVED

    async def test_resolve_is_idempotent(self, services, db, group, owner):
        """Second resolve returns the same reading without renotifying"""
        first = await services.lifecycle.resolve_current_week(group.id, owner.id)
        second = await services.lifecycle.resolve_current_week(group.id, owner.id)
        assert first.reading_item_id == second.reading_item_id
        assert first.reference == second.reference
        assert len(db.readings_for_week(first.week_id)) == 1
        assert len(_of_type(db, NotificationType.WINNER_SELECTED)) == 1  # actor excluded

    async def test_finalize_rejects_proposal_from_other_week(self, services, db, make_group, owner):
        """Winner must belong to the week being finalized"""
        other_group = await make_group()
        other_week = await services.lifecycle.ensure_current_week(other_group.id)
        week = await services.lifecycle.ensure_current_week((await make_group()).id)
        stranger = (await db.proposals.get_live_proposals(other_week.id))[0]

        with pytest.raises(InvalidStateError):
            await services.lifecycle.finalize_week(week.id, stranger.id)

    async def test_finalize_missing_week(self, services):
        """Finalizing a missing week is not found"""
        with pytest.raises(NotFoundError):
            await services.lifecycle.finalize_week("wk_0000000000000000", "prp_0000000000000000")


class TestStartNewVote:
    """Opening another round inside the same calendar week"""

    async def test_requires_previous_week(self, services, group, owner):
        """Needs an existing week"""
        with pytest.raises(InvalidStateError) as exc_info:
            await services.lifecycle.start_new_vote(group.id, owner.id)
        assert exc_info.value.message == "No previous week found"

    async def test_requires_resolved_week(self, services, group, member):
        """Current week must be resolved first"""
        await services.lifecycle.ensure_current_week(group.id)
        with pytest.raises(InvalidStateError) as exc_info:
            await services.lifecycle.start_new_vote(group.id, member.id)
        assert exc_info.value.message == "Current vote must be resolved before starting a new one"

    async def test_opens_new_round_from_now(self, services, db, group, owner, member, clock):
        """New round closes duration hours from now and excludes the last winner"""
        first = await services.lifecycle.ensure_current_week(group.id)
        resolved = await services.lifecycle.resolve_current_week(group.id, owner.id)
        clock.advance(hours=3)

        week = await services.lifecycle.start_new_vote(group.id, member.id)

        assert week.id != first.id
        assert week.status == WeekStatus.VOTING_OPEN
        assert week.voting_close_at == clock.now + timedelta(hours=68)

        seeds = await db.proposals.get_live_proposals(week.id)
        assert len(seeds) == 3
        assert resolved.reference not in {p.reference for p in seeds}
        assert (await db.readings.get_for_week(week.id)) is not None

        current = await services.lifecycle.ensure_current_week(group.id)
        assert current.id == week.id

        new_round = [n for n in db.all_notifications() if n.text == NEW_ROUND_TEXT]
        assert [n.user_id for n in new_round] == [owner.id]
