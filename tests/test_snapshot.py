"""
Tests for the group snapshot payload
"""

import pytest

from database.models import TiePolicy
from exceptions import ForbiddenError
from voting.snapshot import SnapshotAssembler


def _row(snapshot, proposal_id):
    return next(p for p in snapshot["proposals"] if p["id"] == proposal_id)


class TestSnapshotShape:
    """Snapshot payload for a fresh group"""

    async def test_fresh_group_snapshot(self, services, group, owner):
        """Fresh group shows open week, seeds, members and empty history"""
        snapshot = await services.snapshots.get_group_snapshot(group.id, owner.id)

        assert snapshot["group"]["id"] == group.id
        assert snapshot["group"]["invite_token"] is None
        assert snapshot["week"]["status"] == "VOTING_OPEN"
        assert snapshot["my_role"] == "OWNER"
        assert [m["name"] for m in snapshot["members"]] == ["Ada Owner", "Ben Member"]
        assert len(snapshot["proposals"]) == 3
        assert all(p["vote_count"] == 0 for p in snapshot["proposals"])
        assert snapshot["top_voted_proposal_id"] is None
        assert snapshot["my_vote_proposal_id"] is None
        assert snapshot["history"] == []

    async def test_reading_item_present_for_seeded_week(self, services, group, member):
        """Seeded week already has a provisional reading item"""
        snapshot = await services.snapshots.get_group_snapshot(group.id, member.id)

        reading = snapshot["reading_item"]
        assert reading is not None
        assert reading["reference"] in {p["reference"] for p in snapshot["proposals"]}
        assert reading["comment_count"] == 0
        assert snapshot["read_marks"] == []

    async def test_invite_token_exposed(self, services, group, owner):
        """Latest invite token is included"""
        invite = await services.groups.create_invite(group.id, owner.id)
        snapshot = await services.snapshots.get_group_snapshot(group.id, owner.id)
        assert snapshot["group"]["invite_token"] == invite.token

    async def test_outsider_forbidden(self, services, group, outsider):
        """Non-members cannot load the snapshot"""
        with pytest.raises(ForbiddenError):
            await services.snapshots.get_group_snapshot(group.id, outsider.id)


class TestVotesInSnapshot:
    """Vote counts, voters and the leader"""

    async def test_voters_and_leader(self, services, group, owner, member):
        """Live tally lists voters and the top proposal"""
        week = await services.lifecycle.ensure_current_week(group.id)
        first = (await services.db.proposals.get_live_proposals(week.id))[0]
        await services.lifecycle.cast_vote(group.id, owner.id, first.id)

        snapshot = await services.snapshots.get_group_snapshot(group.id, member.id)

        row = _row(snapshot, first.id)
        assert row["vote_count"] == 1
        assert row["voters"] == [{"id": owner.id, "name": "Ada Owner"}]
        assert snapshot["top_voted_proposal_id"] == first.id
        assert snapshot["my_vote_proposal_id"] is None
        assert snapshot["reading_item"]["proposal_id"] == first.id

    async def test_my_vote_reported(self, services, make_group, owner):
        """Caller's own vote is reported"""
        group = await make_group(extra_members=1)
        week = await services.lifecycle.ensure_current_week(group.id)
        target = (await services.db.proposals.get_live_proposals(week.id))[1]
        await services.lifecycle.cast_vote(group.id, owner.id, target.id)

        snapshot = await services.snapshots.get_group_snapshot(group.id, owner.id)
        assert snapshot["my_vote_proposal_id"] == target.id

    async def test_tie_has_no_top_voted(self, services, make_group, owner, member):
        """Tied leaders give no top proposal"""
        group = await make_group(extra_members=1)
        week = await services.lifecycle.ensure_current_week(group.id)
        proposals = await services.db.proposals.get_live_proposals(week.id)
        await services.lifecycle.cast_vote(group.id, owner.id, proposals[0].id)
        await services.lifecycle.cast_vote(group.id, member.id, proposals[1].id)

        snapshot = await services.snapshots.get_group_snapshot(group.id, owner.id)
        assert snapshot["top_voted_proposal_id"] is None

    async def test_hidden_tally_while_voting(self, services, make_group, owner, member):
        """Groups without live tally see no counts or voters until resolution"""
        group = await make_group(live_tally=False, extra_members=1)
        week = await services.lifecycle.ensure_current_week(group.id)
        first = (await services.db.proposals.get_live_proposals(week.id))[0]
        await services.lifecycle.cast_vote(group.id, owner.id, first.id)

        snapshot = await services.snapshots.get_group_snapshot(group.id, member.id)

        assert all(p["vote_count"] is None for p in snapshot["proposals"])
        assert all(p["voters"] == [] for p in snapshot["proposals"])
        assert snapshot["top_voted_proposal_id"] is None

        mine = await services.snapshots.get_group_snapshot(group.id, owner.id)
        assert mine["my_vote_proposal_id"] == first.id

    async def test_tally_shown_after_resolution(self, services, make_group, owner, member):
        """Hidden tally is revealed once the week resolves"""
        group = await make_group(tie_policy=TiePolicy.EARLIEST, live_tally=False)
        week = await services.lifecycle.ensure_current_week(group.id)
        first = (await services.db.proposals.get_live_proposals(week.id))[0]
        await services.lifecycle.cast_vote(group.id, owner.id, first.id)
        await services.lifecycle.cast_vote(group.id, member.id, first.id)

        snapshot = await services.snapshots.get_group_snapshot(group.id, owner.id)

        assert snapshot["week"]["status"] == "RESOLVED"
        assert _row(snapshot, first.id)["vote_count"] == 2


class TestHistory:
    """Past readings shown under the current week"""

    async def test_history_excludes_current_week(self, services, group, owner):
        """History lists earlier rounds only"""
        await services.lifecycle.resolve_current_week(group.id, owner.id)
        resolved = await services.snapshots.get_group_snapshot(group.id, owner.id)
        assert resolved["history"] == []

        await services.lifecycle.start_new_vote(group.id, owner.id)
        snapshot = await services.snapshots.get_group_snapshot(group.id, owner.id)

        assert snapshot["week"]["id"] != resolved["week"]["id"]
        assert [h["week_id"] for h in snapshot["history"]] == [resolved["week"]["id"]]
        assert snapshot["history"][0]["reference"] == resolved["reading_item"]["reference"]

    async def test_history_capped_most_recent_first(self, services, group, owner, clock):
        """History keeps the eight most recent rounds, newest first"""
        resolved_ids = []
        for _ in range(11):
            result = await services.lifecycle.resolve_current_week(group.id, owner.id)
            resolved_ids.append(result.week_id)
            clock.advance(minutes=5)
            await services.lifecycle.start_new_vote(group.id, owner.id)
        current = await services.lifecycle.resolve_current_week(group.id, owner.id)

        snapshot = await services.snapshots.get_group_snapshot(group.id, owner.id)

        history_ids = [h["week_id"] for h in snapshot["history"]]
        assert snapshot["week"]["id"] == current.week_id
        assert current.week_id not in history_ids
        assert len(history_ids) == 8
        assert history_ids == list(reversed(resolved_ids))[:8]

    async def test_comment_count_follows_comments(self, services, group, owner, member):
        """Reading item carries its live comment count"""
        snapshot = await services.snapshots.get_group_snapshot(group.id, owner.id)
        reading_id = snapshot["reading_item"]["id"]
        await services.discussion.create_comment(reading_id, member.id, "Looking forward to this")

        snapshot = await services.snapshots.get_group_snapshot(group.id, owner.id)
        assert snapshot["reading_item"]["comment_count"] == 1


class TestAssemblerWiring:
    """Snapshot assembler construction"""

    def test_uses_injected_lifecycle(self, services, db):
        """Assembler uses the lifecycle manager it was given"""
        assembler = SnapshotAssembler(db, services.lifecycle)
        assert assembler.lifecycle is services.lifecycle
