"""
Tests for the weekly rollover batch

One group's failure is recorded and counted but never stops the others.
"""

from database.models import TiePolicy, WeekStatus
from voting.lifecycle import RolloverFailure, RolloverReport, WeekLifecycleManager

from conftest import FixedRandom


class CountingCounter:
    def __init__(self):
        self.count = 0
        self.label_values = []

    def labels(self, **kwargs):
        self.label_values.append(kwargs)
        return self

    def inc(self, amount=1):
        self.count += amount


class RecordingMetrics:
    def __init__(self):
        self.weeks_created = CountingCounter()
        self.weeks_resolved = CountingCounter()
        self.votes_cast = CountingCounter()
        self.rollover_failures = CountingCounter()


async def _broken_group(db, owner):
    return await db.groups.create_group(
        name="Lost in Space",
        timezone="Mars/Olympus",
        owner_id=owner.id,
        tie_policy=TiePolicy.RANDOM,
        live_tally=True,
        voting_duration_hours=68,
    )


class TestRolloverBatch:
    """Weekly rollover across all groups"""

    async def test_creates_week_for_every_group(self, services, db, make_group):
        """Every group gets an open week"""
        first = await make_group()
        second = await make_group()

        report = await services.lifecycle.run_weekly_rollover()

        assert report.processed_group_ids == [first.id, second.id]
        assert report.failed == 0
        for group in (first, second):
            weeks = db.weeks_for_group(group.id)
            assert len(weeks) == 1
            assert weeks[0].status == WeekStatus.VOTING_OPEN

    async def test_failing_group_does_not_stop_others(self, db, clock, group, owner):
        """Broken group is reported and counted while the rest proceed"""
        broken = await _broken_group(db, owner)
        metrics = RecordingMetrics()
        lifecycle = WeekLifecycleManager(db, rng=FixedRandom(0.0), clock=clock, metrics=metrics)

        report = await lifecycle.run_weekly_rollover()

        assert report.processed_group_ids == [group.id]
        assert [f.group_id for f in report.failures] == [broken.id]
        assert metrics.rollover_failures.count == 1
        assert metrics.weeks_created.count == 1
        assert db.weeks_for_group(broken.id) == []

    async def test_unknown_group_reported(self, services):
        """Unknown group id shows up as a failure"""
        report = await services.lifecycle.run_weekly_rollover("grp_doesnotexist")

        assert report.processed == 0
        assert report.failures[0].group_id == "grp_doesnotexist"
        assert "Group not found" in report.failures[0].error

    async def test_rollover_is_idempotent(self, services, db, group):
        """Running twice creates one week"""
        await services.lifecycle.run_weekly_rollover(group.id)
        await services.lifecycle.run_weekly_rollover(group.id)
        assert len(db.weeks_for_group(group.id)) == 1

    async def test_rollover_resolves_expired_week(self, services, db, group, clock):
        """Expired week is resolved by the next run"""
        await services.lifecycle.run_weekly_rollover(group.id)
        clock.advance(days=2)

        await services.lifecycle.run_weekly_rollover(group.id)

        weeks = db.weeks_for_group(group.id)
        assert len(weeks) == 1
        assert weeks[0].status == WeekStatus.RESOLVED

    async def test_next_calendar_week_opens_new_week(self, services, db, group, clock):
        """A week later the run opens the next week"""
        await services.lifecycle.run_weekly_rollover(group.id)
        clock.advance(days=7)

        await services.lifecycle.run_weekly_rollover(group.id)

        weeks = sorted(db.weeks_for_group(group.id), key=lambda w: w.start_date)
        assert [w.status for w in weeks] == [WeekStatus.RESOLVED, WeekStatus.VOTING_OPEN]


class TestRolloverReport:
    """Rollover report serialization"""

    def test_to_dict(self):
        """Report serializes counts, ids and failures"""
        report = RolloverReport(
            processed_group_ids=["grp_a"],
            failures=[RolloverFailure(group_id="grp_b", error="boom")],
        )
        assert report.to_dict() == {
            "processed": 1,
            "failed": 1,
            "processed_group_ids": ["grp_a"],
            "failures": [{"group_id": "grp_b", "error": "boom"}],
        }
