"""Shared fixtures: in-memory store, controllable clock, pinned randomness

NOW is a Tuesday. For a group in America/New_York with the default 68
voting hours, the week starts Monday 2026-03-02 and voting closes
Wednesday 20:00 local (2026-03-05 01:00 UTC), 34 hours after NOW.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from database.memory import MemoryDatabase
from database.models import Role, TiePolicy
from voting.services import build_services

NOW = datetime(2026, 3, 3, 15, 0, tzinfo=timezone.utc)
WEEK_START = date(2026, 3, 2)
VOTING_CLOSE = datetime(2026, 3, 5, 1, 0, tzinfo=timezone.utc)


class MutableClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FixedRandom:
    """Random source that always returns the same draw"""

    def __init__(self, value: float = 0.0):
        self.value = value

    def __call__(self) -> float:
        return self.value


@pytest.fixture
def clock():
    return MutableClock(NOW)


@pytest.fixture
def rng():
    return FixedRandom(0.0)


@pytest.fixture
def db(clock):
    return MemoryDatabase(clock=clock)


@pytest.fixture
def make_services(db, clock, rng):
    def _make(seed_count=3, random_source=None):
        return build_services(db, rng=random_source or rng, clock=clock, seed_count=seed_count)
    return _make


@pytest.fixture
def services(make_services):
    return make_services()


@pytest.fixture
def bare_services(make_services):
    """Services whose new weeks start without seed proposals"""
    return make_services(seed_count=0)


@pytest.fixture
async def owner(db):
    return await db.users.create_user("Ada Owner", "ada@example.com")


@pytest.fixture
async def member(db):
    return await db.users.create_user("Ben Member", "ben@example.com")


@pytest.fixture
async def outsider(db):
    return await db.users.create_user("Cy Outsider", "cy@example.com")


@pytest.fixture
def make_group(db, owner, member):
    async def _make(tie_policy=TiePolicy.ADMIN_PICK, live_tally=True, extra_members=0):
        group = await db.groups.create_group(
            name="Tuesday Study",
            timezone="America/New_York",
            owner_id=owner.id,
            tie_policy=tie_policy,
            live_tally=live_tally,
            voting_duration_hours=68,
        )
        await db.groups.add_member(group.id, member.id, Role.MEMBER)
        extras = []
        for i in range(extra_members):
            user = await db.users.create_user(f"Extra {i}", f"extra{i}@example.com")
            await db.groups.add_member(group.id, user.id, Role.MEMBER)
            extras.append(user)
        group.extras = extras
        return group
    return _make


@pytest.fixture
async def group(make_group):
    return await make_group()
