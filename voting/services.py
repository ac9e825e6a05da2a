"""Service container wiring the voting core onto one store

The server builds this once in its lifespan and keeps it on app.state;
the rollover CLI builds its own. Nothing here is process-global.
"""

import random
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from database.store import Store
from voting.discussion import DiscussionService
from voting.groups import DEFAULT_TIMEZONE, DEFAULT_VOTING_HOURS, GroupService
from voting.lifecycle import DEFAULT_SEED_COUNT, WeekLifecycleManager
from voting.metrics import VotingMetrics
from voting.seeds import RandomSource
from voting.snapshot import SnapshotAssembler


@dataclass
class Services:
    db: Store
    groups: GroupService
    lifecycle: WeekLifecycleManager
    snapshots: SnapshotAssembler
    discussion: DiscussionService


def build_services(
    db: Store,
    rng: RandomSource = random.random,
    clock: Optional[Callable[[], datetime]] = None,
    metrics: Optional[VotingMetrics] = None,
    seed_count: int = DEFAULT_SEED_COUNT,
    default_timezone: str = DEFAULT_TIMEZONE,
    default_voting_hours: int = DEFAULT_VOTING_HOURS,
) -> Services:
    lifecycle = WeekLifecycleManager(db, rng=rng, clock=clock, metrics=metrics, seed_count=seed_count)
    return Services(
        db=db,
        groups=GroupService(
            db, clock=clock, default_timezone=default_timezone, default_voting_hours=default_voting_hours
        ),
        lifecycle=lifecycle,
        snapshots=SnapshotAssembler(db, lifecycle, clock=clock),
        discussion=DiscussionService(db, clock=clock),
    )
