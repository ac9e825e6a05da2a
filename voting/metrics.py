"""Metrics Protocol - counters the voting core records without a server dependency

server.metrics.LectioMetrics satisfies this with prometheus_client objects;
NullMetrics is the default for tests and scripts.
"""

from typing import Any, Protocol


class LabeledCounter(Protocol):
    def labels(self, **kwargs: Any) -> "LabeledCounter": ...
    def inc(self, amount: float = 1) -> None: ...


class VotingMetrics(Protocol):
    """Used by voting/lifecycle.py"""
    weeks_created: LabeledCounter
    weeks_resolved: LabeledCounter
    votes_cast: LabeledCounter
    rollover_failures: LabeledCounter


class _NullCounter:
    def labels(self, **kwargs: Any) -> "_NullCounter":
        return self

    def inc(self, amount: float = 1) -> None:
        pass


class NullMetrics:
    """No-op metrics for testing or standalone use"""

    def __init__(self):
        self.weeks_created = _NullCounter()
        self.weeks_resolved = _NullCounter()
        self.votes_cast = _NullCounter()
        self.rollover_failures = _NullCounter()
