"""Tally engine: winner-or-defer decision for a week's ballot

calculate_winner is pure. Randomness comes in through the rng argument
(a zero-argument callable returning a float in [0, 1), random.random by
default), so tests pin outcomes with e.g. ``rng=lambda: 0.99``.

Ordering used everywhere: vote count descending, then creation time
ascending, then proposal id.
"""

import random
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from database.models import ProposalTally, TiePolicy, WeekStatus
from voting.seeds import RandomSource, pick_index


class ResolutionReason(str, Enum):
    NO_PROPOSALS = "NO_PROPOSALS"
    NO_VOTES_RANDOM = "NO_VOTES_RANDOM"
    MAJORITY = "MAJORITY"
    TIE_ADMIN_PICK = "TIE_ADMIN_PICK"
    TIE_RANDOM = "TIE_RANDOM"
    TIE_EARLIEST = "TIE_EARLIEST"
    # Admin-driven outcomes, never produced by calculate_winner
    MANUAL_PICK = "MANUAL_PICK"
    FALLBACK_RANDOM = "FALLBACK_RANDOM"


@dataclass(frozen=True)
class WinnerDecision:
    proposal_id: Optional[str]
    status: WeekStatus
    reason: ResolutionReason

    @property
    def is_decisive(self) -> bool:
        return self.status == WeekStatus.RESOLVED and self.proposal_id is not None


def order_tallies(tallies: Sequence[ProposalTally]) -> List[ProposalTally]:
    return sorted(tallies, key=lambda t: (-t.vote_count, t.created_at, t.proposal_id))


def unique_leader(tallies: Sequence[ProposalTally]) -> Optional[ProposalTally]:
    """The single proposal holding the top count, when that count is above zero"""
    if not tallies:
        return None
    ordered = order_tallies(tallies)
    top = ordered[0]
    if top.vote_count <= 0:
        return None
    if len(ordered) > 1 and ordered[1].vote_count == top.vote_count:
        return None
    return top


def calculate_winner(
    tallies: Sequence[ProposalTally],
    tie_policy: TiePolicy,
    rng: RandomSource = random.random,
) -> WinnerDecision:
    """Decide a week's winner from live proposals and their vote counts

    Args:
        tallies: One entry per live proposal (any order)
        tie_policy: Group's configured tie-break rule
        rng: Random source for the no-vote fallback and RANDOM ties

    Returns:
        RESOLVED with a proposal id, or PENDING_MANUAL with none
    """
    if not tallies:
        return WinnerDecision(None, WeekStatus.PENDING_MANUAL, ResolutionReason.NO_PROPOSALS)

    ordered = order_tallies(tallies)
    top_count = ordered[0].vote_count

    if top_count == 0:
        pick = ordered[pick_index(rng, len(ordered))]
        return WinnerDecision(pick.proposal_id, WeekStatus.RESOLVED, ResolutionReason.NO_VOTES_RANDOM)

    tied = [t for t in ordered if t.vote_count == top_count]
    if len(tied) == 1:
        return WinnerDecision(tied[0].proposal_id, WeekStatus.RESOLVED, ResolutionReason.MAJORITY)

    if tie_policy == TiePolicy.RANDOM:
        pick = tied[pick_index(rng, len(tied))]
        return WinnerDecision(pick.proposal_id, WeekStatus.RESOLVED, ResolutionReason.TIE_RANDOM)

    if tie_policy == TiePolicy.EARLIEST:
        return WinnerDecision(tied[0].proposal_id, WeekStatus.RESOLVED, ResolutionReason.TIE_EARLIEST)

    return WinnerDecision(None, WeekStatus.PENDING_MANUAL, ResolutionReason.TIE_ADMIN_PICK)
