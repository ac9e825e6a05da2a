"""Weekly reading vote core: lifecycle, tally, seeds, snapshot and discussion"""

from voting.lifecycle import ResolutionResult, RolloverReport, VoteResult, WeekLifecycleManager
from voting.services import Services, build_services
from voting.tally import ResolutionReason, WinnerDecision, calculate_winner

__all__ = [
    "ResolutionReason",
    "ResolutionResult",
    "RolloverReport",
    "Services",
    "VoteResult",
    "WeekLifecycleManager",
    "WinnerDecision",
    "build_services",
    "calculate_winner",
]
