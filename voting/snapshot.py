"""Group snapshot: everything a member's dashboard renders in one payload

Read-only aggregation on top of ensure_current_week. Voters are grouped
from a single vote fetch, not one query per proposal.
"""

from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from config import get_logger
from database.models import Vote, WeekStatus
from database.store import Store
from voting.groups import require_member
from voting.lifecycle import WeekLifecycleManager
from voting.tally import unique_leader

logger = get_logger(__name__).bind(component="snapshot")

HISTORY_LIMIT = 8


class SnapshotAssembler:
    def __init__(self, db: Store, lifecycle: WeekLifecycleManager,
                 clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.lifecycle = lifecycle
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def get_group_snapshot(self, group_id: str, user_id: str) -> Dict[str, Any]:
        """Assemble the dashboard payload for one member

        Raises:
            NotFoundError: Group does not exist
            ForbiddenError: User is not a member
        """
        member = await require_member(self.db, group_id, user_id)
        week = await self.lifecycle.ensure_current_week(group_id)
        group = await self.db.groups.get_group(group_id)

        members = await self.db.groups.get_members(group_id)
        invite = await self.db.groups.get_latest_invite(group_id, self.clock())

        proposals = await self.db.proposals.get_live_proposals(week.id)
        tallies = await self.db.proposals.get_tallies(week.id)
        votes = await self.db.votes.get_votes(week.id)

        voters_by_proposal: Dict[str, List[Vote]] = defaultdict(list)
        for vote in votes:
            voters_by_proposal[vote.proposal_id].append(vote)

        hide_tally = not group.live_tally and week.status == WeekStatus.VOTING_OPEN

        proposal_rows = []
        for proposal in proposals:
            row = proposal.to_dict()
            voters = voters_by_proposal.get(proposal.id, [])
            if hide_tally:
                row["vote_count"] = None
                row["voters"] = []
            else:
                row["vote_count"] = len(voters)
                row["voters"] = [{"id": v.user_id, "name": v.user_name} for v in voters]
            proposal_rows.append(row)

        leader = None if hide_tally else unique_leader(tallies)
        my_vote = next((v.proposal_id for v in votes if v.user_id == user_id), None)

        reading_payload = None
        read_marks = []
        reading = await self.db.readings.get_for_week(week.id)
        if reading:
            reading_payload = reading.to_dict()
            source = await self.db.proposals.get_proposal(reading.proposal_id) if reading.proposal_id else None
            reading_payload["note"] = source.note if source else None
            reading_payload["proposer_name"] = source.proposer_name if source else None
            reading_payload["comment_count"] = await self.db.discussion.count_comments(reading.id)
            read_marks = [m.to_dict() for m in await self.db.discussion.get_read_marks(reading.id)]

        history = await self.db.weeks.get_history(group_id, exclude_week_id=week.id, limit=HISTORY_LIMIT)

        group_payload = group.to_dict()
        group_payload["invite_token"] = invite.token if invite else None

        return {
            "group": group_payload,
            "week": week.to_dict(),
            "members": [m.to_dict() for m in members],
            "my_role": member.role.value,
            "proposals": proposal_rows,
            "top_voted_proposal_id": leader.proposal_id if leader else None,
            "my_vote_proposal_id": my_vote,
            "reading_item": reading_payload,
            "read_marks": read_marks,
            "history": [h.to_dict() for h in history],
        }
