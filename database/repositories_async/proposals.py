"""Async ProposalRepository and VoteRepository

Proposals are soft-deleted (deleted_at); votes are one row per
(week, user) and a re-vote replaces the choice in place.
Only votes pointing at live proposals count toward tallies and turnout.
"""

from datetime import datetime
from typing import List, Optional

import asyncpg

from config import get_logger
from database.id_generation import PROPOSAL_PREFIX, generate_id
from database.models import Proposal, ProposalDraft, ProposalTally, Vote, lifecycle_from
from database.repositories_async.base import BaseRepository

logger = get_logger(__name__).bind(component="proposal_repository")

_PROPOSAL_SELECT = """
    SELECT p.id, p.week_id, p.proposer_id, u.name AS proposer_name, p.reference, p.note,
           p.is_seed, p.created_at, p.deleted_at
    FROM proposals p
    LEFT JOIN users u ON u.id = p.proposer_id
"""


def _row_to_proposal(row: asyncpg.Record) -> Proposal:
    return Proposal(
        id=row["id"],
        week_id=row["week_id"],
        proposer_id=row["proposer_id"],
        proposer_name=row["proposer_name"],
        reference=row["reference"],
        note=row["note"],
        is_seed=row["is_seed"],
        created_at=row["created_at"],
        lifecycle=lifecycle_from(row["deleted_at"]),
    )


class ProposalRepository(BaseRepository):
    """Repository for ballot proposals."""

    async def add_proposal(self, week_id: str, proposer_id: str, draft: ProposalDraft) -> Proposal:
        proposal_id = generate_id(PROPOSAL_PREFIX)
        await self._execute(
            """
            INSERT INTO proposals (id, week_id, proposer_id, reference, note, is_seed)
            VALUES ($1, $2, $3, $4, $5, $6)
            """,
            proposal_id,
            week_id,
            proposer_id,
            draft.reference,
            draft.note,
            draft.is_seed,
        )
        logger.info(
            "added proposal",
            week_id=week_id,
            proposal_id=proposal_id,
            reference=draft.reference,
            is_seed=draft.is_seed,
        )
        return await self.get_proposal(proposal_id)

    async def get_proposal(self, proposal_id: str) -> Optional[Proposal]:
        """Get a proposal by id, including soft-deleted ones"""
        row = await self._fetchrow(f"{_PROPOSAL_SELECT} WHERE p.id = $1", proposal_id)
        return _row_to_proposal(row) if row else None

    async def get_live_proposals(self, week_id: str) -> List[Proposal]:
        rows = await self._fetch(
            f"""
            {_PROPOSAL_SELECT}
            WHERE p.week_id = $1 AND p.deleted_at IS NULL
            ORDER BY p.created_at ASC, p.id ASC
            """,
            week_id,
        )
        return [_row_to_proposal(row) for row in rows]

    async def get_week_references(self, week_id: str) -> List[str]:
        """Every reference proposed this week, removed ones included"""
        rows = await self._fetch(
            "SELECT reference FROM proposals WHERE week_id = $1 ORDER BY created_at",
            week_id,
        )
        return [row["reference"] for row in rows]

    async def soft_delete(self, proposal_id: str, at: datetime) -> bool:
        result = await self._execute(
            "UPDATE proposals SET deleted_at = $2 WHERE id = $1 AND deleted_at IS NULL",
            proposal_id,
            at,
        )
        deleted = self._parse_row_count(result) == 1
        if deleted:
            logger.info("removed proposal", proposal_id=proposal_id)
        return deleted

    async def get_tallies(self, week_id: str) -> List[ProposalTally]:
        """Live proposals with vote counts, leader first, earliest first on ties"""
        rows = await self._fetch(
            """
            SELECT p.id, p.reference, p.created_at, COUNT(v.user_id) AS vote_count
            FROM proposals p
            LEFT JOIN votes v ON v.proposal_id = p.id AND v.week_id = p.week_id
            WHERE p.week_id = $1 AND p.deleted_at IS NULL
            GROUP BY p.id, p.reference, p.created_at
            ORDER BY vote_count DESC, p.created_at ASC, p.id ASC
            """,
            week_id,
        )
        return [
            ProposalTally(
                proposal_id=row["id"],
                reference=row["reference"],
                created_at=row["created_at"],
                vote_count=row["vote_count"],
            )
            for row in rows
        ]


class VoteRepository(BaseRepository):
    """Repository for ballots."""

    async def cast_vote(self, week_id: str, proposal_id: str, user_id: str, at: datetime) -> Vote:
        row = await self._fetchrow(
            """
            INSERT INTO votes (week_id, user_id, proposal_id, created_at, updated_at)
            VALUES ($1, $2, $3, $4, $4)
            ON CONFLICT (week_id, user_id) DO UPDATE
                SET proposal_id = EXCLUDED.proposal_id,
                    updated_at = EXCLUDED.updated_at
            RETURNING week_id, user_id, proposal_id, created_at, updated_at
            """,
            week_id,
            user_id,
            proposal_id,
            at,
        )
        logger.info("vote cast", week_id=week_id, user_id=user_id, proposal_id=proposal_id)
        return Vote(
            week_id=row["week_id"],
            user_id=row["user_id"],
            proposal_id=row["proposal_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    async def get_votes(self, week_id: str) -> List[Vote]:
        """All votes on live proposals this week, with voter names"""
        rows = await self._fetch(
            """
            SELECT v.week_id, v.user_id, u.name AS user_name, v.proposal_id, v.created_at, v.updated_at
            FROM votes v
            JOIN proposals p ON p.id = v.proposal_id AND p.deleted_at IS NULL
            JOIN users u ON u.id = v.user_id
            WHERE v.week_id = $1
            ORDER BY u.name, v.user_id
            """,
            week_id,
        )
        return [
            Vote(
                week_id=row["week_id"],
                user_id=row["user_id"],
                user_name=row["user_name"],
                proposal_id=row["proposal_id"],
                created_at=row["created_at"],
                updated_at=row["updated_at"],
            )
            for row in rows
        ]

    async def count_voters(self, week_id: str) -> int:
        return await self._fetchval(
            """
            SELECT COUNT(*) FROM votes v
            JOIN proposals p ON p.id = v.proposal_id AND p.deleted_at IS NULL
            WHERE v.week_id = $1
            """,
            week_id,
        )
