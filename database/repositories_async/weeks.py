"""Async WeekRepository and ReadingRepository

Handles:
- Week creation (with its seed proposals and preview reading item, atomically)
- One-shot reminder claims
- Finalize: the only writer of RESOLVED, under a row lock on the week
- Reading item sync while voting is open
- Resolved-week history

Concurrency relies on the schema, not on process state:
- uq_weeks_one_active_per_group makes racing creations collapse into one
- finalize locks the week row FOR UPDATE and re-checks resolved_reading_id
- reading sync locks the week row FOR SHARE, so it queues behind finalize
"""

from datetime import date, datetime
from typing import List, Optional, Sequence, Set

import asyncpg
from asyncpg import Connection

from config import get_logger
from database.id_generation import PROPOSAL_PREFIX, READING_PREFIX, WEEK_PREFIX, generate_id
from database.models import (
    FinalizeOutcome,
    HistoryEntry,
    NotificationDraft,
    ProposalDraft,
    ReadingItem,
    Week,
    WeekStatus,
)
from database.repositories_async.base import BaseRepository
from database.repositories_async.notifications import insert_for_group
from exceptions import InvalidStateError, NotFoundError

logger = get_logger(__name__).bind(component="week_repository")

_WEEK_COLUMNS = """
    id, group_id, start_date, voting_close_at, status, resolved_reading_id, reminder_sent_at, created_at
"""

_READING_SELECT = """
    SELECT r.id, r.week_id, w.group_id, r.proposal_id, r.reference, r.created_at
    FROM reading_items r
    JOIN weeks w ON w.id = r.week_id
"""


def _row_to_week(row: asyncpg.Record) -> Week:
    return Week(
        id=row["id"],
        group_id=row["group_id"],
        start_date=row["start_date"],
        voting_close_at=row["voting_close_at"],
        status=WeekStatus(row["status"]),
        resolved_reading_id=row["resolved_reading_id"],
        reminder_sent_at=row["reminder_sent_at"],
        created_at=row["created_at"],
    )


def _row_to_reading(row: asyncpg.Record) -> ReadingItem:
    return ReadingItem(
        id=row["id"],
        week_id=row["week_id"],
        group_id=row["group_id"],
        proposal_id=row["proposal_id"],
        reference=row["reference"],
        created_at=row["created_at"],
    )


async def _upsert_reading(conn: Connection, week_id: str, proposal_id: str, reference: str) -> ReadingItem:
    await conn.execute(
        """
        INSERT INTO reading_items (id, week_id, proposal_id, reference)
        VALUES ($1, $2, $3, $4)
        ON CONFLICT (week_id) DO UPDATE
            SET proposal_id = EXCLUDED.proposal_id,
                reference = EXCLUDED.reference
        """,
        generate_id(READING_PREFIX),
        week_id,
        proposal_id,
        reference,
    )
    row = await conn.fetchrow(f"{_READING_SELECT} WHERE r.week_id = $1", week_id)
    return _row_to_reading(row)


class WeekRepository(BaseRepository):
    """Repository for weekly voting rounds."""

    async def get_week(self, week_id: str) -> Optional[Week]:
        row = await self._fetchrow(f"SELECT {_WEEK_COLUMNS} FROM weeks WHERE id = $1", week_id)
        return _row_to_week(row) if row else None

    async def get_active_week(self, group_id: str) -> Optional[Week]:
        row = await self._fetchrow(
            f"""
            SELECT {_WEEK_COLUMNS} FROM weeks
            WHERE group_id = $1 AND status <> 'RESOLVED'
            LIMIT 1
            """,
            group_id,
        )
        return _row_to_week(row) if row else None

    async def get_latest_week(self, group_id: str) -> Optional[Week]:
        row = await self._fetchrow(
            f"""
            SELECT {_WEEK_COLUMNS} FROM weeks
            WHERE group_id = $1
            ORDER BY start_date DESC, created_at DESC
            LIMIT 1
            """,
            group_id,
        )
        return _row_to_week(row) if row else None

    async def create_week(
        self,
        group_id: str,
        start_date: date,
        voting_close_at: datetime,
        proposer_id: str,
        seeds: Sequence[ProposalDraft],
        reading_index: Optional[int] = None,
    ) -> Optional[Week]:
        """Create an open week together with its seed proposals.

        The preview reading item points at seeds[reading_index] when given.

        Returns:
            The new week, or None if the group already has an active week
        """
        week_id = generate_id(WEEK_PREFIX)

        async with self.transaction() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO weeks (id, group_id, start_date, voting_close_at, status)
                VALUES ($1, $2, $3, $4, 'VOTING_OPEN')
                ON CONFLICT (group_id) WHERE status <> 'RESOLVED' DO NOTHING
                RETURNING {_WEEK_COLUMNS}
                """,
                week_id,
                group_id,
                start_date,
                voting_close_at,
            )
            if not row:
                logger.debug("active week already exists", group_id=group_id)
                return None

            proposal_ids = []
            for draft in seeds:
                proposal_id = generate_id(PROPOSAL_PREFIX)
                await conn.execute(
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
                proposal_ids.append(proposal_id)

            if reading_index is not None and 0 <= reading_index < len(seeds):
                await _upsert_reading(conn, week_id, proposal_ids[reading_index], seeds[reading_index].reference)

        logger.info(
            "created week",
            group_id=group_id,
            week_id=week_id,
            start_date=start_date.isoformat(),
            seeds=len(seeds),
        )
        return _row_to_week(row)

    async def claim_reminder(self, week_id: str, now: datetime) -> bool:
        """Atomically mark the reminder as sent. True only for the one caller that flips it."""
        result = await self._execute(
            """
            UPDATE weeks SET reminder_sent_at = $2
            WHERE id = $1 AND reminder_sent_at IS NULL AND status = 'VOTING_OPEN'
            """,
            week_id,
            now,
        )
        return self._parse_row_count(result) == 1

    async def mark_pending_manual(self, week_id: str) -> bool:
        result = await self._execute(
            "UPDATE weeks SET status = 'PENDING_MANUAL' WHERE id = $1 AND status = 'VOTING_OPEN'",
            week_id,
        )
        changed = self._parse_row_count(result) == 1
        if changed:
            logger.info("week awaiting manual pick", week_id=week_id)
        return changed

    async def finalize_week(
        self, week_id: str, proposal_id: str, notification: NotificationDraft
    ) -> FinalizeOutcome:
        """Resolve a week to the given proposal.

        Lock the week row, re-check, write the reading item, flip status and
        queue the winner notification, all in one transaction. A caller that
        loses the race gets the already-committed outcome back.

        Raises:
            NotFoundError: Week does not exist
            InvalidStateError: Proposal is deleted or belongs to another week
        """
        async with self.transaction() as conn:
            week_row = await conn.fetchrow(
                f"SELECT {_WEEK_COLUMNS} FROM weeks WHERE id = $1 FOR UPDATE",
                week_id,
            )
            if not week_row:
                raise NotFoundError("Week not found", entity="week", entity_id=week_id)

            if week_row["resolved_reading_id"]:
                existing = await conn.fetchrow(
                    f"{_READING_SELECT} WHERE r.id = $1",
                    week_row["resolved_reading_id"],
                )
                return FinalizeOutcome(reading_item=_row_to_reading(existing), already_resolved=True)

            proposal = await conn.fetchrow(
                """
                SELECT id, reference FROM proposals
                WHERE id = $1 AND week_id = $2 AND deleted_at IS NULL
                """,
                proposal_id,
                week_id,
            )
            if not proposal:
                raise InvalidStateError("Proposal is not eligible for this week")

            reading = await _upsert_reading(conn, week_id, proposal["id"], proposal["reference"])
            await conn.execute(
                "UPDATE weeks SET status = 'RESOLVED', resolved_reading_id = $2 WHERE id = $1",
                week_id,
                reading.id,
            )
            recipients = await insert_for_group(conn, week_row["group_id"], notification)

        logger.info(
            "week finalized",
            week_id=week_id,
            proposal_id=proposal_id,
            reading_item_id=reading.id,
            notified=recipients,
        )
        return FinalizeOutcome(reading_item=reading, already_resolved=False)

    async def get_history(
        self, group_id: str, exclude_week_id: Optional[str], limit: int = 8
    ) -> List[HistoryEntry]:
        rows = await self._fetch(
            """
            SELECT
                w.id AS week_id,
                w.start_date,
                r.id AS reading_item_id,
                r.reference,
                (SELECT COUNT(*) FROM comments c
                  WHERE c.reading_item_id = r.id AND c.deleted_at IS NULL) AS comment_count,
                (SELECT COUNT(*) FROM read_marks m
                  WHERE m.reading_item_id = r.id AND m.status = 'READ') AS read_count
            FROM weeks w
            JOIN reading_items r ON r.id = w.resolved_reading_id
            WHERE w.group_id = $1
              AND w.status = 'RESOLVED'
              AND ($2::text IS NULL OR w.id <> $2)
            ORDER BY w.start_date DESC, w.created_at DESC
            LIMIT $3
            """,
            group_id,
            exclude_week_id,
            limit,
        )
        return [
            HistoryEntry(
                week_id=row["week_id"],
                start_date=row["start_date"],
                reading_item_id=row["reading_item_id"],
                reference=row["reference"],
                comment_count=row["comment_count"],
                read_count=row["read_count"],
            )
            for row in rows
        ]


class ReadingRepository(BaseRepository):
    """Repository for per-week reading items."""

    async def get_reading_item(self, reading_item_id: str) -> Optional[ReadingItem]:
        row = await self._fetchrow(f"{_READING_SELECT} WHERE r.id = $1", reading_item_id)
        return _row_to_reading(row) if row else None

    async def get_for_week(self, week_id: str) -> Optional[ReadingItem]:
        row = await self._fetchrow(f"{_READING_SELECT} WHERE r.week_id = $1", week_id)
        return _row_to_reading(row) if row else None

    async def sync_for_week(self, week_id: str, proposal_id: str, reference: str) -> Optional[ReadingItem]:
        """Point an open week's reading item at a proposal.

        Returns:
            The reading item, or None if the week is resolved (frozen) or missing
        """
        async with self.transaction() as conn:
            status = await conn.fetchval(
                "SELECT status FROM weeks WHERE id = $1 FOR SHARE",
                week_id,
            )
            if status is None or status == WeekStatus.RESOLVED.value:
                return None
            return await _upsert_reading(conn, week_id, proposal_id, reference)

    async def get_read_references(self, group_id: Optional[str] = None) -> Set[str]:
        """References of resolved reading items, for one group or all groups"""
        if group_id:
            rows = await self._fetch(
                """
                SELECT DISTINCT r.reference
                FROM weeks w JOIN reading_items r ON r.id = w.resolved_reading_id
                WHERE w.group_id = $1
                """,
                group_id,
            )
        else:
            rows = await self._fetch(
                """
                SELECT DISTINCT r.reference
                FROM weeks w JOIN reading_items r ON r.id = w.resolved_reading_id
                """
            )
        return {row["reference"] for row in rows}
