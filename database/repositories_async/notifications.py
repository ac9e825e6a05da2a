"""Async NotificationRepository

Notifications are plain rows: inserting them is the whole delivery story.
Group fan-out is also exposed as a connection-level helper so finalize can
insert WINNER_SELECTED inside its own transaction.
"""

from typing import List, Optional, Sequence

import asyncpg
from asyncpg import Connection

from config import get_logger
from database.id_generation import NOTIFICATION_PREFIX, generate_id
from database.models import Notification, NotificationDraft, NotificationType
from database.repositories_async.base import BaseRepository

logger = get_logger(__name__).bind(component="notification_repository")


async def insert_for_users(
    conn: Connection,
    user_ids: Sequence[str],
    group_id: Optional[str],
    draft: NotificationDraft,
) -> int:
    """Insert one notification per recipient on an existing connection"""
    recipients = [uid for uid in dict.fromkeys(user_ids) if uid != draft.exclude_user_id]
    if not recipients:
        return 0

    await conn.executemany(
        """
        INSERT INTO notifications (id, user_id, group_id, type, text, metadata)
        VALUES ($1, $2, $3, $4, $5, $6)
        """,
        [
            (generate_id(NOTIFICATION_PREFIX), uid, group_id, draft.type.value, draft.text, draft.metadata)
            for uid in recipients
        ],
    )
    return len(recipients)


async def insert_for_group(conn: Connection, group_id: str, draft: NotificationDraft) -> int:
    """Fan a notification out to every current member of a group"""
    rows = await conn.fetch(
        "SELECT user_id FROM group_members WHERE group_id = $1 ORDER BY user_id",
        group_id,
    )
    return await insert_for_users(conn, [row["user_id"] for row in rows], group_id, draft)


def _row_to_notification(row: asyncpg.Record) -> Notification:
    return Notification(
        id=row["id"],
        user_id=row["user_id"],
        group_id=row["group_id"],
        type=NotificationType(row["type"]),
        text=row["text"],
        metadata=row["metadata"] or {},
        created_at=row["created_at"],
        read_at=row["read_at"],
    )


class NotificationRepository(BaseRepository):
    """Repository for notification records."""

    async def notify_group(self, group_id: str, draft: NotificationDraft) -> int:
        async with self.transaction() as conn:
            count = await insert_for_group(conn, group_id, draft)
        logger.info("notified group", group_id=group_id, type=draft.type.value, recipients=count)
        return count

    async def notify_users(
        self, user_ids: Sequence[str], group_id: Optional[str], draft: NotificationDraft
    ) -> int:
        async with self.transaction() as conn:
            count = await insert_for_users(conn, user_ids, group_id, draft)
        logger.info("notified users", group_id=group_id, type=draft.type.value, recipients=count)
        return count

    async def get_notifications(self, user_id: str, limit: int = 30) -> List[Notification]:
        rows = await self._fetch(
            """
            SELECT id, user_id, group_id, type, text, metadata, created_at, read_at
            FROM notifications
            WHERE user_id = $1
            ORDER BY created_at DESC
            LIMIT $2
            """,
            user_id,
            limit,
        )
        return [_row_to_notification(row) for row in rows]
