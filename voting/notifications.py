"""Notification emitter for lifecycle and discussion events

Builds the notification drafts and hands them to the store. Delivery is
just the inserted rows; clients poll for them.
"""

from datetime import datetime
from typing import Optional, Sequence

from config import get_logger
from database.models import NotificationDraft, NotificationType, Week
from database.store import Store

logger = get_logger(__name__).bind(component="notifications")

VOTING_OPENED_TEXT = "Voting is open for this week's reading."
NEW_ROUND_TEXT = "A new vote round has started!"
REMINDER_TEXT = "24h reminder: cast your vote before voting closes."


def _week_metadata(week: Week) -> dict:
    return {
        "group_id": week.group_id,
        "week_id": week.id,
        "start_date": week.start_date.isoformat(),
        "close_at": week.voting_close_at.isoformat(),
    }


def winner_selected(week: Week, reference: str, reading_item_id: Optional[str] = None,
                    actor_user_id: Optional[str] = None) -> NotificationDraft:
    """Draft for WINNER_SELECTED; finalize inserts it inside its transaction"""
    metadata = {"group_id": week.group_id, "week_id": week.id, "reference": reference}
    if reading_item_id:
        metadata["reading_item_id"] = reading_item_id
    return NotificationDraft(
        type=NotificationType.WINNER_SELECTED,
        text=f"This week's reading is {reference}.",
        metadata=metadata,
        exclude_user_id=actor_user_id,
    )


class NotificationEmitter:
    """Inserts notification records for group members"""

    def __init__(self, db: Store):
        self.db = db

    async def voting_opened(self, week: Week, actor_user_id: Optional[str] = None) -> int:
        """Broadcast that a week opened; a manual restart skips the member who started it"""
        draft = NotificationDraft(
            type=NotificationType.VOTING_OPENED,
            text=NEW_ROUND_TEXT if actor_user_id else VOTING_OPENED_TEXT,
            metadata=_week_metadata(week),
            exclude_user_id=actor_user_id,
        )
        return await self.db.notifications.notify_group(week.group_id, draft)

    async def voting_reminder(self, week: Week) -> int:
        draft = NotificationDraft(
            type=NotificationType.VOTING_REMINDER,
            text=REMINDER_TEXT,
            metadata=_week_metadata(week),
        )
        count = await self.db.notifications.notify_group(week.group_id, draft)
        logger.info("voting reminder sent", week_id=week.id, recipients=count)
        return count

    async def comment_reply(self, group_id: str, parent_author_id: str, replier_id: str,
                            replier_name: str, reading_item_id: str, comment_id: str) -> int:
        if parent_author_id == replier_id:
            return 0
        draft = NotificationDraft(
            type=NotificationType.COMMENT_REPLY,
            text=f"{replier_name} replied to your comment.",
            metadata={"group_id": group_id, "reading_item_id": reading_item_id, "comment_id": comment_id},
        )
        return await self.db.notifications.notify_users([parent_author_id], group_id, draft)

    async def mentions(self, group_id: str, user_ids: Sequence[str], author_id: str,
                       author_name: str, reading_item_id: str, comment_id: str) -> int:
        if not user_ids:
            return 0
        draft = NotificationDraft(
            type=NotificationType.MENTION,
            text=f"{author_name} mentioned you in a comment.",
            metadata={"group_id": group_id, "reading_item_id": reading_item_id, "comment_id": comment_id},
            exclude_user_id=author_id,
        )
        return await self.db.notifications.notify_users(list(user_ids), group_id, draft)


def is_reminder_due(week: Week, now: datetime, window_hours: int = 24) -> bool:
    """Reminder goes out once, inside the last window_hours before close"""
    if week.reminder_sent_at is not None:
        return False
    remaining = (week.voting_close_at - now).total_seconds()
    return 0 < remaining <= window_hours * 3600
