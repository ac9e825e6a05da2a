"""Discussion on reading items: comments, annotations, read marks, notifications

Annotations carry one level of replies, like comments do.

Access to a reading item follows group membership of the week it belongs
to. Reading items outlive their week, so comments on an old week stay
readable and appendable after later weeks open.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Set, Union

from config import get_logger
from database.models import (
    Annotation,
    AnnotationReply,
    Comment,
    Notification,
    ReadingItem,
    ReadMark,
    ReadStatus,
)
from database.store import Store
from exceptions import ForbiddenError, InvalidInputError, InvalidStateError, NotFoundError
from voting.notifications import NotificationEmitter

logger = get_logger(__name__).bind(component="discussion")

MAX_TEXT_LENGTH = 500
EDIT_WINDOW = timedelta(minutes=5)
NOTIFICATION_LIMIT = 30

MENTION_PATTERN = re.compile(r"@([a-zA-Z0-9_]+)")
_WHITESPACE = re.compile(r"\s+")


def extract_mention_handles(text: str) -> Set[str]:
    return {match.lower() for match in MENTION_PATTERN.findall(text)}


def mention_handle(name: str) -> str:
    """Handle a member is addressed by: name lowercased, whitespace removed"""
    return _WHITESPACE.sub("", name or "").lower()


def clean_text(text: Optional[str], noun: str = "Comment") -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise InvalidInputError(f"{noun} cannot be empty", field="text")
    if len(cleaned) > MAX_TEXT_LENGTH:
        raise InvalidInputError(f"{noun} exceeds {MAX_TEXT_LENGTH} characters", field="text")
    return cleaned


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class DiscussionService:
    def __init__(self, db: Store, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.emitter = NotificationEmitter(db)

    async def require_reading_access(self, reading_item_id: str, user_id: str) -> ReadingItem:
        """Reading item visible to members of its group, 404 for everyone else"""
        reading = await self.db.readings.get_reading_item(reading_item_id)
        if reading and await self.db.groups.get_member(reading.group_id, user_id):
            return reading
        raise NotFoundError(
            "Reading item not found or access denied", entity="reading_item", entity_id=reading_item_id
        )

    def _can_edit(self, comment: Comment, user_id: str) -> bool:
        return comment.author_id == user_id and self.clock() - comment.created_at <= EDIT_WINDOW

    def _comment_dict(self, comment: Comment, user_id: str) -> dict:
        return {
            "id": comment.id,
            "author_id": comment.author_id,
            "author_name": comment.author_name,
            "text": comment.text,
            "created_at": _iso(comment.created_at),
            "updated_at": _iso(comment.updated_at),
            "can_edit": self._can_edit(comment, user_id),
            "can_delete": comment.author_id == user_id,
        }

    # -------------------------------------------------------------------------
    # Read marks
    # -------------------------------------------------------------------------

    async def set_read_mark(self, reading_item_id: str, user_id: str,
                            status: Union[str, ReadStatus]) -> ReadMark:
        try:
            parsed = ReadStatus(status)
        except ValueError:
            raise InvalidInputError("Invalid read mark status", field="status", value=status)

        await self.require_reading_access(reading_item_id, user_id)
        return await self.db.discussion.set_read_mark(user_id, reading_item_id, parsed, self.clock())

    # -------------------------------------------------------------------------
    # Comments
    # -------------------------------------------------------------------------

    async def get_comments(self, reading_item_id: str, user_id: str) -> List[dict]:
        """Threaded comments: top level newest first, replies oldest first"""
        await self.require_reading_access(reading_item_id, user_id)
        comments = await self.db.discussion.get_comments(reading_item_id)

        threads = []
        for comment in comments:
            if comment.parent_id is not None:
                continue
            entry = self._comment_dict(comment, user_id)
            entry["replies"] = [
                self._comment_dict(reply, user_id) for reply in comments if reply.parent_id == comment.id
            ]
            threads.append(entry)

        threads.reverse()
        return threads

    async def create_comment(self, reading_item_id: str, user_id: str, text: str,
                             parent_id: Optional[str] = None) -> Comment:
        """Post a comment or a one-level reply

        Notifies the parent's author on replies and any member addressed by
        @handle. The author never notifies themselves.

        Raises:
            InvalidInputError: Empty or too long, or a reply to a reply
            NotFoundError: No access to the reading item, or parent missing
        """
        body = clean_text(text)
        reading = await self.require_reading_access(reading_item_id, user_id)

        parent = None
        if parent_id:
            parent = await self.db.discussion.get_comment(parent_id)
            if not parent or not parent.is_live or parent.reading_item_id != reading.id:
                raise NotFoundError("Parent comment not found", entity="comment", entity_id=parent_id)
            if parent.parent_id:
                raise InvalidInputError("Only 1-level replies are allowed", field="parent_id", value=parent_id)

        comment = await self.db.discussion.add_comment(reading.id, user_id, body, parent_id=parent_id)
        author_name = comment.author_name or "Someone"

        if parent:
            await self.emitter.comment_reply(
                reading.group_id, parent.author_id, user_id, author_name, reading.id, comment.id
            )

        handles = extract_mention_handles(body)
        if handles:
            members = await self.db.groups.get_members(reading.group_id)
            targets = [
                m.user_id for m in members
                if mention_handle(m.name) in handles and m.user_id != user_id
            ]
            await self.emitter.mentions(reading.group_id, targets, user_id, author_name, reading.id, comment.id)

        logger.info("comment created", reading_item_id=reading.id, comment_id=comment.id, reply=bool(parent))
        return comment

    async def _own_live_comment(self, comment_id: str, user_id: str, action: str) -> Comment:
        comment = await self.db.discussion.get_comment(comment_id)
        if not comment or not comment.is_live:
            raise NotFoundError("Comment not found", entity="comment", entity_id=comment_id)
        if comment.author_id != user_id:
            raise ForbiddenError(f"Only the author can {action} this comment")
        return comment

    async def edit_comment(self, comment_id: str, user_id: str, text: str) -> None:
        body = clean_text(text)
        comment = await self._own_live_comment(comment_id, user_id, "edit")
        if not self._can_edit(comment, user_id):
            raise InvalidStateError("Comment edit window (5 minutes) has passed")
        await self.db.discussion.edit_comment(comment.id, body, self.clock())

    async def delete_comment(self, comment_id: str, user_id: str) -> None:
        comment = await self._own_live_comment(comment_id, user_id, "delete")
        await self.db.discussion.delete_comment(comment.id, self.clock())

    # -------------------------------------------------------------------------
    # Annotations
    # -------------------------------------------------------------------------

    async def get_annotations(self, reading_item_id: str, user_id: str) -> List[dict]:
        """Annotations by verse, each with its replies oldest first"""
        await self.require_reading_access(reading_item_id, user_id)
        annotations = await self.db.discussion.get_annotations(reading_item_id)
        replies = await self.db.discussion.get_annotation_replies([a.id for a in annotations])

        result = []
        for annotation in annotations:
            entry = annotation.to_dict()
            entry["can_delete"] = annotation.author_id == user_id
            entry["replies"] = []
            for reply in replies:
                if reply.annotation_id != annotation.id:
                    continue
                reply_entry = reply.to_dict()
                reply_entry["can_delete"] = reply.author_id == user_id
                entry["replies"].append(reply_entry)
            result.append(entry)
        return result

    async def create_annotation(self, reading_item_id: str, user_id: str, start_verse: int,
                                end_verse: int, text: str) -> Annotation:
        body = clean_text(text)
        if start_verse < 1 or end_verse < start_verse:
            raise InvalidInputError("Invalid verse range", field="start_verse", value=start_verse)
        await self.require_reading_access(reading_item_id, user_id)
        return await self.db.discussion.add_annotation(reading_item_id, user_id, start_verse, end_verse, body)

    async def delete_annotation(self, annotation_id: str, user_id: str) -> None:
        annotation = await self.db.discussion.get_annotation(annotation_id)
        if not annotation or not annotation.is_live:
            raise NotFoundError("Annotation not found", entity="annotation", entity_id=annotation_id)
        if annotation.author_id != user_id:
            raise ForbiddenError("Only the author can delete this annotation")
        await self.db.discussion.delete_annotation(annotation.id, self.clock())

    async def create_annotation_reply(self, annotation_id: str, user_id: str, text: str) -> AnnotationReply:
        body = clean_text(text, noun="Reply")
        annotation = await self.db.discussion.get_annotation(annotation_id)
        if not annotation or not annotation.is_live:
            raise NotFoundError("Annotation not found", entity="annotation", entity_id=annotation_id)
        await self.require_reading_access(annotation.reading_item_id, user_id)

        reply = await self.db.discussion.add_annotation_reply(annotation.id, user_id, body)
        logger.info("annotation reply created", annotation_id=annotation.id, reply_id=reply.id)
        return reply

    async def delete_annotation_reply(self, reply_id: str, user_id: str) -> None:
        reply = await self.db.discussion.get_annotation_reply(reply_id)
        if not reply or not reply.is_live:
            raise NotFoundError("Reply not found", entity="annotation_reply", entity_id=reply_id)
        if reply.author_id != user_id:
            raise ForbiddenError("Only the author can delete this reply")
        await self.db.discussion.delete_annotation_reply(reply.id, self.clock())

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    async def get_notifications(self, user_id: str) -> List[Notification]:
        return await self.db.notifications.get_notifications(user_id, limit=NOTIFICATION_LIMIT)
