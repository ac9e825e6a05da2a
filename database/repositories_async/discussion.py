"""Async DiscussionRepository for reading items

Handles CRUD operations for:
- Read marks (NOT_MARKED / PLANNED / READ per user)
- Threaded comments (soft delete)
- Verse-range annotations and their replies (soft delete)

Reading items outlive their week, so nothing here depends on week status.
"""

from datetime import datetime
from typing import List, Optional, Sequence

import asyncpg

from config import get_logger
from database.id_generation import ANNOTATION_PREFIX, ANNOTATION_REPLY_PREFIX, COMMENT_PREFIX, generate_id
from database.models import Annotation, AnnotationReply, Comment, ReadMark, ReadStatus, lifecycle_from
from database.repositories_async.base import BaseRepository

logger = get_logger(__name__).bind(component="discussion_repository")

_COMMENT_SELECT = """
    SELECT c.id, c.reading_item_id, c.parent_id, c.author_id, u.name AS author_name,
           c.text, c.created_at, c.updated_at, c.deleted_at
    FROM comments c
    LEFT JOIN users u ON u.id = c.author_id
"""

_ANNOTATION_SELECT = """
    SELECT a.id, a.reading_item_id, a.author_id, u.name AS author_name,
           a.start_verse, a.end_verse, a.text, a.created_at, a.deleted_at
    FROM annotations a
    LEFT JOIN users u ON u.id = a.author_id
"""

_REPLY_SELECT = """
    SELECT r.id, r.annotation_id, r.author_id, u.name AS author_name,
           r.text, r.created_at, r.deleted_at
    FROM annotation_replies r
    LEFT JOIN users u ON u.id = r.author_id
"""


def _row_to_comment(row: asyncpg.Record) -> Comment:
    return Comment(
        id=row["id"],
        reading_item_id=row["reading_item_id"],
        parent_id=row["parent_id"],
        author_id=row["author_id"],
        author_name=row["author_name"],
        text=row["text"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        lifecycle=lifecycle_from(row["deleted_at"]),
    )


def _row_to_annotation(row: asyncpg.Record) -> Annotation:
    return Annotation(
        id=row["id"],
        reading_item_id=row["reading_item_id"],
        author_id=row["author_id"],
        author_name=row["author_name"],
        start_verse=row["start_verse"],
        end_verse=row["end_verse"],
        text=row["text"],
        created_at=row["created_at"],
        lifecycle=lifecycle_from(row["deleted_at"]),
    )


def _row_to_reply(row: asyncpg.Record) -> AnnotationReply:
    return AnnotationReply(
        id=row["id"],
        annotation_id=row["annotation_id"],
        author_id=row["author_id"],
        author_name=row["author_name"],
        text=row["text"],
        created_at=row["created_at"],
        lifecycle=lifecycle_from(row["deleted_at"]),
    )


class DiscussionRepository(BaseRepository):
    """Repository for read marks, comments, annotations and annotation replies."""

    # -------------------------------------------------------------------------
    # Read marks
    # -------------------------------------------------------------------------

    async def set_read_mark(
        self, user_id: str, reading_item_id: str, status: ReadStatus, at: datetime
    ) -> ReadMark:
        row = await self._fetchrow(
            """
            INSERT INTO read_marks (user_id, reading_item_id, status, updated_at)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (user_id, reading_item_id) DO UPDATE
                SET status = EXCLUDED.status,
                    updated_at = EXCLUDED.updated_at
            RETURNING user_id, reading_item_id, status, updated_at
            """,
            user_id,
            reading_item_id,
            status.value,
            at,
        )
        return ReadMark(
            user_id=row["user_id"],
            reading_item_id=row["reading_item_id"],
            status=ReadStatus(row["status"]),
            updated_at=row["updated_at"],
        )

    async def get_read_marks(self, reading_item_id: str) -> List[ReadMark]:
        rows = await self._fetch(
            """
            SELECT user_id, reading_item_id, status, updated_at
            FROM read_marks WHERE reading_item_id = $1
            ORDER BY user_id
            """,
            reading_item_id,
        )
        return [
            ReadMark(
                user_id=row["user_id"],
                reading_item_id=row["reading_item_id"],
                status=ReadStatus(row["status"]),
                updated_at=row["updated_at"],
            )
            for row in rows
        ]

    # -------------------------------------------------------------------------
    # Comments
    # -------------------------------------------------------------------------

    async def add_comment(
        self, reading_item_id: str, author_id: str, text: str, parent_id: Optional[str] = None
    ) -> Comment:
        comment_id = generate_id(COMMENT_PREFIX)
        await self._execute(
            """
            INSERT INTO comments (id, reading_item_id, parent_id, author_id, text)
            VALUES ($1, $2, $3, $4, $5)
            """,
            comment_id,
            reading_item_id,
            parent_id,
            author_id,
            text,
        )
        logger.info("comment added", comment_id=comment_id, reading_item_id=reading_item_id, reply=bool(parent_id))
        return await self.get_comment(comment_id)

    async def get_comment(self, comment_id: str) -> Optional[Comment]:
        row = await self._fetchrow(f"{_COMMENT_SELECT} WHERE c.id = $1", comment_id)
        return _row_to_comment(row) if row else None

    async def get_comments(self, reading_item_id: str) -> List[Comment]:
        """Live comments on a reading item, oldest first"""
        rows = await self._fetch(
            f"""
            {_COMMENT_SELECT}
            WHERE c.reading_item_id = $1 AND c.deleted_at IS NULL
            ORDER BY c.created_at ASC, c.id ASC
            """,
            reading_item_id,
        )
        return [_row_to_comment(row) for row in rows]

    async def count_comments(self, reading_item_id: str) -> int:
        return await self._fetchval(
            "SELECT COUNT(*) FROM comments WHERE reading_item_id = $1 AND deleted_at IS NULL",
            reading_item_id,
        )

    async def edit_comment(self, comment_id: str, text: str, at: datetime) -> bool:
        result = await self._execute(
            "UPDATE comments SET text = $2, updated_at = $3 WHERE id = $1 AND deleted_at IS NULL",
            comment_id,
            text,
            at,
        )
        return self._parse_row_count(result) == 1

    async def delete_comment(self, comment_id: str, at: datetime) -> bool:
        result = await self._execute(
            "UPDATE comments SET deleted_at = $2 WHERE id = $1 AND deleted_at IS NULL",
            comment_id,
            at,
        )
        return self._parse_row_count(result) == 1

    # -------------------------------------------------------------------------
    # Annotations
    # -------------------------------------------------------------------------

    async def add_annotation(
        self, reading_item_id: str, author_id: str, start_verse: int, end_verse: int, text: str
    ) -> Annotation:
        annotation_id = generate_id(ANNOTATION_PREFIX)
        await self._execute(
            """
            INSERT INTO annotations (id, reading_item_id, author_id, start_verse, end_verse, text)
            VALUES ($1, $2, $3, $4, $5, $6)
            """,
            annotation_id,
            reading_item_id,
            author_id,
            start_verse,
            end_verse,
            text,
        )
        return await self.get_annotation(annotation_id)

    async def get_annotation(self, annotation_id: str) -> Optional[Annotation]:
        row = await self._fetchrow(f"{_ANNOTATION_SELECT} WHERE a.id = $1", annotation_id)
        return _row_to_annotation(row) if row else None

    async def get_annotations(self, reading_item_id: str) -> List[Annotation]:
        rows = await self._fetch(
            f"""
            {_ANNOTATION_SELECT}
            WHERE a.reading_item_id = $1 AND a.deleted_at IS NULL
            ORDER BY a.start_verse ASC, a.created_at ASC
            """,
            reading_item_id,
        )
        return [_row_to_annotation(row) for row in rows]

    async def delete_annotation(self, annotation_id: str, at: datetime) -> bool:
        result = await self._execute(
            "UPDATE annotations SET deleted_at = $2 WHERE id = $1 AND deleted_at IS NULL",
            annotation_id,
            at,
        )
        return self._parse_row_count(result) == 1

    # -------------------------------------------------------------------------
    # Annotation replies
    # -------------------------------------------------------------------------

    async def add_annotation_reply(self, annotation_id: str, author_id: str, text: str) -> AnnotationReply:
        reply_id = generate_id(ANNOTATION_REPLY_PREFIX)
        await self._execute(
            """
            INSERT INTO annotation_replies (id, annotation_id, author_id, text)
            VALUES ($1, $2, $3, $4)
            """,
            reply_id,
            annotation_id,
            author_id,
            text,
        )
        return await self.get_annotation_reply(reply_id)

    async def get_annotation_reply(self, reply_id: str) -> Optional[AnnotationReply]:
        row = await self._fetchrow(f"{_REPLY_SELECT} WHERE r.id = $1", reply_id)
        return _row_to_reply(row) if row else None

    async def get_annotation_replies(self, annotation_ids: Sequence[str]) -> List[AnnotationReply]:
        """Live replies to any of the annotations, oldest first"""
        if not annotation_ids:
            return []
        rows = await self._fetch(
            f"""
            {_REPLY_SELECT}
            WHERE r.annotation_id = ANY($1::text[]) AND r.deleted_at IS NULL
            ORDER BY r.created_at ASC, r.id ASC
            """,
            list(annotation_ids),
        )
        return [_row_to_reply(row) for row in rows]

    async def delete_annotation_reply(self, reply_id: str, at: datetime) -> bool:
        result = await self._execute(
            "UPDATE annotation_replies SET deleted_at = $2 WHERE id = $1 AND deleted_at IS NULL",
            reply_id,
            at,
        )
        return self._parse_row_count(result) == 1
