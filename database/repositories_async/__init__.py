"""Async PostgreSQL repositories using asyncpg connection pooling"""

from database.repositories_async.base import BaseRepository
from database.repositories_async.discussion import DiscussionRepository
from database.repositories_async.groups import GroupRepository, UserRepository
from database.repositories_async.notifications import NotificationRepository
from database.repositories_async.proposals import ProposalRepository, VoteRepository
from database.repositories_async.weeks import ReadingRepository, WeekRepository

__all__ = [
    "BaseRepository",
    "DiscussionRepository",
    "GroupRepository",
    "NotificationRepository",
    "ProposalRepository",
    "ReadingRepository",
    "UserRepository",
    "VoteRepository",
    "WeekRepository",
]
