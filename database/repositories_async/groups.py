"""Async GroupRepository and UserRepository

Handles:
- Users (display names only; authentication lives in userland.auth)
- Groups and their voting settings
- Memberships with OWNER / ADMIN / MEMBER roles
- Invite tokens and per-user group lists
"""

from datetime import datetime
from typing import List, Optional

import asyncpg

from config import get_logger
from database.id_generation import GROUP_PREFIX, USER_PREFIX, generate_id, generate_invite_token
from database.models import Group, Invite, Member, Role, TiePolicy, User, UserGroup
from database.repositories_async.base import BaseRepository

logger = get_logger(__name__).bind(component="group_repository")

_GROUP_COLUMNS = """
    id, name, timezone, owner_id, tie_policy, live_tally, voting_duration_hours, created_at
"""

_GROUP_PREFIXED_COLUMNS = """
    g.id, g.name, g.timezone, g.owner_id, g.tie_policy, g.live_tally, g.voting_duration_hours, g.created_at
"""


def _row_to_group(row: asyncpg.Record) -> Group:
    return Group(
        id=row["id"],
        name=row["name"],
        timezone=row["timezone"],
        owner_id=row["owner_id"],
        tie_policy=TiePolicy(row["tie_policy"]),
        live_tally=row["live_tally"],
        voting_duration_hours=row["voting_duration_hours"],
        created_at=row["created_at"],
    )


def _row_to_member(row: asyncpg.Record) -> Member:
    return Member(
        group_id=row["group_id"],
        user_id=row["user_id"],
        name=row["name"],
        role=Role(row["role"]),
        joined_at=row["joined_at"],
    )


def _row_to_invite(row: asyncpg.Record) -> Invite:
    return Invite(
        token=row["token"],
        group_id=row["group_id"],
        created_by=row["created_by"],
        expires_at=row["expires_at"],
        created_at=row["created_at"],
    )


class UserRepository(BaseRepository):
    """Repository for user rows."""

    async def create_user(self, name: str, email: Optional[str] = None) -> User:
        user_id = generate_id(USER_PREFIX)
        row = await self._fetchrow(
            """
            INSERT INTO users (id, name, email)
            VALUES ($1, $2, $3)
            RETURNING id, name, email, created_at
            """,
            user_id,
            name,
            email,
        )
        logger.info("created user", user_id=user_id)
        return User(id=row["id"], name=row["name"], email=row["email"], created_at=row["created_at"])

    async def get_user(self, user_id: str) -> Optional[User]:
        row = await self._fetchrow(
            "SELECT id, name, email, created_at FROM users WHERE id = $1",
            user_id,
        )
        if not row:
            return None
        return User(id=row["id"], name=row["name"], email=row["email"], created_at=row["created_at"])

    async def get_user_by_email(self, email: str) -> Optional[User]:
        row = await self._fetchrow(
            "SELECT id, name, email, created_at FROM users WHERE email = $1",
            email,
        )
        if not row:
            return None
        return User(id=row["id"], name=row["name"], email=row["email"], created_at=row["created_at"])


class GroupRepository(BaseRepository):
    """Repository for groups, memberships and invites."""

    # -------------------------------------------------------------------------
    # Groups
    # -------------------------------------------------------------------------

    async def create_group(
        self,
        name: str,
        timezone: str,
        owner_id: str,
        tie_policy: TiePolicy,
        live_tally: bool,
        voting_duration_hours: int,
    ) -> Group:
        """Create a group and its OWNER membership in one transaction."""
        group_id = generate_id(GROUP_PREFIX)

        async with self.transaction() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO groups (id, name, timezone, owner_id, tie_policy, live_tally, voting_duration_hours)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING {_GROUP_COLUMNS}
                """,
                group_id,
                name,
                timezone,
                owner_id,
                tie_policy.value,
                live_tally,
                voting_duration_hours,
            )
            await conn.execute(
                """
                INSERT INTO group_members (group_id, user_id, role)
                VALUES ($1, $2, 'OWNER')
                """,
                group_id,
                owner_id,
            )

        logger.info("created group", group_id=group_id, owner_id=owner_id, tie_policy=tie_policy.value)
        return _row_to_group(row)

    async def get_group(self, group_id: str) -> Optional[Group]:
        row = await self._fetchrow(
            f"SELECT {_GROUP_COLUMNS} FROM groups WHERE id = $1",
            group_id,
        )
        return _row_to_group(row) if row else None

    async def get_group_ids(self) -> List[str]:
        rows = await self._fetch("SELECT id FROM groups ORDER BY created_at, id")
        return [row["id"] for row in rows]

    async def update_settings(
        self,
        group_id: str,
        voting_duration_hours: Optional[int] = None,
        tie_policy: Optional[TiePolicy] = None,
        live_tally: Optional[bool] = None,
    ) -> Optional[Group]:
        """Update only the settings that were supplied.

        Returns:
            Updated group, or None if the group does not exist
        """
        row = await self._fetchrow(
            f"""
            UPDATE groups SET
                voting_duration_hours = COALESCE($2, voting_duration_hours),
                tie_policy = COALESCE($3, tie_policy),
                live_tally = COALESCE($4, live_tally)
            WHERE id = $1
            RETURNING {_GROUP_COLUMNS}
            """,
            group_id,
            voting_duration_hours,
            tie_policy.value if tie_policy else None,
            live_tally,
        )
        return _row_to_group(row) if row else None

    # -------------------------------------------------------------------------
    # Membership
    # -------------------------------------------------------------------------

    async def get_member(self, group_id: str, user_id: str) -> Optional[Member]:
        row = await self._fetchrow(
            """
            SELECT gm.group_id, gm.user_id, u.name, gm.role, gm.joined_at
            FROM group_members gm
            JOIN users u ON u.id = gm.user_id
            WHERE gm.group_id = $1 AND gm.user_id = $2
            """,
            group_id,
            user_id,
        )
        return _row_to_member(row) if row else None

    async def get_members(self, group_id: str) -> List[Member]:
        rows = await self._fetch(
            """
            SELECT gm.group_id, gm.user_id, u.name, gm.role, gm.joined_at
            FROM group_members gm
            JOIN users u ON u.id = gm.user_id
            WHERE gm.group_id = $1
            ORDER BY u.name, gm.user_id
            """,
            group_id,
        )
        return [_row_to_member(row) for row in rows]

    async def count_members(self, group_id: str) -> int:
        return await self._fetchval(
            "SELECT COUNT(*) FROM group_members WHERE group_id = $1",
            group_id,
        )

    async def add_member(self, group_id: str, user_id: str, role: Role = Role.MEMBER) -> Member:
        """Add a member; an existing membership keeps its role."""
        await self._execute(
            """
            INSERT INTO group_members (group_id, user_id, role)
            VALUES ($1, $2, $3)
            ON CONFLICT (group_id, user_id) DO NOTHING
            """,
            group_id,
            user_id,
            role.value,
        )
        member = await self.get_member(group_id, user_id)
        logger.info("member added", group_id=group_id, user_id=user_id, role=member.role.value)
        return member

    # -------------------------------------------------------------------------
    # Invites
    # -------------------------------------------------------------------------

    async def create_invite(
        self, group_id: str, created_by: str, expires_at: Optional[datetime] = None
    ) -> Invite:
        row = await self._fetchrow(
            """
            INSERT INTO invites (token, group_id, created_by, expires_at)
            VALUES ($1, $2, $3, $4)
            RETURNING token, group_id, created_by, expires_at, created_at
            """,
            generate_invite_token(),
            group_id,
            created_by,
            expires_at,
        )
        return _row_to_invite(row)

    async def get_invite(self, token: str) -> Optional[Invite]:
        row = await self._fetchrow(
            """
            SELECT token, group_id, created_by, expires_at, created_at
            FROM invites WHERE token = $1
            """,
            token,
        )
        return _row_to_invite(row) if row else None

    async def get_latest_invite(self, group_id: str, now: datetime) -> Optional[Invite]:
        row = await self._fetchrow(
            """
            SELECT token, group_id, created_by, expires_at, created_at
            FROM invites
            WHERE group_id = $1 AND (expires_at IS NULL OR expires_at > $2)
            ORDER BY created_at DESC
            LIMIT 1
            """,
            group_id,
            now,
        )
        return _row_to_invite(row) if row else None

    async def get_user_groups(self, user_id: str, now: datetime) -> List[UserGroup]:
        """Groups the user belongs to, oldest membership first, with each
        group's newest unexpired invite token."""
        rows = await self._fetch(
            f"""
            SELECT {_GROUP_PREFIXED_COLUMNS}, gm.role,
                   (
                       SELECT i.token
                       FROM invites i
                       WHERE i.group_id = g.id
                         AND (i.expires_at IS NULL OR i.expires_at > $2)
                       ORDER BY i.created_at DESC
                       LIMIT 1
                   ) AS invite_token
            FROM groups g
            JOIN group_members gm ON gm.group_id = g.id
            WHERE gm.user_id = $1
            ORDER BY gm.joined_at ASC
            """,
            user_id,
            now,
        )
        return [
            UserGroup(group=_row_to_group(row), role=Role(row["role"]), invite_token=row["invite_token"])
            for row in rows
        ]
