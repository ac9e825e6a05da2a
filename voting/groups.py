"""Groups, membership checks, settings, invites and per-user group lists"""

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from config import get_logger
from database.models import Group, Invite, Member, Role, TiePolicy, UserGroup
from database.store import Store
from exceptions import ForbiddenError, InvalidInputError, NotFoundError

logger = get_logger(__name__).bind(component="groups")

Clock = Callable[[], datetime]

MAX_GROUP_NAME_LENGTH = 80
MIN_VOTING_HOURS = 1
MAX_VOTING_HOURS = 168
DEFAULT_VOTING_HOURS = 68
DEFAULT_TIMEZONE = "America/New_York"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def require_member(db: Store, group_id: str, user_id: str) -> Member:
    """Membership gate shared by every group-scoped operation

    Raises:
        NotFoundError: Group does not exist
        ForbiddenError: User is not a member
    """
    member = await db.groups.get_member(group_id, user_id)
    if member:
        return member
    if not await db.groups.get_group(group_id):
        raise NotFoundError("Group not found", entity="group", entity_id=group_id)
    raise ForbiddenError("Not a member of this group")


async def require_admin(db: Store, group_id: str, user_id: str) -> Member:
    member = await require_member(db, group_id, user_id)
    if not member.role.at_least(Role.ADMIN):
        raise ForbiddenError("Admin access required")
    return member


def parse_tie_policy(value: Union[str, TiePolicy]) -> TiePolicy:
    try:
        return TiePolicy(value)
    except ValueError:
        raise InvalidInputError("Invalid tie policy", field="tie_policy", value=value)


def clamp_voting_hours(hours: int) -> int:
    return max(MIN_VOTING_HOURS, min(MAX_VOTING_HOURS, int(hours)))


def validate_timezone(name: str) -> str:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidInputError("Unknown timezone", field="timezone", value=name)
    return name


class GroupService:
    """Group creation, settings and invite flows"""

    def __init__(self, db: Store, clock: Optional[Clock] = None,
                 default_timezone: str = DEFAULT_TIMEZONE,
                 default_voting_hours: int = DEFAULT_VOTING_HOURS):
        self.db = db
        self.clock = clock or _utcnow
        self.default_timezone = default_timezone
        self.default_voting_hours = default_voting_hours

    async def create_group(
        self,
        owner_id: str,
        name: str,
        timezone_name: Optional[str] = None,
        tie_policy: Union[str, TiePolicy] = TiePolicy.ADMIN_PICK,
        live_tally: bool = True,
        voting_duration_hours: Optional[int] = None,
    ) -> Group:
        clean_name = (name or "").strip()[:MAX_GROUP_NAME_LENGTH]
        if not clean_name:
            raise InvalidInputError("Group name is required", field="name")

        tz = validate_timezone(timezone_name or self.default_timezone)
        policy = parse_tie_policy(tie_policy)

        if not await self.db.users.get_user(owner_id):
            raise NotFoundError("User not found", entity="user", entity_id=owner_id)

        group = await self.db.groups.create_group(
            name=clean_name,
            timezone=tz,
            owner_id=owner_id,
            tie_policy=policy,
            live_tally=bool(live_tally),
            voting_duration_hours=clamp_voting_hours(
                voting_duration_hours if voting_duration_hours is not None else self.default_voting_hours
            ),
        )
        logger.info("group created", group_id=group.id, owner_id=owner_id)
        return group

    async def update_group_settings(
        self,
        group_id: str,
        user_id: str,
        voting_duration_hours: Optional[int] = None,
        tie_policy: Optional[Union[str, TiePolicy]] = None,
        live_tally: Optional[bool] = None,
    ) -> Group:
        """Admin-only settings update; hours are clamped to 1..168

        Raises:
            InvalidInputError: Nothing to update, or unknown tie policy
        """
        await require_admin(self.db, group_id, user_id)

        if voting_duration_hours is None and tie_policy is None and live_tally is None:
            raise InvalidInputError("No settings to update")

        group = await self.db.groups.update_settings(
            group_id,
            voting_duration_hours=(
                clamp_voting_hours(voting_duration_hours) if voting_duration_hours is not None else None
            ),
            tie_policy=parse_tie_policy(tie_policy) if tie_policy is not None else None,
            live_tally=live_tally,
        )
        if not group:
            raise NotFoundError("Group not found", entity="group", entity_id=group_id)

        logger.info(
            "group settings updated",
            group_id=group_id,
            voting_duration_hours=group.voting_duration_hours,
            tie_policy=group.tie_policy.value,
            live_tally=group.live_tally,
        )
        return group

    async def create_invite(
        self, group_id: str, user_id: str, expires_in_days: Optional[int] = None
    ) -> Invite:
        await require_admin(self.db, group_id, user_id)
        expires_at = None
        if expires_in_days is not None:
            if expires_in_days <= 0:
                raise InvalidInputError("Expiry must be at least one day", field="expires_in_days",
                                        value=expires_in_days)
            expires_at = self.clock() + timedelta(days=expires_in_days)
        return await self.db.groups.create_invite(group_id, user_id, expires_at)

    async def join_group_by_invite(self, token: str, user_id: str) -> Member:
        """Join through an invite token; joining twice keeps the existing role"""
        invite = await self.db.groups.get_invite(token)
        if not invite or not invite.is_valid(self.clock()):
            raise NotFoundError("Invite not found or expired", entity="invite")
        if not await self.db.users.get_user(user_id):
            raise NotFoundError("User not found", entity="user", entity_id=user_id)
        return await self.db.groups.add_member(invite.group_id, user_id, Role.MEMBER)

    async def get_invite(self, token: str) -> dict:
        """Preview an invite before joining

        Raises:
            NotFoundError: Unknown or expired token
        """
        invite = await self.db.groups.get_invite(token)
        if not invite or not invite.is_valid(self.clock()):
            raise NotFoundError("Invite not found or expired", entity="invite")
        group = await self.db.groups.get_group(invite.group_id)
        if not group:
            raise NotFoundError("Invite not found or expired", entity="invite")
        creator = await self.db.users.get_user(invite.created_by)
        return {
            "valid": True,
            "group_id": group.id,
            "group_name": group.name,
            "invited_by": creator.name if creator else None,
            "expires_at": invite.expires_at.isoformat() if invite.expires_at else None,
        }

    async def get_user_groups(self, user_id: str) -> List[UserGroup]:
        """Groups the user belongs to, oldest membership first"""
        return await self.db.groups.get_user_groups(user_id, self.clock())
