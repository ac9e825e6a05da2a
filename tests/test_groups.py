"""
Tests for group creation, settings, invites and membership gates
"""

from datetime import timedelta

import pytest

from database.models import Role, TiePolicy
from exceptions import ForbiddenError, InvalidInputError, NotFoundError
from voting.groups import clamp_voting_hours, require_admin, require_member


class TestCreateGroup:
    """Group creation defaults and input validation"""

    async def test_defaults(self, services, owner):
        """New group gets default settings and an OWNER membership"""
        group = await services.groups.create_group(owner.id, "  Evening Readers  ")

        assert group.name == "Evening Readers"
        assert group.timezone == "America/New_York"
        assert group.tie_policy == TiePolicy.ADMIN_PICK
        assert group.live_tally is True
        assert group.voting_duration_hours == 68

        member = await services.db.groups.get_member(group.id, owner.id)
        assert member.role == Role.OWNER

    async def test_rejects_blank_name(self, services, owner):
        """Whitespace-only names are rejected"""
        with pytest.raises(InvalidInputError, match="Group name is required"):
            await services.groups.create_group(owner.id, "   ")

    async def test_rejects_unknown_timezone(self, services, owner):
        """Timezone must be a known IANA zone"""
        with pytest.raises(InvalidInputError, match="Unknown timezone"):
            await services.groups.create_group(owner.id, "Readers", timezone_name="Mars/Olympus")

    async def test_rejects_unknown_tie_policy(self, services, owner):
        """Tie policy must be one of the known policies"""
        with pytest.raises(InvalidInputError, match="Invalid tie policy"):
            await services.groups.create_group(owner.id, "Readers", tie_policy="COIN_FLIP")

    async def test_clamps_hours(self, services, owner):
        """Voting duration above a week is clamped to 168 hours"""
        group = await services.groups.create_group(owner.id, "Readers", voting_duration_hours=500)
        assert group.voting_duration_hours == 168


class TestSettings:
    """Group settings updates and their admin gate"""

    async def test_admin_updates_settings(self, services, group, owner):
        """Admin can change duration, tie policy and tally visibility"""
        updated = await services.groups.update_group_settings(
            group.id, owner.id, voting_duration_hours=0, tie_policy="RANDOM", live_tally=False
        )
        assert updated.voting_duration_hours == 1
        assert updated.tie_policy == TiePolicy.RANDOM
        assert updated.live_tally is False

    async def test_member_cannot_update(self, services, group, member):
        """Plain members are refused settings changes"""
        with pytest.raises(ForbiddenError, match="Admin access required"):
            await services.groups.update_group_settings(group.id, member.id, live_tally=False)

    async def test_empty_update_rejected(self, services, group, owner):
        """An update naming no settings is rejected"""
        with pytest.raises(InvalidInputError, match="No settings to update"):
            await services.groups.update_group_settings(group.id, owner.id)

    def test_clamp_bounds(self):
        """Voting hours are clamped into 1..168"""
        assert clamp_voting_hours(-5) == 1
        assert clamp_voting_hours(24) == 24
        assert clamp_voting_hours(1000) == 168


class TestInvites:
    """Invite tokens: creation, expiry and joining"""

    async def test_join_by_invite(self, services, group, owner, outsider):
        """Joining by invite adds the user as MEMBER"""
        invite = await services.groups.create_invite(group.id, owner.id)
        member = await services.groups.join_group_by_invite(invite.token, outsider.id)

        assert member.group_id == group.id
        assert member.role == Role.MEMBER

    async def test_rejoin_keeps_role(self, services, group, owner):
        """Rejoining does not downgrade an existing role"""
        invite = await services.groups.create_invite(group.id, owner.id)
        member = await services.groups.join_group_by_invite(invite.token, owner.id)
        assert member.role == Role.OWNER

    async def test_expired_invite(self, services, group, owner, outsider, clock):
        """Expired tokens read as not found"""
        invite = await services.groups.create_invite(group.id, owner.id, expires_in_days=1)
        clock.advance(days=1, seconds=1)

        with pytest.raises(NotFoundError, match="Invite not found or expired"):
            await services.groups.join_group_by_invite(invite.token, outsider.id)

    async def test_member_cannot_invite(self, services, group, member):
        """Only admins can create invites"""
        with pytest.raises(ForbiddenError):
            await services.groups.create_invite(group.id, member.id)

    async def test_nonpositive_expiry_rejected(self, services, group, owner):
        """Expiry must be at least one day"""
        with pytest.raises(InvalidInputError):
            await services.groups.create_invite(group.id, owner.id, expires_in_days=0)

    async def test_latest_valid_invite(self, services, db, group, owner, clock):
        """Latest invite skips tokens that expired by the given instant"""
        await services.groups.create_invite(group.id, owner.id)
        newer = await services.groups.create_invite(group.id, owner.id, expires_in_days=3)

        assert (await db.groups.get_latest_invite(group.id, clock.now)).token == newer.token
        later = clock.now + timedelta(days=4)
        assert (await db.groups.get_latest_invite(group.id, later)).token != newer.token


class TestMembershipGates:
    """Membership and admin gates used by every group operation"""

    async def test_unknown_group_is_not_found(self, db, owner):
        """Missing group raises not found before membership is checked"""
        with pytest.raises(NotFoundError, match="Group not found"):
            await require_member(db, "grp_0000000000000000", owner.id)

    async def test_outsider_is_forbidden(self, db, group, outsider):
        """Non-members are forbidden"""
        with pytest.raises(ForbiddenError, match="Not a member of this group"):
            await require_member(db, group.id, outsider.id)

    async def test_owner_passes_admin_gate(self, db, group, owner):
        """OWNER satisfies the admin gate"""
        member = await require_admin(db, group.id, owner.id)
        assert member.role == Role.OWNER


class TestUserGroups:
    """Per-user group list with role and invite token"""

    async def test_lists_memberships_oldest_first_with_role(self, services, group, member):
        """Groups come back in join order with the user's role in each"""
        own = await services.groups.create_group(member.id, "Ben's Circle")

        groups = await services.groups.get_user_groups(member.id)

        assert [(g.group.id, g.role) for g in groups] == [(group.id, Role.MEMBER), (own.id, Role.OWNER)]
        assert groups[0].to_dict()["name"] == "Tuesday Study"

    async def test_carries_latest_valid_invite_token(self, services, group, owner, clock):
        """Each group carries its newest unexpired invite token"""
        lasting = await services.groups.create_invite(group.id, owner.id)
        clock.advance(seconds=1)
        short = await services.groups.create_invite(group.id, owner.id, expires_in_days=1)

        groups = await services.groups.get_user_groups(owner.id)
        assert groups[0].invite_token == short.token

        clock.advance(days=2)
        groups = await services.groups.get_user_groups(owner.id)
        assert groups[0].invite_token == lasting.token

    async def test_no_invite_gives_none(self, services, group, owner):
        """Group with no invites lists a null token"""
        groups = await services.groups.get_user_groups(owner.id)
        assert groups[0].to_dict()["invite_token"] is None

    async def test_user_without_groups(self, services, group, outsider):
        """User with no memberships gets an empty list"""
        assert await services.groups.get_user_groups(outsider.id) == []


class TestInvitePreview:
    """Invite preview shown before joining"""

    async def test_names_group_and_inviter(self, services, group, owner):
        """Preview names the group and the member who created the invite"""
        invite = await services.groups.create_invite(group.id, owner.id)

        preview = await services.groups.get_invite(invite.token)

        assert preview["valid"] is True
        assert preview["group_id"] == group.id
        assert preview["group_name"] == "Tuesday Study"
        assert preview["invited_by"] == "Ada Owner"
        assert preview["expires_at"] is None

    async def test_unknown_token(self, services, group):
        """Unknown token is not found"""
        with pytest.raises(NotFoundError, match="Invite not found or expired"):
            await services.groups.get_invite("nope1234")

    async def test_expired_token(self, services, group, owner, clock):
        """Expired token is not found"""
        invite = await services.groups.create_invite(group.id, owner.id, expires_in_days=1)
        clock.advance(days=1, seconds=1)

        with pytest.raises(NotFoundError, match="Invite not found or expired"):
            await services.groups.get_invite(invite.token)

    async def test_preview_does_not_join(self, services, db, group, owner, outsider):
        """Looking at an invite never creates a membership"""
        invite = await services.groups.create_invite(group.id, owner.id)
        await services.groups.get_invite(invite.token)
        assert await db.groups.get_member(group.id, outsider.id) is None
