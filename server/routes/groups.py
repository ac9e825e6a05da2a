"""
Group API - groups, invites, settings and the weekly vote

Thin handlers: every rule lives in the voting services, whose
ServiceErrors are turned into responses by the app's exception handler.
"""

from fastapi import APIRouter, Depends

from database.models import User
from exceptions import ForbiddenError
from server.dependencies import get_current_user, get_services
from server.models.requests import (
    CreateGroupRequest,
    CreateInviteRequest,
    ProposalIdRequest,
    ProposalRequest,
    ResolveRequest,
    UpdateSettingsRequest,
)
from voting.services import Services

router = APIRouter(prefix="/api", tags=["groups"])


@router.post("/groups", status_code=201)
async def create_group(
    body: CreateGroupRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    group = await services.groups.create_group(
        owner_id=user.id,
        name=body.name,
        timezone_name=body.timezone,
        tie_policy=body.tie_policy,
        live_tally=body.live_tally,
        voting_duration_hours=body.voting_duration_hours,
    )
    return {"group": group.to_dict()}


@router.get("/groups/{group_id}")
async def get_group_snapshot(
    group_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Dashboard payload; also advances the week (reminder, expiry, sync)."""
    return await services.snapshots.get_group_snapshot(group_id, user.id)


@router.patch("/groups/{group_id}/settings")
async def update_settings(
    group_id: str,
    body: UpdateSettingsRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    group = await services.groups.update_group_settings(
        group_id,
        user.id,
        voting_duration_hours=body.voting_duration_hours,
        tie_policy=body.tie_policy,
        live_tally=body.live_tally,
    )
    return {"group": group.to_dict()}


@router.post("/groups/{group_id}/invites", status_code=201)
async def create_invite(
    group_id: str,
    body: CreateInviteRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    invite = await services.groups.create_invite(group_id, user.id, body.expires_in_days)
    return {
        "token": invite.token,
        "expires_at": invite.expires_at.isoformat() if invite.expires_at else None,
    }


@router.post("/invites/{token}/join")
async def join_group(
    token: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    member = await services.groups.join_group_by_invite(token, user.id)
    return {"group_id": member.group_id, "role": member.role.value}


@router.post("/groups/{group_id}/proposals", status_code=201)
async def add_proposal(
    group_id: str,
    body: ProposalRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    proposal = await services.lifecycle.add_proposal(group_id, user.id, body.reference, body.note)
    return {"proposal": proposal.to_dict()}


@router.delete("/groups/{group_id}/proposals/{proposal_id}")
async def remove_proposal(
    group_id: str,
    proposal_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    await services.lifecycle.remove_proposal(group_id, user.id, proposal_id)
    return {"ok": True}


@router.post("/groups/{group_id}/proposals/reroll")
async def reroll_seed(
    group_id: str,
    body: ProposalIdRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    replacement = await services.lifecycle.reroll_seed_proposal(group_id, user.id, body.proposal_id)
    return {"proposal": replacement.to_dict() if replacement else None}


@router.post("/groups/{group_id}/vote")
async def cast_vote(
    group_id: str,
    body: ProposalIdRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    result = await services.lifecycle.cast_vote(group_id, user.id, body.proposal_id)
    return result.to_dict()


@router.post("/groups/{group_id}/resolve")
async def resolve_week(
    group_id: str,
    body: ResolveRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    result = await services.lifecycle.resolve_current_week(group_id, user.id, body.proposal_id)
    return result.to_dict()


@router.post("/groups/{group_id}/new-vote", status_code=201)
async def start_new_vote(
    group_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    week = await services.lifecycle.start_new_vote(group_id, user.id)
    return {"week": week.to_dict()}


@router.get("/invites/{token}")
async def preview_invite(token: str, services: Services = Depends(get_services)):
    """Invite preview shown before joining; no login needed."""
    return await services.groups.get_invite(token)


@router.get("/users/{user_id}/groups")
async def list_user_groups(
    user_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Groups of the current user; user_id is "me" or the caller's own id."""
    if user_id not in ("me", user.id):
        raise ForbiddenError("Cannot list another user's groups")
    groups = await services.groups.get_user_groups(user.id)
    return {"groups": [g.to_dict() for g in groups]}
