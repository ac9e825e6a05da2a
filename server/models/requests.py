"""
Pydantic request models for API validation

Shape checks only. Domain rules (reference format, text length, verse
ranges) are enforced by the voting services so every caller gets them.
"""

import re
from typing import Optional

from pydantic import BaseModel, field_validator

from database.models import ReadStatus, TiePolicy

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class LoginRequest(BaseModel):
    email: str
    name: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        email = v.strip().lower()
        if not email:
            raise ValueError("Email is required")
        if not _EMAIL_PATTERN.match(email):
            raise ValueError("Invalid email format")
        return email

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip()[:60] or None


class CreateGroupRequest(BaseModel):
    name: str
    timezone: Optional[str] = None
    tie_policy: TiePolicy = TiePolicy.ADMIN_PICK
    live_tally: bool = True
    voting_duration_hours: Optional[int] = None


class UpdateSettingsRequest(BaseModel):
    voting_duration_hours: Optional[int] = None
    tie_policy: Optional[TiePolicy] = None
    live_tally: Optional[bool] = None


class CreateInviteRequest(BaseModel):
    expires_in_days: Optional[int] = None


class ProposalRequest(BaseModel):
    reference: str
    note: Optional[str] = None

    @field_validator("reference")
    @classmethod
    def validate_reference(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Reference is required")
        return v


class ProposalIdRequest(BaseModel):
    proposal_id: str


class ResolveRequest(BaseModel):
    proposal_id: Optional[str] = None


class CommentRequest(BaseModel):
    text: str
    parent_id: Optional[str] = None


class EditCommentRequest(BaseModel):
    text: str


class AnnotationRequest(BaseModel):
    start_verse: int
    end_verse: int
    text: str


class AnnotationReplyRequest(BaseModel):
    text: str


class ReadMarkRequest(BaseModel):
    status: ReadStatus


class RolloverRequest(BaseModel):
    group_id: Optional[str] = None
