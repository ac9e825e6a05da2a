"""
Authentication Endpoints

Email login that finds or creates the user and returns a bearer token.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from config import get_logger
from database.models import User
from database.store import Store
from server.dependencies import get_current_user, get_db
from server.models.requests import LoginRequest
from userland.auth.jwt import generate_access_token

logger = get_logger(__name__).bind(component="auth")

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login")
async def login(login_request: LoginRequest, db: Store = Depends(get_db)):
    """Log in by email; a name is required the first time an email is seen."""
    user = await db.users.get_user_by_email(login_request.email)
    is_new = False

    if not user:
        if not login_request.name:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Name is required for new accounts",
            )
        user = await db.users.create_user(login_request.name, login_request.email)
        is_new = True
        logger.info("account created", user_id=user.id)

    return {
        "access_token": generate_access_token(user.id),
        "token_type": "bearer",
        "user": user.to_dict(),
        "is_new": is_new,
    }


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return {"user": user.to_dict()}
