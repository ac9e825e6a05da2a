"""FastAPI Dependencies

Centralized dependency injection for reuse across all route modules.
The store and the service container live on app.state, set up in the
lifespan (or handed to create_app directly in tests).
"""

from fastapi import HTTPException, Request, status

from database.models import User
from database.store import Store
from userland.auth.jwt import verify_token
from voting.services import Services


def get_db(request: Request) -> Store:
    """Dependency to get the shared store from app state

    Usage in routes:
        @router.get("/endpoint")
        async def endpoint(db: Store = Depends(get_db)):
            user = await db.users.get_user(user_id)
    """
    return request.app.state.db


def get_services(request: Request) -> Services:
    """Dependency to get the voting service container from app state"""
    return request.app.state.services


async def get_current_user(request: Request) -> User:
    """
    FastAPI dependency to extract and validate current user from JWT token.

    Expects an access token in the Authorization header.

    Returns:
        User object

    Raises:
        HTTPException 401 if not authenticated or token invalid
        HTTPException 404 if user not found
    """
    user_id = None

    auth_header = request.headers.get("authorization")
    if auth_header and auth_header.startswith("Bearer "):
        payload = verify_token(auth_header[len("Bearer "):], expected_type="access")
        if payload:
            user_id = payload.get("user_id")

    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated"
        )

    db: Store = request.app.state.db
    user = await db.users.get_user(user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="User not found"
        )

    return user
