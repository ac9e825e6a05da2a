"""Bearer-token authentication"""

from userland.auth.jwt import generate_access_token, init_jwt, verify_token

__all__ = [
    "init_jwt",
    "generate_access_token",
    "verify_token",
]
