import logging

import jwt
from fastapi import HTTPException, Request, status
from jwt.exceptions import InvalidTokenError as JWTError

import golaco.database as _db
from golaco.config import settings
from golaco.models.user import UserStatus

logger = logging.getLogger("golaco.auth")

ALGORITHM = "HS256"


def decode_jwt(token: str) -> dict:
    """Decode an access token issued by the identity provider."""
    options = {"verify_aud": bool(settings.JWT_AUDIENCE)}
    return jwt.decode(
        token,
        settings.JWT_SECRET,
        algorithms=[ALGORITHM],
        audience=settings.JWT_AUDIENCE or None,
        options=options,
    )


def token_from_request(request: Request) -> str | None:
    header = request.headers.get("authorization") or ""
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return request.cookies.get("access_token")


async def get_current_user_id(request: Request) -> str:
    """FastAPI dependency: the identity provider's subject id of the caller."""
    token = token_from_request(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated.",
        )
    try:
        payload = decode_jwt(token)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token.",
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token.",
        )
    return str(user_id)


async def get_current_user(request: Request) -> dict:
    """FastAPI dependency: the caller's game profile."""
    user_id = await get_current_user_id(request)
    user = await _db.db.users.find_one({"_id": user_id})
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Profile not found.",
        )
    if user.get("status") == UserStatus.suspended.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account has been suspended.",
        )
    return user


async def get_admin_user(request: Request) -> dict:
    """FastAPI dependency: requires an authenticated admin user."""
    user = await get_current_user(request)
    if not user.get("is_admin"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admins only.",
        )
    return user
