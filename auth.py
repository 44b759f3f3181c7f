"""
auth.py — Password + cookie session authentication
Passwords are hashed with bcrypt. A login creates a server-side session row;
the browser holds a signed token pointing at it in an http-only cookie.
"""

from fastapi import HTTPException, Cookie, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from datetime import datetime
import bcrypt
import jwt
import logging

from config import settings
from database import get_db, User
import crud

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes
_BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# ================================================================
# SESSION TOKENS
# ================================================================

def create_session_token(session_id: str, user_id: str, issued_at: datetime, expires_at: datetime) -> str:
    payload = {
        "sid": session_id,
        "sub": user_id,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(payload, settings.SESSION_SECRET, algorithm=settings.SESSION_ALGORITHM)


def decode_session_token(token: str, verify_exp: bool = True) -> Optional[dict]:
    """Payload of a well-signed token, or None."""
    try:
        return jwt.decode(
            token,
            settings.SESSION_SECRET,
            algorithms=[settings.SESSION_ALGORITHM],
            options={"verify_exp": verify_exp, "require": ["sid", "sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        logger.info("Session token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning("Rejected session token: %s", e)
        return None


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.SESSION_TTL_SECONDS,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )


async def start_session(response: Response, db: AsyncSession, user: User) -> str:
    """Create a session row for the user and attach its cookie to the response."""
    record = await crud.create_session(db, user.id, settings.SESSION_TTL_SECONDS)
    token = create_session_token(record.id, user.id, record.created_at, record.expires_at)
    _set_session_cookie(response, token)
    logger.info("Session started for user %s", user.id)
    return token


async def end_session(response: Response, db: AsyncSession, token: Optional[str]) -> None:
    """Drop the session row behind the token (if any) and clear the cookie."""
    if token:
        payload = decode_session_token(token, verify_exp=False)
        if payload:
            await crud.delete_session(db, payload["sid"])
            logger.info("Session ended for user %s", payload["sub"])
    clear_session_cookie(response)


# ================================================================
# DEPENDENCIES
# ================================================================

async def get_current_user(
    session_token: Optional[str] = Cookie(None, alias=settings.SESSION_COOKIE_NAME),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolve the logged-in user from the session cookie.

    The token must verify, its session row must still exist and be
    unexpired, and the row must belong to the token's subject.
    """
    unauthorized = HTTPException(status.HTTP_401_UNAUTHORIZED, "Authentication required")

    if not session_token:
        raise unauthorized

    payload = decode_session_token(session_token)
    if not payload:
        raise unauthorized

    record = await crud.get_session(db, payload["sid"])
    if record is None or record.user_id != payload["sub"]:
        logger.warning("Session %s is unknown, expired or mismatched", payload["sid"][:8])
        raise unauthorized

    user = await crud.get_user(db, record.user_id)
    if user is None:
        raise unauthorized
    return user
