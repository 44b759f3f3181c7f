"""
auth_router.py
POST /api/signup     — Create an account and log in
POST /api/login      — Email + password login
POST /api/logout     — End the current session
GET  /api/auth/user  — The logged-in user
"""

from fastapi import APIRouter, Depends, HTTPException, Cookie, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from typing import Optional
import logging

from auth import get_current_user, hash_password, verify_password, start_session, end_session
from database import get_db, User
from config import settings
import crud
import schemas

logger = logging.getLogger(__name__)

router = APIRouter()


def _next_page(user: User) -> str:
    return "/dashboard" if user.onboarding_completed else "/onboarding"


@router.post("/signup", response_model=schemas.AuthResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    req: schemas.SignupRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    """Register a new account. The new user is logged in straight away."""
    if await crud.get_user_by_email(db, req.email):
        raise HTTPException(status.HTTP_409_CONFLICT, "An account with this email already exists")

    try:
        user = await crud.create_user(db, req, hash_password(req.password))
    except IntegrityError:
        # Lost a race with a concurrent signup for the same email
        raise HTTPException(status.HTTP_409_CONFLICT, "An account with this email already exists")
    await start_session(response, db, user)
    logger.info("New account %s", user.id)

    return schemas.AuthResponse(
        success=True,
        message="Signup successful",
        user=schemas.UserResponse.model_validate(user),
        redirect="/onboarding",
    )


@router.post("/login", response_model=schemas.AuthResponse)
async def login(
    req: schemas.LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    user = await crud.get_user_by_email(db, req.email)
    if user is None or not verify_password(req.password, user.password_hash):
        logger.warning("Failed login attempt")
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid email or password")

    await start_session(response, db, user)
    return schemas.AuthResponse(
        success=True,
        message="Login successful",
        user=schemas.UserResponse.model_validate(user),
        redirect=_next_page(user),
    )


@router.api_route("/logout", methods=["GET", "POST"])
async def logout(
    response: Response,
    session_token: Optional[str] = Cookie(None, alias=settings.SESSION_COOKIE_NAME),
    db: AsyncSession = Depends(get_db),
):
    """Safe to call without a session."""
    await end_session(response, db, session_token)
    return {"success": True, "message": "Logged out", "redirect": "/"}


@router.get("/auth/user", response_model=schemas.UserResponse)
async def get_auth_user(user: User = Depends(get_current_user)):
    return user
