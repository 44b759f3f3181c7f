"""
user_router.py
POST   /api/onboarding     — Save the onboarding survey
PATCH  /api/user/profile   — Update profile settings
GET    /api/user/stats     — Usage statistics
GET    /api/user/export    — Download all of the user's data
DELETE /api/user/account   — Delete the account and everything in it
"""

from fastapi import APIRouter, Depends, HTTPException, Cookie, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime, timezone
from typing import Optional
import logging

from auth import get_current_user, end_session
from database import get_db, User
from storage import storage
from config import settings
import crud
import schemas

logger = logging.getLogger(__name__)

router = APIRouter()


# ================================================================
# ONBOARDING
# ================================================================

@router.post("/onboarding", response_model=schemas.UserResponse)
async def complete_onboarding(
    req: schemas.OnboardingRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Store the survey answers that tailor every later prompt."""
    user = await crud.update_onboarding(db, user, req)
    logger.info("Onboarding completed for user %s", user.id)
    return user


# ================================================================
# SETTINGS
# ================================================================

@router.patch("/user/profile", response_model=schemas.UserResponse)
async def update_profile(
    req: schemas.ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if req.email is not None:
        owner = await crud.get_user_by_email(db, req.email)
        if owner is not None and owner.id != user.id:
            raise HTTPException(status.HTTP_409_CONFLICT, "Email is already in use")
    return await crud.update_profile(db, user, req)


@router.get("/user/stats", response_model=schemas.StatsResponse)
async def get_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await crud.user_stats(db, user)


@router.get("/user/export")
async def export_data(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Profile and image history as a downloadable JSON file."""
    data = await crud.export_user_data(db, user)
    filename = f"user-data-export-{datetime.now(timezone.utc).date().isoformat()}.json"
    return JSONResponse(
        content=data,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.delete("/user/account", response_model=schemas.MessageResponse)
async def delete_account(
    response: Response,
    session_token: Optional[str] = Cookie(None, alias=settings.SESSION_COOKIE_NAME),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Removes images, stored files, sessions and the user row."""
    store = storage()
    keys = await crud.stored_image_keys(db, user.id) if store.stores_files else []

    user_id = user.id
    await crud.delete_user(db, user)
    await end_session(response, db, session_token)

    # Files go only once the rows are gone
    for key in keys:
        try:
            await store.delete(key)
        except Exception as e:
            logger.warning("Could not remove stored file %s: %s", key, e)
    logger.info("Account %s deleted", user_id)
    return {"message": "Account deleted successfully"}
