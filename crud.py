"""
crud.py — Persistence operations
Every query the routers need lives here so the routes stay thin.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional
import secrets

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from database import User, AuthSession, GeneratedImage, utcnow
from config import settings
import schemas


_CLEARABLE_PROFILE_FIELDS = {"niche", "content_type", "style_preference"}

# ================================================================
# USERS
# ================================================================

async def get_user(db: AsyncSession, user_id: str) -> Optional[User]:
    return await db.get(User, user_id)


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(
        select(User).where(func.lower(User.email) == email.strip().lower())
    )
    return result.scalar_one_or_none()


async def create_user(db: AsyncSession, signup: schemas.SignupRequest, password_hash: str) -> User:
    user = User(
        email=signup.email.strip().lower(),
        password_hash=password_hash,
        first_name=signup.first_name,
        last_name=signup.last_name,
        credits_remaining=settings.DEFAULT_CREDITS,
        content_themes=[],
        color_preferences=[],
        primary_platforms=[],
        content_formats=[],
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    return user


async def update_onboarding(db: AsyncSession, user: User, data: schemas.OnboardingRequest) -> User:
    """
    Writes every survey answer and marks onboarding complete.
    A second submission overwrites the first one.
    """
    for key, value in data.model_dump().items():
        setattr(user, key, value)
    user.onboarding_completed = True
    await db.flush()
    await db.refresh(user)
    return user


async def update_profile(db: AsyncSession, user: User, data: schemas.ProfileUpdate) -> User:
    """
    Only the fields present in the request body are changed.
    An explicit null clears the onboarding fields but is ignored for the
    name and email columns, which cannot be null.
    """
    changes = {
        key: value
        for key, value in data.model_dump(exclude_unset=True).items()
        if value is not None or key in _CLEARABLE_PROFILE_FIELDS
    }
    if "email" in changes:
        changes["email"] = changes["email"].strip().lower()
    for key, value in changes.items():
        setattr(user, key, value)
    await db.flush()
    await db.refresh(user)
    return user


async def decrement_credits(db: AsyncSession, user_id: str) -> bool:
    """Consumes one credit. Returns False when the user had none left."""
    result = await db.execute(
        update(User)
        .where(User.id == user_id, User.credits_remaining > 0)
        .values(credits_remaining=User.credits_remaining - 1)
    )
    return result.rowcount == 1


async def delete_user(db: AsyncSession, user: User) -> None:
    await db.execute(delete(AuthSession).where(AuthSession.user_id == user.id))
    await delete_all_user_images(db, user.id)
    await db.delete(user)
    await db.flush()


# ================================================================
# SESSIONS
# ================================================================

async def create_session(db: AsyncSession, user_id: str, ttl_seconds: int) -> AuthSession:
    now = utcnow()
    record = AuthSession(
        id=secrets.token_urlsafe(32),
        user_id=user_id,
        created_at=now,
        expires_at=now + timedelta(seconds=ttl_seconds),
    )
    db.add(record)
    await db.flush()
    return record


async def get_session(db: AsyncSession, session_id: str) -> Optional[AuthSession]:
    """Returns the session only while it is unexpired."""
    result = await db.execute(
        select(AuthSession).where(
            AuthSession.id == session_id,
            AuthSession.expires_at > utcnow(),
        )
    )
    return result.scalar_one_or_none()


async def delete_session(db: AsyncSession, session_id: str) -> None:
    await db.execute(delete(AuthSession).where(AuthSession.id == session_id))


async def purge_expired_sessions(db: AsyncSession) -> int:
    result = await db.execute(
        delete(AuthSession).where(AuthSession.expires_at <= utcnow())
    )
    return result.rowcount or 0


# ================================================================
# IMAGES
# ================================================================

async def create_image(
    db: AsyncSession,
    *,
    user_id: str,
    prompt: str,
    enhanced_prompt: str,
    image_url: str,
    image_key: Optional[str],
    platform: str,
    style: str,
    dimensions: str,
) -> GeneratedImage:
    image = GeneratedImage(
        user_id=user_id,
        prompt=prompt,
        enhanced_prompt=enhanced_prompt,
        image_url=image_url,
        image_key=image_key,
        platform=platform,
        style=style,
        dimensions=dimensions,
        is_favorite=False,
        created_at=utcnow(),
    )
    db.add(image)
    await db.flush()
    await db.refresh(image)
    return image


async def get_image(db: AsyncSession, image_id: str) -> Optional[GeneratedImage]:
    return await db.get(GeneratedImage, image_id)


async def list_user_images(
    db: AsyncSession,
    user_id: str,
    favorites_only: bool = False,
    platform: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[GeneratedImage]:
    """Newest first."""
    query = select(GeneratedImage).where(GeneratedImage.user_id == user_id)
    if favorites_only:
        query = query.where(GeneratedImage.is_favorite.is_(True))
    if platform:
        query = query.where(GeneratedImage.platform == platform)
    result = await db.execute(
        query.order_by(GeneratedImage.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all())


async def set_favorite(db: AsyncSession, image: GeneratedImage, is_favorite: bool) -> GeneratedImage:
    image.is_favorite = is_favorite
    await db.flush()
    await db.refresh(image)
    return image


async def delete_image(db: AsyncSession, image: GeneratedImage) -> None:
    await db.delete(image)
    await db.flush()


async def delete_all_user_images(db: AsyncSession, user_id: str) -> None:
    await db.execute(delete(GeneratedImage).where(GeneratedImage.user_id == user_id))


async def stored_image_keys(db: AsyncSession, user_id: str) -> List[str]:
    """Keys of images mirrored into our own storage."""
    result = await db.execute(
        select(GeneratedImage.image_key).where(
            GeneratedImage.user_id == user_id,
            GeneratedImage.image_key.is_not(None),
        )
    )
    return [key for key in result.scalars().all() if key]


async def user_stats(db: AsyncSession, user: User) -> dict:
    total = await db.execute(
        select(func.count()).select_from(GeneratedImage).where(GeneratedImage.user_id == user.id)
    )
    favorites = await db.execute(
        select(func.count()).select_from(GeneratedImage).where(
            GeneratedImage.user_id == user.id,
            GeneratedImage.is_favorite.is_(True),
        )
    )
    per_platform = await db.execute(
        select(GeneratedImage.platform, func.count().label("count"))
        .where(GeneratedImage.user_id == user.id)
        .group_by(GeneratedImage.platform)
    )
    return {
        "total_images":      total.scalar() or 0,
        "favorite_images":   favorites.scalar() or 0,
        "credits_remaining": user.credits_remaining,
        "platforms_used":    {row[0]: row[1] for row in per_platform.all()},
    }


async def export_user_data(db: AsyncSession, user: User) -> dict:
    result = await db.execute(
        select(GeneratedImage)
        .where(GeneratedImage.user_id == user.id)
        .order_by(GeneratedImage.created_at.desc())
    )
    images = result.scalars().all()
    return {
        "profile": schemas.UserResponse.model_validate(user).model_dump(mode="json"),
        "images": [
            {
                "id":              img.id,
                "prompt":          img.prompt,
                "enhanced_prompt": img.enhanced_prompt,
                "image_url":       img.image_url,
                "platform":        img.platform,
                "style":           img.style,
                "dimensions":      img.dimensions,
                "is_favorite":     img.is_favorite,
                "created_at":      img.created_at.isoformat(),
            }
            for img in images
        ],
        "export_date":     datetime.now(timezone.utc).isoformat(),
        "total_images":    len(images),
        "favorite_images": sum(1 for img in images if img.is_favorite),
    }
