"""
image_router.py
POST   /api/generate               — Generate a social image from a prompt
GET    /api/images                 — History (and favorites) of the user
GET    /api/images/{id}            — One image
PATCH  /api/images/{id}/favorite   — Mark / unmark favorite
DELETE /api/images/{id}            — Delete an image
GET    /api/image/{key}            — Serve a locally stored PNG
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import FileResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import os, uuid, logging

from auth import get_current_user
from image_engine import (
    Platform, ImageGenerationError, build_enhanced_prompt, dimensions_label,
    refine_prompt, request_image, fetch_image, fit_to_platform,
)
from storage import storage, LocalStorage, is_valid_key
from database import get_db, User, GeneratedImage
from config import settings
import crud
import schemas

logger = logging.getLogger(__name__)

router = APIRouter()


async def _owned_image(db: AsyncSession, image_id: str, user: User) -> GeneratedImage:
    image = await crud.get_image(db, image_id)
    if image is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Image not found")
    if image.user_id != user.id:
        logger.warning("User %s tried to access image %s", user.id, image_id)
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Access denied")
    return image


async def _remove_stored_file(key: str) -> None:
    try:
        await storage().delete(key)
    except Exception as e:
        logger.warning("Could not remove stored file %s: %s", key, e)


# ================================================================
# GENERATION
# ================================================================

@router.post("/generate", response_model=schemas.ImageResponse)
async def generate_image_endpoint(
    req: schemas.GenerateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Generate an image tailored to the user's onboarding answers.

    Costs one credit, charged only once the image exists. When the storage
    backend keeps files, the provider image is cropped to the platform size
    and copied; otherwise the provider URL is stored as is.
    """
    if (user.credits_remaining or 0) <= 0:
        raise HTTPException(status.HTTP_402_PAYMENT_REQUIRED, "No credits remaining")

    # 1. Tailor the prompt
    enhanced_prompt = build_enhanced_prompt(req.prompt, req.platform, user)
    if settings.PROMPT_REFINER_ENABLED:
        enhanced_prompt = await refine_prompt(
            enhanced_prompt, user.niche, req.style or user.style_preference
        )

    # 2. Ask the provider
    logger.info("Generating %s image for user %s", req.platform.value, user.id)
    try:
        result = await request_image(enhanced_prompt, req.platform)
    except ImageGenerationError as e:
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e))
    except Exception as e:
        logger.error("Unexpected error while generating image: %s", e, exc_info=True)
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to generate image")

    # 3. Copy into our storage when it keeps files
    image_url, image_key = result.url, None
    store = storage()
    if store.stores_files and not result.placeholder:
        key = f"{user.id[:8]}_{uuid.uuid4().hex[:12]}"
        try:
            provider_image = await fetch_image(result.url)
            image_url = await store.save(fit_to_platform(provider_image, req.platform), key)
            image_key = key
        except Exception as e:
            logger.warning("Could not store image copy, keeping provider URL: %s", e)

    # 4. Charge and record
    if not await crud.decrement_credits(db, user.id):
        # Another request took the last credit while this one was generating
        if image_key:
            await _remove_stored_file(image_key)
        raise HTTPException(status.HTTP_402_PAYMENT_REQUIRED, "No credits remaining")

    return await crud.create_image(
        db,
        user_id=user.id,
        prompt=req.prompt,
        enhanced_prompt=enhanced_prompt,
        image_url=image_url,
        image_key=image_key,
        platform=req.platform.value,
        style=req.style or user.style_preference or "",
        dimensions=dimensions_label(req.platform),
    )


# ================================================================
# HISTORY / FAVORITES
# ================================================================

@router.get("/images", response_model=List[schemas.ImageResponse])
async def list_images(
    favorites: bool = Query(default=False, description="Only favorites"),
    platform: Optional[Platform] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The user's images, newest first."""
    return await crud.list_user_images(
        db, user.id,
        favorites_only=favorites,
        platform=platform.value if platform else None,
        limit=limit, offset=offset,
    )


@router.get("/images/{image_id}", response_model=schemas.ImageResponse)
async def get_image(
    image_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await _owned_image(db, image_id, user)


@router.patch("/images/{image_id}/favorite", response_model=schemas.ImageResponse)
async def set_favorite(
    image_id: str,
    req: schemas.FavoriteRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    image = await _owned_image(db, image_id, user)
    return await crud.set_favorite(db, image, req.is_favorite)


@router.delete("/images/{image_id}", response_model=schemas.MessageResponse)
async def delete_image(
    image_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    image = await _owned_image(db, image_id, user)
    image_key = image.image_key
    await crud.delete_image(db, image)
    if image_key:
        await _remove_stored_file(image_key)
    return {"message": "Image deleted successfully"}


# ================================================================
# FILE SERVING
# ================================================================

@router.get("/image/{key}")
async def serve_image(key: str):
    """Serve a PNG written by the local backend."""
    if not is_valid_key(key):
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Image not found")

    store = storage()
    if isinstance(store, LocalStorage):
        path = store.get_path(key)
        if not os.path.exists(path):
            raise HTTPException(status.HTTP_404_NOT_FOUND, "Image not found")
        return FileResponse(path, media_type="image/png",
                            headers={"Cache-Control": "public, max-age=3600"})

    url = await store.get_url(key)
    if not url:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Image not found")
    return RedirectResponse(url)
