"""
==============================================================
POSTCRAFT — AI SOCIAL IMAGE GENERATOR
FastAPI Backend
Signup + onboarding survey + tailored image generation
==============================================================
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import uvicorn

import auth_router, image_router, user_router
from config import settings
import database
import crud

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def purge_sessions() -> int:
    async with database.AsyncSessionLocal() as db:
        purged = await crud.purge_expired_sessions(db)
        await db.commit()
    return purged


@asynccontextmanager
async def lifespan(app: FastAPI):
    await database.init_db()
    purged = await purge_sessions()
    if purged:
        logger.info("Purged %d expired sessions", purged)
    if settings.SESSION_SECRET == "CHANGE_ME_SESSION_SECRET" and not settings.DEBUG:
        logger.warning("SESSION_SECRET is the default value, set it before deploying")
    logger.info("Postcraft server ready (storage=%s, mock=%s)",
                settings.STORAGE_BACKEND, settings.OPENAI_MOCK_MODE)
    yield

app = FastAPI(
    title="Postcraft — AI Social Image Generator",
    description="Generate social media images tailored to each user's niche and brand",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(auth_router.router,  prefix="/api", tags=["Auth"])
app.include_router(user_router.router,  prefix="/api", tags=["User"])
app.include_router(image_router.router, prefix="/api", tags=["Images"])

@app.get("/")
async def root():
    return {
        "service": "Postcraft AI Social Image Generator",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "POST   /api/signup":                "Create an account",
            "POST   /api/login":                 "Log in",
            "POST   /api/logout":                "Log out",
            "GET    /api/auth/user":             "Current user",
            "POST   /api/onboarding":            "Save onboarding survey",
            "POST   /api/generate":              "Generate an image",
            "GET    /api/images":                "Image history",
            "PATCH  /api/images/{id}/favorite":  "Toggle favorite",
            "DELETE /api/images/{id}":           "Delete an image",
            "PATCH  /api/user/profile":          "Update settings",
            "GET    /api/user/export":           "Export user data",
            "DELETE /api/user/account":          "Delete account",
            "GET    /api/health":                "Health check",
        }
    }

@app.get("/api/health")
async def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

if __name__ == "__main__":
    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
