"""
database.py — Database Models & Init
Async SQLAlchemy with SQLite (dev) / PostgreSQL (prod)
"""

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import NullPool
from sqlalchemy import String, Text, DateTime, Integer, Boolean, JSON, ForeignKey, Index
from datetime import datetime, timezone
from typing import List, Optional
from config import settings
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _engine_kwargs(url: str) -> dict:
    # aiosqlite connections are bound to the loop that opened them
    if url.startswith("sqlite"):
        return {"poolclass": NullPool}
    return {"pool_pre_ping": True}


engine = create_async_engine(settings.DATABASE_URL, echo=False, **_engine_kwargs(settings.DATABASE_URL))
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


class User(Base):
    """Account plus the onboarding survey answers."""
    __tablename__ = "users"

    id: Mapped[str]                    = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email: Mapped[str]                 = mapped_column(String(255), unique=True, index=True)
    password_hash: Mapped[str]         = mapped_column(String(255))
    first_name: Mapped[str]            = mapped_column(String(100), default="")
    last_name: Mapped[str]             = mapped_column(String(100), default="")
    profile_image_url: Mapped[str]     = mapped_column(Text, default="")
    onboarding_completed: Mapped[bool] = mapped_column(Boolean, default=False)

    # Step 1 — basics
    niche: Mapped[Optional[str]]            = mapped_column(String(255), nullable=True)
    content_type: Mapped[Optional[str]]     = mapped_column(String(255), nullable=True)
    style_preference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Step 2 — business
    business_type: Mapped[Optional[str]]   = mapped_column(String(255), nullable=True)
    target_audience: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    audience_age: Mapped[Optional[str]]    = mapped_column(String(100), nullable=True)

    # Step 3 — goals
    primary_goal: Mapped[Optional[str]]      = mapped_column(String(255), nullable=True)
    posting_frequency: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    content_themes: Mapped[List[str]]        = mapped_column(JSON, default=list)

    # Step 4 — brand
    brand_personality: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    color_preferences: Mapped[List[str]]     = mapped_column(JSON, default=list)
    brand_keywords: Mapped[Optional[str]]    = mapped_column(Text, nullable=True)

    # Step 5 — platforms
    primary_platforms: Mapped[List[str]]        = mapped_column(JSON, default=list)
    content_formats: Mapped[List[str]]          = mapped_column(JSON, default=list)
    special_requirements: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    credits_remaining: Mapped[int] = mapped_column(Integer, default=lambda: settings.DEFAULT_CREDITS)
    created_at: Mapped[datetime]   = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime]   = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class AuthSession(Base):
    """Server-side login session, referenced by the signed cookie."""
    __tablename__ = "sessions"

    id: Mapped[str]              = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str]         = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)


class GeneratedImage(Base):
    """One image produced for a user."""
    __tablename__ = "generated_images"
    __table_args__ = (
        Index("ix_generated_images_user_created", "user_id", "created_at"),
    )

    id: Mapped[str]                  = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str]             = mapped_column(String(36), ForeignKey("users.id", ondelete="CASCADE"))
    prompt: Mapped[str]              = mapped_column(Text)
    enhanced_prompt: Mapped[str]     = mapped_column(Text)
    image_url: Mapped[str]           = mapped_column(Text)
    image_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    platform: Mapped[str]            = mapped_column(String(20))
    style: Mapped[str]               = mapped_column(String(255), default="")
    dimensions: Mapped[str]          = mapped_column(String(20))
    is_favorite: Mapped[bool]        = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime]     = mapped_column(DateTime(timezone=True), default=utcnow)


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
