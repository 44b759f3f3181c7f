"""
schemas.py — Request / response models
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Dict, List, Optional
from datetime import datetime

from image_engine import Platform


# ================================================================
# AUTH
# ================================================================

class SignupRequest(BaseModel):
    first_name: str = Field(default="", max_length=100)
    last_name: str  = Field(default="", max_length=100)
    email: EmailStr
    password: str   = Field(..., min_length=8, max_length=128)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class UserResponse(BaseModel):
    """Public view of a user. The password hash is never part of it."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    profile_image_url: str = ""
    onboarding_completed: bool = False

    niche: Optional[str] = None
    content_type: Optional[str] = None
    style_preference: Optional[str] = None
    business_type: Optional[str] = None
    target_audience: Optional[str] = None
    audience_age: Optional[str] = None
    primary_goal: Optional[str] = None
    posting_frequency: Optional[str] = None
    content_themes: List[str] = []
    brand_personality: Optional[str] = None
    color_preferences: List[str] = []
    brand_keywords: Optional[str] = None
    primary_platforms: List[str] = []
    content_formats: List[str] = []
    special_requirements: Optional[str] = None

    credits_remaining: int
    created_at: datetime
    updated_at: datetime

    @field_validator(
        "content_themes", "color_preferences", "primary_platforms", "content_formats",
        mode="before",
    )
    @classmethod
    def _none_to_list(cls, value):
        return value or []

    @field_validator("first_name", "last_name", "profile_image_url", mode="before")
    @classmethod
    def _none_to_blank(cls, value):
        return value or ""


class AuthResponse(BaseModel):
    success: bool
    message: str
    user: UserResponse
    redirect: str


# ================================================================
# ONBOARDING / PROFILE
# ================================================================

class OnboardingRequest(BaseModel):
    """The five-step onboarding survey."""
    # Step 1 — basics
    niche: str            = Field(..., min_length=1, max_length=255)
    content_type: str     = Field(..., min_length=1, max_length=255)
    style_preference: str = Field(..., min_length=1, max_length=255)

    # Step 2 — business
    business_type: str          = Field(..., min_length=1, max_length=255)
    target_audience: str        = Field(..., min_length=1, max_length=255)
    audience_age: Optional[str] = Field(default=None, max_length=100)

    # Step 3 — goals
    primary_goal: str         = Field(..., min_length=1, max_length=255)
    posting_frequency: str    = Field(..., min_length=1, max_length=100)
    content_themes: List[str] = Field(default_factory=list)

    # Step 4 — brand
    brand_personality: str        = Field(..., min_length=1, max_length=255)
    color_preferences: List[str]  = Field(..., min_length=1)
    brand_keywords: Optional[str] = None

    # Step 5 — platforms
    primary_platforms: List[str]        = Field(..., min_length=1)
    content_formats: List[str]          = Field(..., min_length=1)
    special_requirements: Optional[str] = None


class ProfileUpdate(BaseModel):
    """Settings screen. Omitted fields are left untouched."""
    first_name: Optional[str]       = Field(default=None, max_length=100)
    last_name: Optional[str]        = Field(default=None, max_length=100)
    email: Optional[EmailStr]       = None
    niche: Optional[str]            = Field(default=None, max_length=255)
    content_type: Optional[str]     = Field(default=None, max_length=255)
    style_preference: Optional[str] = Field(default=None, max_length=255)


class StatsResponse(BaseModel):
    total_images: int
    favorite_images: int
    credits_remaining: int
    platforms_used: Dict[str, int]


# ================================================================
# IMAGES
# ================================================================

class GenerateRequest(BaseModel):
    prompt: str             = Field(..., min_length=1, max_length=1000,
                                    description="What the image should show")
    platform: Platform
    style: Optional[str]    = Field(default=None, max_length=255,
                                    description="Overrides the style chosen during onboarding")


class FavoriteRequest(BaseModel):
    is_favorite: bool


class ImageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    prompt: str
    enhanced_prompt: str
    image_url: str
    platform: Platform
    style: str
    dimensions: str
    is_favorite: bool
    created_at: datetime


class MessageResponse(BaseModel):
    message: str
