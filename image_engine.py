"""
image_engine.py — Image generation engine
Tailors the user's prompt to their onboarding answers, calls the hosted
image model, and turns provider images into platform-sized PNGs.
"""

from PIL import Image, ImageOps
from dataclasses import dataclass
from typing import Optional, Tuple
from enum import Enum
import io, time, logging

import httpx
import openai

from config import settings

logger = logging.getLogger(__name__)


class Platform(str, Enum):
    INSTAGRAM = "instagram"
    LINKEDIN  = "linkedin"
    TWITTER   = "twitter"


# Final post size per platform
PLATFORM_DIMENSIONS = {
    Platform.INSTAGRAM: (1080, 1080),
    Platform.LINKEDIN:  (1200, 627),
    Platform.TWITTER:   (1200, 675),
}

# Closest size the model accepts
PLATFORM_GENERATION_SIZE = {
    Platform.INSTAGRAM: "1024x1024",
    Platform.LINKEDIN:  "1792x1024",
    Platform.TWITTER:   "1792x1024",
}


class ImageGenerationError(Exception):
    """The provider could not produce an image."""


@dataclass
class GenerationResult:
    url: str
    placeholder: bool = False
    revised_prompt: Optional[str] = None


def dimensions_label(platform: Platform) -> str:
    w, h = PLATFORM_DIMENSIONS[Platform(platform)]
    return f"{w}x{h}"


# ================================================================
# PROMPT TAILORING
# ================================================================

def build_enhanced_prompt(prompt: str, platform: Platform, user) -> str:
    """
    Extend the raw prompt with everything the user told us during onboarding.

    Fragments are appended in a fixed order and only for answers that are
    present. The platform hint is added only when the target platform is one
    of the user's primary platforms. The format suffix is always added.
    """
    platform = Platform(platform)
    p = prompt

    # Basics
    if user.niche:
        p += f" in {user.niche} niche"
    if user.style_preference:
        p += f" with {user.style_preference} style"
    if user.content_type:
        p += f" for {user.content_type} content"

    # Business context
    if user.business_type:
        p += f" targeting {user.business_type} audience"
    if user.target_audience:
        p += f", specifically for {user.target_audience}"
    if user.audience_age:
        p += f" aged {user.audience_age}"

    # Goals
    if user.primary_goal:
        p += f" designed to achieve {user.primary_goal}"

    # Brand
    if user.brand_personality:
        p += f" with {user.brand_personality} brand personality"
    if user.color_preferences:
        p += f" using colors: {', '.join(user.color_preferences)}"
    if user.brand_keywords:
        p += f" incorporating brand keywords: {user.brand_keywords}"

    if user.primary_platforms and platform.value in user.primary_platforms:
        p += f" optimized for {platform.value}"

    if user.special_requirements:
        p += f" with special requirements: {user.special_requirements}"

    p += (
        f". Social media post format, {dimensions_label(platform)} aspect ratio, "
        "professional design, high quality"
    )
    return p


# ================================================================
# PROVIDER
# ================================================================

_client: Optional[openai.AsyncOpenAI] = None


def get_client() -> openai.AsyncOpenAI:
    global _client
    if _client is None:
        _client = openai.AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY or None,
            timeout=settings.OPENAI_TIMEOUT,
        )
    return _client


def placeholder_url(platform: Platform) -> str:
    w, h = PLATFORM_DIMENSIONS[Platform(platform)]
    return settings.PLACEHOLDER_IMAGE_URL.format(
        width=w, height=h, nonce=int(time.time() * 1000)
    )


def _is_billing_limit(exc: Exception) -> bool:
    return (
        getattr(exc, "code", None) == "billing_hard_limit_reached"
        or "billing_hard_limit_reached" in str(exc)
    )


async def request_image(prompt: str, platform: Platform) -> GenerationResult:
    """
    One call to the hosted image model.

    Mock mode, and a provider that reports its billing limit, both yield a
    placeholder image. Anything else that goes wrong raises
    ImageGenerationError.
    """
    platform = Platform(platform)

    if settings.OPENAI_MOCK_MODE:
        url = placeholder_url(platform)
        logger.info("Mock mode: returning placeholder %s", url)
        return GenerationResult(url=url, placeholder=True)

    try:
        response = await get_client().images.generate(
            model=settings.OPENAI_IMAGE_MODEL,
            prompt=prompt,
            n=1,
            size=PLATFORM_GENERATION_SIZE[platform],
            quality=settings.OPENAI_IMAGE_QUALITY,
        )
    except openai.OpenAIError as e:
        if _is_billing_limit(e):
            logger.warning("Image provider billing limit reached, using placeholder")
            return GenerationResult(url=placeholder_url(platform), placeholder=True)
        logger.error("Image provider error: %s", e, exc_info=True)
        raise ImageGenerationError(f"Failed to generate image: {e}") from e

    data = response.data or []
    if not data or not getattr(data[0], "url", None):
        logger.error("Image provider returned no URL")
        raise ImageGenerationError("No image URL returned from provider")

    logger.info("Image generated for platform %s", platform.value)
    return GenerationResult(url=data[0].url, revised_prompt=getattr(data[0], "revised_prompt", None))


async def refine_prompt(prompt: str, niche: Optional[str] = None, style: Optional[str] = None) -> str:
    """Let a chat model polish the prompt. Falls back to the input on any failure."""
    system = (
        "You are an expert at writing detailed prompts for AI image generation "
        "of social media posts. Enhance the given prompt so it is specific and "
        "suitable for professional social media content."
    )
    if niche:
        system += f" The content is for the {niche} niche."
    if style:
        system += f" The style should be {style}."
    system += " Return only the enhanced prompt, no additional text."

    try:
        completion = await get_client().chat.completions.create(
            model=settings.OPENAI_CHAT_MODEL,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            max_tokens=200,
        )
    except openai.OpenAIError as e:
        logger.warning("Prompt refinement failed, keeping original prompt: %s", e)
        return prompt

    content = completion.choices[0].message.content if completion.choices else None
    return content.strip() if content and content.strip() else prompt


# ================================================================
# IMAGE HANDLING
# ================================================================

async def fetch_image(url: str, timeout: float = 30.0) -> Image.Image:
    """Download a provider image."""
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        resp = await client.get(url)
        resp.raise_for_status()
    img = Image.open(io.BytesIO(resp.content))
    img.load()
    return img


def fit_to_platform(img: Image.Image, platform: Platform) -> Image.Image:
    """Centre-crop and scale to the platform's exact post size."""
    size: Tuple[int, int] = PLATFORM_DIMENSIONS[Platform(platform)]
    if img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
    return ImageOps.fit(img, size, method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))


def image_to_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG", optimize=False)
    return buf.getvalue()
