"""
storage.py — Storage Backend
Supports: provider URL only (remote) | Local filesystem | AWS S3
"""

import os, io, re
from abc import ABC, abstractmethod
from typing import Optional
from config import settings
from image_engine import image_to_bytes
from PIL import Image


_KEY_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def is_valid_key(key: str) -> bool:
    return bool(_KEY_RE.match(key or ""))


class StorageBackend(ABC):
    # False when images stay at the provider and nothing is copied
    stores_files: bool = True

    @abstractmethod
    async def save(self, image: Image.Image, key: str) -> str:
        """Store the image, return its public URL."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    async def get_url(self, key: str) -> Optional[str]:
        pass


# ================================================================
# REMOTE (no mirroring)
# ================================================================
class RemoteStorage(StorageBackend):
    stores_files = False

    async def save(self, image: Image.Image, key: str) -> str:
        raise NotImplementedError("Remote storage keeps the provider URL")

    async def delete(self, key: str) -> bool:
        return False

    async def get_url(self, key: str) -> Optional[str]:
        return None


# ================================================================
# LOCAL STORAGE
# ================================================================
class LocalStorage(StorageBackend):
    def __init__(self, directory: Optional[str] = None, base_url: Optional[str] = None):
        self.dir = directory or settings.STORAGE_DIR
        self.base_url = (base_url or settings.BASE_IMAGE_URL).rstrip("/")
        os.makedirs(self.dir, exist_ok=True)

    async def save(self, image: Image.Image, key: str) -> str:
        path = self.get_path(key)
        img_bytes = image_to_bytes(image)
        with open(path, "wb") as f:
            f.write(img_bytes)
        return f"{self.base_url}/{key}"

    async def delete(self, key: str) -> bool:
        path = self.get_path(key)
        if os.path.exists(path):
            os.remove(path)
            return True
        return False

    async def get_url(self, key: str) -> Optional[str]:
        return f"{self.base_url}/{key}"

    def get_path(self, key: str) -> str:
        if not is_valid_key(key):
            raise ValueError(f"Invalid image key: {key!r}")
        return os.path.join(self.dir, f"{key}.png")


# ================================================================
# AWS S3 STORAGE (optional)
# ================================================================
class S3Storage(StorageBackend):
    def __init__(self):
        try:
            import boto3
        except ImportError:
            raise RuntimeError("Install the s3 extra: pip install postcraft[s3]")
        self.s3 = boto3.client(
            "s3",
            aws_access_key_id=settings.AWS_ACCESS_KEY,
            aws_secret_access_key=settings.AWS_SECRET_KEY,
            region_name=settings.AWS_REGION,
        )
        self.bucket = settings.AWS_BUCKET
        self.region = settings.AWS_REGION

    async def save(self, image: Image.Image, key: str) -> str:
        buf = io.BytesIO(image_to_bytes(image))
        filename = f"{key}.png"
        self.s3.upload_fileobj(
            buf, self.bucket, filename,
            ExtraArgs={"ContentType": "image/png", "ACL": "public-read"}
        )
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{filename}"

    async def delete(self, key: str) -> bool:
        self.s3.delete_object(Bucket=self.bucket, Key=f"{key}.png")
        return True

    async def get_url(self, key: str) -> Optional[str]:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}.png"


# ================================================================
# FACTORY
# ================================================================
def get_storage() -> StorageBackend:
    backend = settings.STORAGE_BACKEND.lower()
    if backend == "local":
        return LocalStorage()
    elif backend == "s3":
        return S3Storage()
    else:
        return RemoteStorage()

# Singleton instance
_storage_instance: Optional[StorageBackend] = None

def storage() -> StorageBackend:
    global _storage_instance
    if _storage_instance is None:
        _storage_instance = get_storage()
    return _storage_instance
