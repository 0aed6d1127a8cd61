"""
Asset storage with provider abstraction.

Supports the local filesystem (default, also used in tests) and S3.
Callers only keep the returned ``(asset_id, public_url)`` pair.
"""

from __future__ import annotations

import asyncio
import mimetypes
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

import structlog
from fastapi import UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from ednova.config import get_settings
from ednova.errors import ExternalServiceError, ValidationError

logger = structlog.get_logger()


@dataclass(frozen=True)
class StoredAsset:
    asset_id: str
    public_url: str


def build_asset_key(tenant: str, folder: str, filename: str) -> str:
    """``{tenant}/{folder}/{uuid}{ext}``. The original name only contributes its extension."""
    suffix = PurePosixPath(filename or "").suffix.lower()[:10]
    return f"{tenant}/{folder}/{uuid.uuid4().hex}{suffix}"


class BaseAssetStorage(ABC):
    """Abstract base class for asset storage providers."""

    @abstractmethod
    async def upload(self, key: str, data: bytes, content_type: str | None = None) -> StoredAsset:
        """Store ``data`` under ``key``. Raises ExternalServiceError on failure."""
        ...

    @abstractmethod
    async def delete(self, asset_id: str) -> None:
        """Remove an asset. Raises ExternalServiceError on failure."""
        ...


class LocalAssetStorage(BaseAssetStorage):
    """Write assets under a root directory served at ``public_base_url``."""

    def __init__(self, root: str | Path, public_base_url: str) -> None:
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def _path(self, asset_id: str) -> Path:
        path = (self.root / asset_id).resolve()
        if not path.is_relative_to(self.root.resolve()):
            msg = f"Asset id escapes storage root: {asset_id}"
            raise ValueError(msg)
        return path

    async def upload(self, key: str, data: bytes, content_type: str | None = None) -> StoredAsset:
        path = self._path(key)
        try:
            await asyncio.to_thread(_write_file, path, data)
        except OSError as exc:
            logger.error("asset_upload_failed", asset_id=key, provider="local", error=str(exc))
            raise ExternalServiceError("Failed to upload file") from exc
        logger.info("asset_uploaded", asset_id=key, size=len(data), provider="local")
        return StoredAsset(asset_id=key, public_url=f"{self.public_base_url}/{key}")

    async def delete(self, asset_id: str) -> None:
        path = self._path(asset_id)
        try:
            await asyncio.to_thread(path.unlink, True)
        except OSError as exc:
            raise ExternalServiceError("Failed to delete file") from exc
        logger.info("asset_deleted", asset_id=asset_id, provider="local")

    def exists(self, asset_id: str) -> bool:
        return self._path(asset_id).exists()


def _write_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


class S3AssetStorage(BaseAssetStorage):
    """Store assets in an S3 bucket via aioboto3."""

    def __init__(self, bucket: str, region: str, public_base_url: str = "") -> None:
        self.bucket = bucket
        self.region = region
        self.public_base_url = (public_base_url or f"https://{bucket}.s3.{region}.amazonaws.com").rstrip("/")

    async def upload(self, key: str, data: bytes, content_type: str | None = None) -> StoredAsset:
        import aioboto3

        content_type = content_type or mimetypes.guess_type(key)[0] or "application/octet-stream"
        try:
            session = aioboto3.Session()
            async with session.client("s3", region_name=self.region) as s3:
                await s3.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except Exception as exc:
            logger.error("asset_upload_failed", asset_id=key, provider="s3", error=str(exc))
            raise ExternalServiceError("Failed to upload file") from exc
        logger.info("asset_uploaded", asset_id=key, size=len(data), provider="s3")
        return StoredAsset(asset_id=key, public_url=f"{self.public_base_url}/{key}")

    async def delete(self, asset_id: str) -> None:
        import aioboto3

        try:
            session = aioboto3.Session()
            async with session.client("s3", region_name=self.region) as s3:
                await s3.delete_object(Bucket=self.bucket, Key=asset_id)
        except Exception as exc:
            raise ExternalServiceError("Failed to delete file") from exc
        logger.info("asset_deleted", asset_id=asset_id, provider="s3")


async def delete_quietly(storage: BaseAssetStorage, asset_id: str | None) -> None:
    """Best-effort cleanup: failures are logged, never raised."""
    if not asset_id:
        return
    try:
        await storage.delete(asset_id)
    except Exception:
        logger.warning("asset_cleanup_failed", asset_id=asset_id, exc_info=True)


def _create_storage() -> BaseAssetStorage:
    settings = get_settings()
    provider_name = settings.storage_provider.lower()
    if provider_name == "local":
        return LocalAssetStorage(settings.storage_local_root, settings.storage_public_base_url)
    if provider_name == "s3":
        return S3AssetStorage(settings.s3_bucket, settings.s3_region, settings.s3_public_base_url)
    msg = f"Unsupported storage provider: {provider_name}"
    raise ValueError(msg)


# Module-level singleton
_storage: BaseAssetStorage | None = None


def get_asset_storage() -> BaseAssetStorage:
    """Get or create the storage provider (FastAPI dependency)."""
    global _storage  # noqa: PLW0603
    if _storage is None:
        _storage = _create_storage()
    return _storage


def reset_asset_storage() -> None:
    """Reset the storage singleton (for testing)."""
    global _storage  # noqa: PLW0603
    _storage = None


async def store_upload(
    storage: BaseAssetStorage,
    upload: UploadFile,
    *,
    tenant: str,
    folder: str,
) -> StoredAsset:
    """Read a multipart upload and store it under the tenant's folder."""
    settings = get_settings()
    data = await upload.read()
    if not data:
        msg = "Uploaded file is empty"
        raise ValidationError(msg)
    if len(data) > settings.upload_max_bytes:
        msg = "Uploaded file is too large"
        raise ValidationError(msg)
    key = build_asset_key(tenant, folder, upload.filename or "")
    return await storage.upload(key, data, upload.content_type)


async def commit_or_discard(db: AsyncSession, storage: BaseAssetStorage, *uploaded: StoredAsset | None) -> None:
    """Commit a write that references freshly uploaded assets.

    If the commit fails the session is rolled back and the uploads are
    deleted again, so no orphaned asset outlives a failed write.
    """
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        for asset in uploaded:
            if asset is not None:
                await delete_quietly(storage, asset.asset_id)
        raise
