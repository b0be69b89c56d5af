"""Object storage abstraction. Local filesystem for dev, S3 for production.

The core never streams file bytes itself: it hands out time-limited
capability URLs. For S3 those are presigned URLs; for local storage they are
URLs carrying an itsdangerous token, served by ``fileshare.routes.storage``.
"""
import asyncio
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import quote, urlencode

import aiofiles
import aiofiles.os
import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from itsdangerous import BadSignature, URLSafeTimedSerializer

from fileshare.config import settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the storage backend fails or a capability is invalid."""
    pass


def build_key(file_id: str, filename: str) -> str:
    """Storage key for a new upload: uploads/<id>.<ext>."""
    ext = Path(filename).suffix.lstrip(".")
    return f"uploads/{file_id}.{ext}" if ext else f"uploads/{file_id}"


def key_belongs_to(key: str, file_id: str) -> bool:
    """True when ``key`` is one ``build_key`` could have issued for ``file_id``."""
    prefix = f"uploads/{file_id}"
    if key == prefix:
        return True
    return key.startswith(prefix + ".") and "/" not in key[len(prefix):]


def content_disposition(filename: str, inline: bool) -> str:
    kind = "inline" if inline else "attachment"
    safe = filename.replace('"', "")
    return f"{kind}; filename=\"{safe}\"; filename*=UTF-8''{quote(filename)}"


class ObjectStorage:
    """Issues upload/download capabilities and deletes objects."""

    def __init__(self, storage_type: Optional[str] = None):
        self.storage_type = storage_type or settings.FILE_STORAGE_TYPE
        self._s3 = None
        self._signer = URLSafeTimedSerializer(settings.STORAGE_SIGNING_SECRET, salt="fileshare-storage")
        if self.storage_type == "local":
            self.base_path = Path(settings.FILE_STORAGE_PATH)
            self.base_path.mkdir(parents=True, exist_ok=True)
        elif self.storage_type != "s3":
            raise ValueError(f"Unknown storage type: {self.storage_type}")

    # ── S3 ───────────────────────────────────────────────────────

    def _s3_client(self):
        if self._s3 is None:
            if not settings.S3_BUCKET_NAME:
                raise StorageError("S3_BUCKET_NAME is not configured")
            self._s3 = boto3.client(
                "s3",
                region_name=settings.S3_REGION,
                endpoint_url=settings.S3_ENDPOINT or None,
                aws_access_key_id=settings.S3_ACCESS_KEY_ID or None,
                aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY or None,
                # Path-style addressing is required for non-AWS endpoints
                config=BotoConfig(s3={"addressing_style": "path"} if settings.S3_ENDPOINT else {}),
            )
        return self._s3

    async def _presign(self, client_method: str, params: dict, expires_in: int) -> str:
        client = self._s3_client()
        try:
            return await asyncio.to_thread(
                client.generate_presigned_url,
                ClientMethod=client_method,
                Params={"Bucket": settings.S3_BUCKET_NAME, **params},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 presign failed: {e}") from e

    # ── Local ────────────────────────────────────────────────────

    def local_path(self, key: str) -> Path:
        """Resolve a key under the storage root, refusing path traversal."""
        root = self.base_path.resolve()
        path = (root / key).resolve()
        if root != path and root not in path.parents:
            raise StorageError("Invalid storage key")
        return path

    def sign(self, method: str, key: str, **claims) -> str:
        """Token granting ``method`` on ``key``, with any extra claims bound in."""
        return self._signer.dumps({"method": method, "key": key, **claims})

    def verify(self, token: str, method: str, key: str) -> Optional[dict]:
        """Claims of a valid, unexpired token for ``method`` on ``key``, else None."""
        max_age = {
            "PUT": settings.UPLOAD_URL_EXPIRES_SECONDS,
            "GET": settings.DOWNLOAD_URL_EXPIRES_SECONDS,
        }.get(method)
        if max_age is None:
            return None
        try:
            claims = self._signer.loads(token, max_age=max_age)
        except BadSignature as e:
            # SignatureExpired is a BadSignature too
            logger.info(f"Rejected storage token for {key}: {e}")
            return None
        if claims.get("method") != method or claims.get("key") != key:
            return None
        return claims

    def _local_url(self, method: str, key: str, **claims) -> str:
        token = self.sign(method, key, **claims)
        return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/api/storage/{quote(key)}?{urlencode({'token': token})}"

    async def write_local(self, key: str, file_bytes: bytes) -> None:
        path = self.local_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "wb") as f:
            await f.write(file_bytes)

    # ── Capabilities ─────────────────────────────────────────────

    async def issue_upload_capability(self, key: str, content_type: str) -> str:
        """URL the client PUTs the file bytes to."""
        if self.storage_type == "s3":
            return await self._presign(
                "put_object",
                {"Key": key, "ContentType": content_type},
                settings.UPLOAD_URL_EXPIRES_SECONDS,
            )
        return self._local_url("PUT", key)

    async def issue_download_capability(self, key: str, filename: str, inline: bool = False) -> str:
        """Time-limited URL serving the object as an attachment (or inline)."""
        disposition = content_disposition(filename, inline)
        if self.storage_type == "s3":
            return await self._presign(
                "get_object",
                {"Key": key, "ResponseContentDisposition": disposition},
                settings.DOWNLOAD_URL_EXPIRES_SECONDS,
            )
        return self._local_url("GET", key, disposition=disposition)

    async def delete_object(self, key: str) -> None:
        """Delete the object behind ``key``. Missing objects are not an error."""
        if self.storage_type == "s3":
            client = self._s3_client()
            try:
                await asyncio.to_thread(
                    client.delete_object, Bucket=settings.S3_BUCKET_NAME, Key=key
                )
            except (BotoCoreError, ClientError) as e:
                raise StorageError(f"S3 delete failed: {e}") from e
            return
        path = self.local_path(key)
        if await aiofiles.os.path.exists(path):
            await aiofiles.os.remove(path)


_object_storage: Optional[ObjectStorage] = None


def get_object_storage() -> ObjectStorage:
    """FastAPI dependency returning the process-wide storage backend."""
    global _object_storage
    if _object_storage is None:
        _object_storage = ObjectStorage()
    return _object_storage
