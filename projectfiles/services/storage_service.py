"""Storage service abstraction for S3-compatible object storage and local filesystem"""
import asyncio
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

import aioboto3
import aiofiles
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from projectfiles.core.config import settings
from projectfiles.core.exceptions import (
    ConfigurationError,
    InvalidOperationError,
    NotFoundError,
    StorageFailureError,
)
from projectfiles.utils.path_utils import normalize_path
from projectfiles.utils.logger import get_logger

logger = get_logger(__name__)


class StorageService(ABC):
    """Abstract base class for object storage operations"""

    kind: str = "abstract"

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout if timeout is not None else settings.STORAGE_TIMEOUT_SECONDS

    async def _with_timeout(self, operation: str, key: str, coro):
        """Await a storage call, converting timeouts into StorageFailureError"""
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Storage {operation} timed out after {self.timeout}s for {key}")
            raise StorageFailureError(f"Storage {operation} timed out for '{key}'")

    @abstractmethod
    async def put_object(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        """Store bytes under key"""
        pass

    @abstractmethod
    async def get_object(self, key: str) -> bytes:
        """Read the bytes stored under key"""
        pass

    @abstractmethod
    async def delete_object(self, key: str) -> None:
        """Delete key; deleting a missing key succeeds"""
        pass

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> List[str]:
        """List every key starting with prefix"""
        pass

    @abstractmethod
    async def presign_upload(self, key: str, content_type: str, ttl: Optional[int] = None) -> str:
        """Time-limited URL a client can PUT the object to"""
        pass

    @abstractmethod
    async def presign_download(self, key: str, ttl: Optional[int] = None, file_name: Optional[str] = None) -> str:
        """Time-limited URL a client can GET the object from"""
        pass

    @abstractmethod
    async def head_bucket(self) -> None:
        """Verify the backing bucket or directory is reachable"""
        pass


class S3StorageService(StorageService):
    """S3 / Wasabi storage implementation"""

    kind = "s3"

    def __init__(
        self,
        bucket: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        region: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(timeout)
        missing = settings.missing_s3_settings
        if bucket is None and missing:
            raise ConfigurationError(
                f"Storage configuration is incomplete. Missing: {', '.join(missing)}"
            )
        self.bucket = bucket or settings.AWS_S3_BUCKET
        self.endpoint_url = endpoint_url if endpoint_url is not None else settings.s3_endpoint
        self.session = aioboto3.Session(
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
            region_name=region or settings.AWS_REGION
        )
        # Path-style addressing is required by Wasabi
        self.client_config = Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
            connect_timeout=self.timeout,
            read_timeout=self.timeout,
            retries={"max_attempts": 3},
        )
        logger.info(f"S3 storage initialized for bucket: {self.bucket} ({self.endpoint_url or 'aws'})")

    def _client(self):
        kwargs = {"config": self.client_config}
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        return self.session.client('s3', **kwargs)

    async def put_object(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        """Upload bytes to S3"""
        params = {"Bucket": self.bucket, "Key": key, "Body": data}
        if content_type:
            params["ContentType"] = content_type

        async def _put():
            async with self._client() as s3_client:
                await s3_client.put_object(**params)

        try:
            await self._with_timeout("upload", key, _put())
            logger.info(f"Uploaded {len(data)} bytes to S3: {key}")
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 upload error for {key}: {e}")
            raise StorageFailureError(f"S3 error: {str(e)}")

    async def get_object(self, key: str) -> bytes:
        """Download an object from S3"""
        async def _get():
            async with self._client() as s3_client:
                obj = await s3_client.get_object(Bucket=self.bucket, Key=key)
                return await obj['Body'].read()

        try:
            return await self._with_timeout("download", key, _get())
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise NotFoundError(f"Object not found: {key}")
            logger.error(f"S3 download error for {key}: {e}")
            raise StorageFailureError(f"S3 error: {str(e)}")
        except BotoCoreError as e:
            logger.error(f"S3 download error for {key}: {e}")
            raise StorageFailureError(f"S3 error: {str(e)}")

    async def delete_object(self, key: str) -> None:
        """Delete an object from S3"""
        async def _delete():
            async with self._client() as s3_client:
                await s3_client.delete_object(Bucket=self.bucket, Key=key)

        try:
            await self._with_timeout("delete", key, _delete())
            logger.info(f"Deleted object from S3: {key}")
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 delete error for {key}: {e}")
            raise StorageFailureError(f"S3 error: {str(e)}")

    async def list_keys(self, prefix: str = "") -> List[str]:
        """List object keys under a prefix"""
        async def _list():
            keys = []
            async with self._client() as s3_client:
                paginator = s3_client.get_paginator('list_objects_v2')
                async for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                    for obj in page.get('Contents', []):
                        keys.append(obj['Key'])
            return keys

        try:
            return await self._with_timeout("list", prefix, _list())
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 list objects error for {prefix}: {e}")
            raise StorageFailureError(f"S3 error: {str(e)}")

    async def presign_upload(self, key: str, content_type: str, ttl: Optional[int] = None) -> str:
        """Generate a pre-signed PUT URL"""
        ttl = ttl or settings.PRESIGNED_URL_TTL

        async def _presign():
            async with self._client() as s3_client:
                return await s3_client.generate_presigned_url(
                    'put_object',
                    Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
                    ExpiresIn=ttl,
                )

        try:
            url = await self._with_timeout("presign", key, _presign())
            logger.debug(f"Generated upload URL for {key} (content type {content_type})")
            return url
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 presign error for {key}: {e}")
            raise StorageFailureError(f"S3 error: {str(e)}")

    async def presign_download(self, key: str, ttl: Optional[int] = None, file_name: Optional[str] = None) -> str:
        """Generate a pre-signed GET URL that downloads as an attachment"""
        ttl = ttl or settings.PRESIGNED_URL_TTL
        disposition = f'attachment; filename="{quote(file_name)}"' if file_name else "attachment"

        async def _presign():
            async with self._client() as s3_client:
                return await s3_client.generate_presigned_url(
                    'get_object',
                    Params={
                        "Bucket": self.bucket,
                        "Key": key,
                        "ResponseContentDisposition": disposition,
                    },
                    ExpiresIn=ttl,
                )

        try:
            return await self._with_timeout("presign", key, _presign())
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 presign error for {key}: {e}")
            raise StorageFailureError(f"S3 error: {str(e)}")

    async def head_bucket(self) -> None:
        """Check the bucket exists and the credentials can reach it"""
        async def _head():
            async with self._client() as s3_client:
                await s3_client.head_bucket(Bucket=self.bucket)

        try:
            await self._with_timeout("head_bucket", self.bucket, _head())
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 bucket check failed for {self.bucket}: {e}")
            raise StorageFailureError(f"Unable to access bucket: {str(e)}")


class LocalStorageService(StorageService):
    """Local filesystem storage implementation"""

    kind = "local"

    def __init__(self, base_path: Optional[str] = None, timeout: Optional[float] = None):
        super().__init__(timeout)
        self.base_path = Path(base_path or settings.UPLOAD_FOLDER)
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Local storage initialized at: {self.base_path}")

    def _full_path(self, key: str) -> Path:
        key = normalize_path(key)
        if not key or any(part in ("", ".", "..") for part in key.split('/')):
            raise InvalidOperationError(f"Invalid object key: {key!r}")
        return self.base_path / key

    async def put_object(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        """Write bytes locally with aiofiles"""
        file_path = self._full_path(key)

        async def _write():
            file_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(file_path, "wb") as buffer:
                await buffer.write(data)

        try:
            await self._with_timeout("upload", key, _write())
            logger.info(f"Stored {len(data)} bytes locally: {key}")
        except OSError as e:
            logger.error(f"Local upload error for {key}: {e}")
            raise StorageFailureError(f"Error storing file: {str(e)}")

    async def get_object(self, key: str) -> bytes:
        file_path = self._full_path(key)
        if not file_path.is_file():
            raise NotFoundError(f"Object not found: {key}")

        async def _read():
            async with aiofiles.open(file_path, "rb") as f:
                return await f.read()

        try:
            return await self._with_timeout("download", key, _read())
        except OSError as e:
            logger.error(f"Local read error for {key}: {e}")
            raise StorageFailureError(f"Error reading file: {str(e)}")

    async def delete_object(self, key: str) -> None:
        file_path = self._full_path(key)
        try:
            if file_path.is_file():
                file_path.unlink()
                logger.info(f"Deleted file locally: {key}")
        except OSError as e:
            logger.error(f"Local delete error for {key}: {e}")
            raise StorageFailureError(f"Error deleting file: {str(e)}")

    async def list_keys(self, prefix: str = "") -> List[str]:
        keys = []
        if not self.base_path.exists():
            return keys
        for path in self.base_path.rglob('*'):
            if path.is_file():
                key = path.relative_to(self.base_path).as_posix()
                if key.startswith(prefix):
                    keys.append(key)
        return sorted(keys)

    async def presign_upload(self, key: str, content_type: str, ttl: Optional[int] = None) -> str:
        """Local storage has no signing; hand back the target file URI"""
        return self._full_path(key).resolve().as_uri()

    async def presign_download(self, key: str, ttl: Optional[int] = None, file_name: Optional[str] = None) -> str:
        file_path = self._full_path(key)
        if not file_path.is_file():
            raise NotFoundError(f"Object not found: {key}")
        return file_path.resolve().as_uri()

    async def head_bucket(self) -> None:
        if not self.base_path.is_dir() or not os.access(self.base_path, os.W_OK):
            raise StorageFailureError(f"Local storage directory is not writable: {self.base_path}")


# Factory function to get the appropriate storage service
_storage_service: Optional[StorageService] = None


def get_storage_service() -> StorageService:
    """Get the storage service for the configured backend (created once)"""
    global _storage_service
    if _storage_service is None:
        if settings.use_s3:
            _storage_service = S3StorageService()
        else:
            _storage_service = LocalStorageService()
    return _storage_service
