"""Object storage for raw and corrected product images."""

import asyncio
from abc import ABC, abstractmethod
from urllib.parse import quote

import aioboto3
from botocore.exceptions import ClientError, EndpointConnectionError

from marketplace_agent.core.exceptions import ToolError
from marketplace_agent.utils.logging import get_logger


logger = get_logger(__name__)

_TRANSIENT_CODES = {
    "SlowDown",
    "ServiceUnavailable",
    "InternalError",
    "RequestTimeout",
    "ThrottlingException",
}


class ObjectStorage(ABC):
    """Minimal object storage interface."""

    @abstractmethod
    async def upload(self, bucket: str, key: str, data: bytes, content_type: str) -> str | None:
        """
        Store an object.

        Returns:
            The stored key, or None if storage refused the object
        """
        ...

    @abstractmethod
    async def presign(self, bucket: str, key: str, ttl: int) -> str:
        """Time-limited GET URL for an object."""
        ...

    @abstractmethod
    async def download(self, bucket: str, key: str) -> bytes | None:
        """Object bytes, or None if the key does not exist."""
        ...


class S3ObjectStorage(ObjectStorage):
    """
    S3 storage via aioboto3.

    Transient S3 failures raise UPSTREAM_UNAVAILABLE tool errors; access
    and validation failures make ``upload`` return None.
    """

    def __init__(
        self,
        region_name: str,
        profile_name: str | None = None,
        aws_access_key_id: str | None = None,
        aws_secret_access_key: str | None = None,
        endpoint_url: str | None = None,
    ):
        self._region_name = region_name
        self._endpoint_url = endpoint_url
        self._session_kwargs: dict = {}
        if profile_name:
            self._session_kwargs["profile_name"] = profile_name
        if aws_access_key_id and aws_secret_access_key:
            self._session_kwargs["aws_access_key_id"] = aws_access_key_id
            self._session_kwargs["aws_secret_access_key"] = aws_secret_access_key

    def _client(self):
        session = aioboto3.Session(**self._session_kwargs)
        return session.client("s3", region_name=self._region_name, endpoint_url=self._endpoint_url)

    @staticmethod
    def _is_transient(error: ClientError) -> bool:
        code = error.response.get("Error", {}).get("Code", "")
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        return code in _TRANSIENT_CODES or status >= 500

    async def upload(self, bucket: str, key: str, data: bytes, content_type: str) -> str | None:
        try:
            async with self._client() as s3:
                await s3.put_object(Bucket=bucket, Key=key, Body=data, ContentType=content_type)
        except EndpointConnectionError as e:
            raise ToolError.unavailable(f"S3 unreachable: {e}", cause=e) from e
        except ClientError as e:
            if self._is_transient(e):
                raise ToolError.unavailable(f"S3 upload failed: {e}", cause=e) from e
            logger.warning("S3 refused upload", bucket=bucket, key=key, error=str(e))
            return None

        logger.debug("Uploaded object", bucket=bucket, key=key, size=len(data))
        return key

    async def presign(self, bucket: str, key: str, ttl: int) -> str:
        async with self._client() as s3:
            return await s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=ttl,
            )

    async def download(self, bucket: str, key: str) -> bytes | None:
        try:
            async with self._client() as s3:
                response = await s3.get_object(Bucket=bucket, Key=key)
                async with response["Body"] as stream:
                    return await stream.read()
        except EndpointConnectionError as e:
            raise ToolError.unavailable(f"S3 unreachable: {e}", cause=e) from e
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return None
            if self._is_transient(e):
                raise ToolError.unavailable(f"S3 download failed: {e}", cause=e) from e
            raise ToolError.rejected(f"S3 download refused: {e}", cause=e) from e


class InMemoryObjectStorage(ObjectStorage):
    """Dictionary-backed storage for tests and local development."""

    def __init__(self, base_url: str = "memory://storage"):
        self._objects: dict[tuple[str, str], tuple[bytes, str]] = {}
        self._base_url = base_url.rstrip("/")
        self._lock = asyncio.Lock()

    async def upload(self, bucket: str, key: str, data: bytes, content_type: str) -> str | None:
        async with self._lock:
            self._objects[(bucket, key)] = (bytes(data), content_type)
        return key

    async def presign(self, bucket: str, key: str, ttl: int) -> str:
        return f"{self._base_url}/{bucket}/{quote(key)}?expires={ttl}"

    async def download(self, bucket: str, key: str) -> bytes | None:
        entry = self._objects.get((bucket, key))
        return entry[0] if entry else None

    def keys(self, bucket: str) -> list[str]:
        return [key for stored_bucket, key in self._objects if stored_bucket == bucket]
