"""
Durable blob storage for generated artifacts, reference uploads, shared
conversations and the analytics counter blob.

Two backends share one contract (put bytes under a key, get them back, issue a public URL):
- LocalArtifactStore writes under a directory served as static files
- S3ArtifactStore writes to a bucket (optionally fronted by a CDN)
"""
import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from core.config import settings
from core.exceptions import StorageError

logger = logging.getLogger(__name__)

_META_SUFFIX = ".meta.json"


@dataclass(frozen=True)
class StoredObject:
    data: bytes
    content_type: str


def make_artifact_filename(label: str, extension: str, prefix: Optional[str] = "jewelry") -> str:
    """
    Unique object name for one artifact: label + timestamp + random suffix.

    e.g. ``jewelry-catalog-1718000000000-3f9a1c2b.png``
    """
    millis = int(time.time() * 1000)
    stem = f"{prefix}-{label}" if prefix else label
    return f"{stem}-{millis}-{uuid.uuid4().hex[:8]}.{extension.lstrip('.')}"


class ArtifactStore:
    """Key -> bytes storage with public URL issuance"""

    backend = "abstract"

    async def put(self, data: bytes, key: str, content_type: str) -> str:
        """Store bytes under key and return the public URL"""
        raise NotImplementedError

    async def get(self, key: str) -> Optional[StoredObject]:
        """Return the stored bytes and content type, or None if the key is missing"""
        raise NotImplementedError

    def public_url(self, key: str) -> str:
        raise NotImplementedError


class LocalArtifactStore(ArtifactStore):
    """Filesystem store; content type is kept in a sidecar metadata file"""

    backend = "local"

    def __init__(self, root: str, public_base_url: str):
        self.root = Path(root).resolve()
        self.public_base_url = public_base_url.rstrip("/")

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if path == self.root or self.root not in path.parents:
            raise StorageError(f"Invalid storage key: {key}", details={"key": key})
        return path

    def _write(self, path: Path, data: bytes, content_type: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        meta_path = path.with_name(path.name + _META_SUFFIX)
        meta_path.write_text(json.dumps({"contentType": content_type}))

    def _read(self, path: Path) -> Optional[StoredObject]:
        if not path.is_file():
            return None
        meta_path = path.with_name(path.name + _META_SUFFIX)
        content_type = "application/octet-stream"
        if meta_path.is_file():
            content_type = json.loads(meta_path.read_text()).get("contentType", content_type)
        return StoredObject(data=path.read_bytes(), content_type=content_type)

    async def put(self, data: bytes, key: str, content_type: str) -> str:
        path = self._path_for(key)
        try:
            await asyncio.to_thread(self._write, path, data, content_type)
        except OSError as e:
            logger.error(f"Local artifact write failed for {key}: {e}")
            raise StorageError(f"Failed to store {key}: {e}", details={"key": key}) from e

        logger.info(f"Stored {key} ({len(data)} bytes, {content_type}) locally")
        return self.public_url(key)

    async def get(self, key: str) -> Optional[StoredObject]:
        path = self._path_for(key)
        try:
            return await asyncio.to_thread(self._read, path)
        except (OSError, ValueError) as e:
            logger.error(f"Local artifact read failed for {key}: {e}")
            raise StorageError(f"Failed to read {key}: {e}", details={"key": key}) from e

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"


class S3ArtifactStore(ArtifactStore):
    """S3 bucket store; public URLs use the CDN base when configured"""

    backend = "s3"

    def __init__(
        self,
        bucket: str,
        region: str = "",
        cdn_base_url: str = "",
        folder_prefix: str = "",
        client=None,
    ):
        if not bucket:
            raise StorageError("AWS_S3_BUCKET not set")
        self.bucket = bucket
        self.region = region
        self.cdn_base_url = cdn_base_url.rstrip("/")
        self.folder_prefix = folder_prefix
        self.client = client or boto3.client("s3", region_name=region or None)

    def _object_key(self, key: str) -> str:
        return f"{self.folder_prefix}{key}"

    async def put(self, data: bytes, key: str, content_type: str) -> str:
        object_key = self._object_key(key)
        start = time.perf_counter()
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=object_key,
                Body=data,
                ContentType=content_type,
                CacheControl="public, max-age=31536000",
            )
        except (BotoCoreError, ClientError) as e:
            logger.exception(f"S3 put_object failed (bucket={self.bucket} key={object_key})")
            raise StorageError(f"Failed to store {key}: {e}", details={"key": key}) from e

        logger.info(
            f"S3 put_object key={object_key} size={len(data)} latency={(time.perf_counter() - start) * 1000:.1f}ms"
        )
        return self.public_url(key)

    async def get(self, key: str) -> Optional[StoredObject]:
        object_key = self._object_key(key)
        try:
            response = await asyncio.to_thread(self.client.get_object, Bucket=self.bucket, Key=object_key)
            body = await asyncio.to_thread(response["Body"].read)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return None
            logger.error(f"S3 get_object failed (bucket={self.bucket} key={object_key}): {e}")
            raise StorageError(f"Failed to read {key}: {e}", details={"key": key}) from e
        except BotoCoreError as e:
            logger.error(f"S3 get_object failed (bucket={self.bucket} key={object_key}): {e}")
            raise StorageError(f"Failed to read {key}: {e}", details={"key": key}) from e

        return StoredObject(data=body, content_type=response.get("ContentType", "application/octet-stream"))

    def public_url(self, key: str) -> str:
        object_key = self._object_key(key)
        if self.cdn_base_url:
            return f"{self.cdn_base_url}/{object_key}"
        if self.region:
            return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{object_key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{object_key}"


_artifact_store: Optional[ArtifactStore] = None


def get_artifact_store() -> ArtifactStore:
    """Get or create the configured artifact store."""
    global _artifact_store
    if _artifact_store is None:
        if settings.artifact_store_backend == "s3":
            _artifact_store = S3ArtifactStore(
                bucket=settings.aws_s3_bucket,
                region=settings.aws_s3_region,
                cdn_base_url=settings.aws_s3_cdn_base_url,
                folder_prefix=settings.aws_s3_folder_prefix,
            )
        else:
            _artifact_store = LocalArtifactStore(
                root=settings.artifact_local_path,
                public_base_url=settings.artifact_public_base_url,
            )
        logger.info(f"Artifact store initialized ({_artifact_store.backend})")
    return _artifact_store
