"""
DocSpace Blob Store — key → bytes object storage.

Two backends share one async interface:
- FilesystemBlobStore: keys map to files under a root directory (dev, tests)
- S3BlobStore: any S3-compatible service (MinIO, AWS) via boto3

Blocking I/O runs in the default executor so request handling is never
stalled by a slow disk or object store.

Keys are "/"-separated paths such as ``users/Alice/Docs/report.docx``.
The store has no native folders; listing is by key prefix.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar
from urllib.parse import quote

from docspace.engine.config import StorageConfig
from docspace.engine.errors import BlobNotFoundError, BlobStoreError, ConfigError

logger = logging.getLogger("docspace.storage.blob")

T = TypeVar("T")

FOLDER_MARKER = ".folder"
FOLDER_MARKER_CONTENT_TYPE = "application/x-directory"
STAGING_PREFIX = ".~"
STAGING_SUFFIX = ".partial"


def _is_staging(name: str) -> bool:
    return name.startswith(STAGING_PREFIX) and name.endswith(STAGING_SUFFIX)


class BlobStore:
    """
    Async key/blob store interface.

    Subclasses implement the ``_sync`` methods; the public coroutines run them
    in the default executor and translate backend errors into BlobStoreError.
    """

    backend_name = "abstract"

    async def _run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        await self._run(self._put_sync, key, data, content_type, metadata)
        logger.debug(f"put {self.backend_name}:{key} ({len(data)} bytes)")

    async def get(self, key: str) -> bytes:
        return await self._run(self._get_sync, key)

    async def get_range(self, key: str, start: int, end: int) -> bytes:
        """Read bytes ``start``..``end`` inclusive."""
        return await self._run(self._get_range_sync, key, start, end)

    async def size(self, key: str) -> int:
        return await self._run(self._size_sync, key)

    async def delete(self, key: str) -> None:
        await self._run(self._delete_sync, key)

    async def delete_many(self, keys: Iterable[str]) -> List[str]:
        """Delete several keys. Returns the keys that could not be deleted."""
        keys = list(keys)
        if not keys:
            return []
        return await self._run(self._delete_many_sync, keys)

    async def list_prefix(self, prefix: str) -> List[str]:
        return await self._run(self._list_prefix_sync, prefix)

    async def presigned_url(
        self, key: str, expires_in: int, filename: Optional[str] = None
    ) -> Optional[str]:
        """Time-limited direct download URL, or None when the backend has none."""
        return None

    async def ping(self) -> bool:
        return await self._run(self._ping_sync)

    # -- backend hooks -----------------------------------------------------

    def _put_sync(self, key, data, content_type, metadata) -> None:
        raise NotImplementedError

    def _get_sync(self, key: str) -> bytes:
        raise NotImplementedError

    def _get_range_sync(self, key: str, start: int, end: int) -> bytes:
        raise NotImplementedError

    def _size_sync(self, key: str) -> int:
        raise NotImplementedError

    def _delete_sync(self, key: str) -> None:
        raise NotImplementedError

    def _delete_many_sync(self, keys: List[str]) -> List[str]:
        failed = []
        for key in keys:
            try:
                self._delete_sync(key)
            except BlobStoreError as e:
                logger.warning(f"Could not delete {key}: {e}")
                failed.append(key)
        return failed

    def _list_prefix_sync(self, prefix: str) -> List[str]:
        raise NotImplementedError

    def _ping_sync(self) -> bool:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Filesystem backend
# ---------------------------------------------------------------------------

class FilesystemBlobStore(BlobStore):
    """Stores each key as a file below ``root``."""

    backend_name = "filesystem"

    def __init__(self, root: str):
        self._root = Path(root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, key: str) -> Path:
        path = (self._root / key.lstrip("/")).resolve()
        if path != self._root and self._root not in path.parents:
            raise BlobStoreError(f"Key escapes blob root: {key!r}", key=key)
        return path

    def _existing(self, key: str) -> Path:
        path = self._path(key)
        if not path.is_file():
            raise BlobNotFoundError(f"No blob at {key!r}", key=key)
        return path

    def _put_sync(self, key, data, content_type, metadata) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, staging = tempfile.mkstemp(dir=path.parent, prefix=STAGING_PREFIX, suffix=STAGING_SUFFIX)
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(staging, path)
            except BaseException:
                Path(staging).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise BlobStoreError(f"Write failed for {key!r}: {e}", key=key, cause=e) from e

    def _get_sync(self, key: str) -> bytes:
        path = self._existing(key)
        try:
            return path.read_bytes()
        except OSError as e:
            raise BlobStoreError(f"Read failed for {key!r}: {e}", key=key, cause=e) from e

    def _get_range_sync(self, key: str, start: int, end: int) -> bytes:
        path = self._existing(key)
        try:
            with open(path, "rb") as f:
                f.seek(start)
                return f.read(end - start + 1)
        except OSError as e:
            raise BlobStoreError(f"Range read failed for {key!r}: {e}", key=key, cause=e) from e

    def _size_sync(self, key: str) -> int:
        return self._existing(key).stat().st_size

    def _delete_sync(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise BlobStoreError(f"Delete failed for {key!r}: {e}", key=key, cause=e) from e

    def _list_prefix_sync(self, prefix: str) -> List[str]:
        keys = []
        for path in self._root.rglob("*"):
            if path.is_file() and not _is_staging(path.name):
                key = path.relative_to(self._root).as_posix()
                if key.startswith(prefix):
                    keys.append(key)
        return sorted(keys)

    def _ping_sync(self) -> bool:
        return self._root.is_dir()


# ---------------------------------------------------------------------------
# S3 backend
# ---------------------------------------------------------------------------

class S3BlobStore(BlobStore):
    """S3-compatible object storage (MinIO, AWS) in a single bucket."""

    backend_name = "s3"

    # delete_objects accepts at most 1000 keys per request
    DELETE_BATCH_SIZE = 1000

    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = None,
        region_name: str = "us-east-1",
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        client: Any = None,
    ):
        self.bucket = bucket
        if client is None:
            import boto3

            s3_config: Dict[str, Any] = {"region_name": region_name}
            if endpoint_url:
                s3_config["endpoint_url"] = endpoint_url
            if access_key:
                s3_config["aws_access_key_id"] = access_key
                if secret_key:
                    s3_config["aws_secret_access_key"] = secret_key
            client = boto3.client("s3", **s3_config)
        self.s3_client = client
        logger.debug(f"Initialized S3BlobStore for bucket {bucket}")

    @staticmethod
    def _error_code(e: Exception) -> str:
        response = getattr(e, "response", None) or {}
        return str(response.get("Error", {}).get("Code", ""))

    def _wrap(self, key: str, action: str, e: Exception) -> BlobStoreError:
        code = self._error_code(e)
        if code in ("NoSuchKey", "404", "NotFound"):
            return BlobNotFoundError(f"No blob at {key!r}", key=key, cause=e)
        return BlobStoreError(f"S3 {action} failed for {key!r}: {e}", key=key, cause=e)

    def _put_sync(self, key, data, content_type, metadata) -> None:
        put_args: Dict[str, Any] = {"Bucket": self.bucket, "Key": key, "Body": data}
        if content_type:
            put_args["ContentType"] = content_type
        if metadata:
            put_args["Metadata"] = {k: quote(v) for k, v in metadata.items()}
        try:
            self.s3_client.put_object(**put_args)
        except Exception as e:
            raise self._wrap(key, "put", e) from e

    def _get_sync(self, key: str) -> bytes:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except Exception as e:
            raise self._wrap(key, "get", e) from e

    def _get_range_sync(self, key: str, start: int, end: int) -> bytes:
        try:
            response = self.s3_client.get_object(
                Bucket=self.bucket, Key=key, Range=f"bytes={start}-{end}"
            )
            return response["Body"].read()
        except Exception as e:
            raise self._wrap(key, "range get", e) from e

    def _size_sync(self, key: str) -> int:
        try:
            response = self.s3_client.head_object(Bucket=self.bucket, Key=key)
            return int(response["ContentLength"])
        except Exception as e:
            raise self._wrap(key, "head", e) from e

    def _delete_sync(self, key: str) -> None:
        try:
            self.s3_client.delete_object(Bucket=self.bucket, Key=key)
        except Exception as e:
            raise self._wrap(key, "delete", e) from e

    def _delete_many_sync(self, keys: List[str]) -> List[str]:
        failed: List[str] = []
        for i in range(0, len(keys), self.DELETE_BATCH_SIZE):
            batch = keys[i:i + self.DELETE_BATCH_SIZE]
            try:
                response = self.s3_client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
                )
            except Exception as e:
                logger.warning(f"S3 bulk delete of {len(batch)} keys failed: {e}")
                failed.extend(batch)
                continue
            for err in response.get("Errors", []):
                failed.append(err.get("Key", ""))
        return failed

    def _list_prefix_sync(self, prefix: str) -> List[str]:
        keys: List[str] = []
        try:
            paginator = self.s3_client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
        except Exception as e:
            raise BlobStoreError(f"S3 list failed for prefix {prefix!r}: {e}", key=prefix, cause=e) from e
        return keys

    def _ping_sync(self) -> bool:
        try:
            self.s3_client.head_bucket(Bucket=self.bucket)
        except Exception as e:
            raise BlobStoreError(f"S3 bucket {self.bucket!r} unreachable: {e}", cause=e) from e
        return True

    def ensure_bucket(self) -> None:
        """Create the bucket if it does not exist yet (MinIO dev setups)."""
        try:
            self.s3_client.head_bucket(Bucket=self.bucket)
        except Exception:
            self.s3_client.create_bucket(Bucket=self.bucket)
            logger.info(f"Created bucket {self.bucket!r}")

    async def presigned_url(
        self, key: str, expires_in: int, filename: Optional[str] = None
    ) -> Optional[str]:
        params: Dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        if filename:
            params["ResponseContentDisposition"] = (
                f"attachment; filename*=UTF-8''{quote(filename)}"
            )
        try:
            return await self._run(
                self.s3_client.generate_presigned_url,
                "get_object",
                Params=params,
                ExpiresIn=expires_in,
            )
        except Exception as e:
            raise self._wrap(key, "presign", e) from e


def create_blob_store(config: StorageConfig) -> BlobStore:
    """Build the blob store described by the ``storage`` config section."""
    if config.backend == "filesystem":
        return FilesystemBlobStore(config.root)
    if config.backend == "s3":
        return S3BlobStore(
            bucket=config.bucket,
            endpoint_url=config.endpoint_url,
            region_name=config.region,
            access_key=config.access_key,
            secret_key=config.secret_key,
        )
    raise ConfigError(f"Unknown storage backend: {config.backend!r}")
