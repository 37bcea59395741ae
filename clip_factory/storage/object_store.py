from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import Any, Protocol

import boto3
from botocore.exceptions import ClientError

from clip_factory.config import StorageSettings

logger = logging.getLogger(__name__)

_MISSING_OBJECT_CODES = {"404", "NoSuchKey", "NotFound"}
_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class ObjectStore(Protocol):
    def put(self, key: str, data: bytes, content_type: str) -> str: ...

    def get(self, key: str) -> bytes: ...

    def exists(self, key: str) -> bool: ...

    def delete(self, key: str) -> None: ...


def generate_storage_key(
    user_id: str,
    clip_id: str,
    extension: str = "mp4",
    timestamp_ms: int | None = None,
) -> str:
    """Build ``videos/{user_id}/{clip_id}-{timestamp}.{ext}``; ids are made path safe."""

    stamp = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return f"videos/{_safe_segment(user_id)}/{_safe_segment(clip_id)}-{stamp}.{extension.lstrip('.')}"


def build_object_store(settings: StorageSettings) -> ObjectStore:
    backend = settings.backend.lower().strip()
    if backend == "local":
        return LocalObjectStore(settings.local_root, public_base_url=settings.public_base_url)
    if backend in {"s3", "r2"}:
        return S3ObjectStore(
            bucket=settings.bucket,
            endpoint_url=settings.endpoint_url,
            region=settings.region,
            public_base_url=settings.public_base_url,
        )
    raise ValueError(f"Unsupported storage backend '{settings.backend}'. Expected one of: local, r2, s3.")


class LocalObjectStore:
    """Filesystem-backed store for development and tests."""

    def __init__(self, root: str | Path, public_base_url: str | None = None) -> None:
        self.root = Path(root).expanduser().resolve()
        self.public_base_url = public_base_url

    def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug("Stored %d bytes (%s) at %s", len(data), content_type, path)
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        return path.as_uri()

    def get(self, key: str) -> bytes:
        path = self._path(key)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {key}")
        return path.read_bytes()

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root):
            raise ValueError(f"Storage key escapes the store root: {key}")
        return path


class S3ObjectStore:
    """S3 API store; works with Cloudflare R2 through ``endpoint_url``."""

    def __init__(
        self,
        bucket: str,
        *,
        endpoint_url: str | None = None,
        region: str = "auto",
        public_base_url: str | None = None,
        client: Any | None = None,
    ) -> None:
        self.bucket = bucket
        self.public_base_url = public_base_url or f"https://{bucket}.r2.dev"
        self.client = client or boto3.client("s3", endpoint_url=endpoint_url, region_name=region)

    def put(self, key: str, data: bytes, content_type: str) -> str:
        self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        return f"{self.public_base_url.rstrip('/')}/{key}"

    def get(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_OBJECT_CODES:
                raise FileNotFoundError(f"File not found: {key}") from exc
            raise
        return response["Body"].read()

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_OBJECT_CODES:
                return False
            raise
        return True

    def delete(self, key: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=key)


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _safe_segment(value: str) -> str:
    cleaned = _UNSAFE_KEY_CHARS.sub("_", value).strip("._")
    if not cleaned:
        raise ValueError(f"Storage key segment is empty after sanitizing: {value!r}")
    return cleaned
