from __future__ import annotations

import io

import pytest
from botocore.exceptions import ClientError

from clip_factory.config import StorageSettings
from clip_factory.storage.object_store import (
    LocalObjectStore,
    S3ObjectStore,
    build_object_store,
    generate_storage_key,
)


class _FakeS3Client:
    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], tuple[bytes, str]] = {}

    def put_object(self, Bucket, Key, Body, ContentType):
        self.objects[(Bucket, Key)] = (Body, ContentType)

    def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey"}}, "GetObject")
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)][0])}

    def head_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "404"}}, "HeadObject")
        return {}

    def delete_object(self, Bucket, Key):
        self.objects.pop((Bucket, Key), None)


def test_generate_storage_key_layout() -> None:
    assert generate_storage_key("user-1", "clip_7", "mp4", timestamp_ms=1700000000000) == (
        "videos/user-1/clip_7-1700000000000.mp4"
    )


def test_generate_storage_key_sanitizes_segments() -> None:
    assert generate_storage_key("../evil user", "a/b", ".webm", timestamp_ms=5) == "videos/evil_user/a_b-5.webm"

    with pytest.raises(ValueError):
        generate_storage_key("///", "clip", timestamp_ms=5)


def test_local_store_round_trip(tmp_path) -> None:
    store = LocalObjectStore(tmp_path, public_base_url="https://cdn.example.com/")

    url = store.put("videos/u/clip-1.mp4", b"bytes", "video/mp4")

    assert url == "https://cdn.example.com/videos/u/clip-1.mp4"
    assert store.exists("videos/u/clip-1.mp4")
    assert store.get("videos/u/clip-1.mp4") == b"bytes"

    store.delete("videos/u/clip-1.mp4")
    assert not store.exists("videos/u/clip-1.mp4")
    with pytest.raises(FileNotFoundError):
        store.get("videos/u/clip-1.mp4")


def test_local_store_rejects_keys_outside_root(tmp_path) -> None:
    store = LocalObjectStore(tmp_path / "root")

    with pytest.raises(ValueError, match="escapes the store root"):
        store.put("../outside.mp4", b"x", "video/mp4")


def test_s3_store_uses_client_and_public_url() -> None:
    client = _FakeS3Client()
    store = S3ObjectStore("clips", client=client)

    url = store.put("videos/u/c-1.mp4", b"data", "video/mp4")

    assert url == "https://clips.r2.dev/videos/u/c-1.mp4"
    assert client.objects[("clips", "videos/u/c-1.mp4")] == (b"data", "video/mp4")
    assert store.exists("videos/u/c-1.mp4")
    assert store.get("videos/u/c-1.mp4") == b"data"

    store.delete("videos/u/c-1.mp4")
    assert not store.exists("videos/u/c-1.mp4")
    with pytest.raises(FileNotFoundError):
        store.get("videos/u/c-1.mp4")


def test_s3_store_propagates_unexpected_errors() -> None:
    class _DeniedClient(_FakeS3Client):
        def head_object(self, Bucket, Key):
            raise ClientError({"Error": {"Code": "AccessDenied"}}, "HeadObject")

    store = S3ObjectStore("clips", client=_DeniedClient())

    with pytest.raises(ClientError):
        store.exists("videos/u/c-1.mp4")


def test_build_object_store_selects_backend(tmp_path) -> None:
    local = build_object_store(StorageSettings(backend="local", local_root=tmp_path))

    assert isinstance(local, LocalObjectStore)
    with pytest.raises(ValueError, match="Unsupported storage backend"):
        build_object_store(StorageSettings(backend="ftp"))
