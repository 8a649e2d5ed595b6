from __future__ import annotations

import pytest
from botocore.exceptions import ClientError

from builder_api.app.api.deps import make_icon_storage
from builder_api.app.core.config import Settings
from builder_api.app.services.icon_storage import (
    IconStorageError,
    LocalIconStorage,
    S3IconStorage,
    S3IconStorageConfig,
    normalize_key,
)


class FakeS3:
    def __init__(self):
        self.objects = {}

    def put_object(self, Bucket, Key, Body, ContentType):
        self.objects[(Bucket, Key)] = (Body, ContentType)
        return {}

    def head_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        return {}


def test_local_upload_overwrites_and_resolves_url(tmp_path):
    storage = LocalIconStorage(tmp_path, "https://builder.example.com/")
    storage.upload("app_1/icon.png", b"one", content_type="image/png")
    storage.upload("app_1/icon.png", b"two", content_type="image/png", upsert=True)

    assert (tmp_path / "app_1" / "icon.png").read_bytes() == b"two"
    assert storage.public_url("app_1/icon.png") == "https://builder.example.com/icons/app_1/icon.png"


def test_local_upload_without_upsert_refuses_existing(tmp_path):
    storage = LocalIconStorage(tmp_path, "http://x")
    storage.upload("app_1/icon.png", b"one", content_type="image/png", upsert=False)
    with pytest.raises(IconStorageError):
        storage.upload("app_1/icon.png", b"two", content_type="image/png", upsert=False)


@pytest.mark.parametrize("key", ["", "/etc/passwd", "../outside.png", "a/../../b"])
def test_keys_cannot_escape(key):
    with pytest.raises(IconStorageError):
        normalize_key(key)


def test_normalize_key_collapses_noise():
    assert normalize_key("app_1//./icon.png") == "app_1/icon.png"


def test_s3_upload_sets_content_type():
    s3 = FakeS3()
    storage = S3IconStorage(S3IconStorageConfig(bucket="app-icons", region="eu-west-1"), client=s3)
    storage.upload("app_1/icon.png", b"png", content_type="image/png")

    assert s3.objects[("app-icons", "app_1/icon.png")] == (b"png", "image/png")
    assert storage.public_url("app_1/icon.png") == "https://app-icons.s3.eu-west-1.amazonaws.com/app_1/icon.png"

    with pytest.raises(IconStorageError):
        storage.upload("app_1/icon.png", b"png", content_type="image/png", upsert=False)


def test_s3_public_url_variants():
    key = "app_1/icon.png"
    cdn = S3IconStorage(S3IconStorageConfig(bucket="b", public_base_url="https://cdn.example.com/icons/"), client=FakeS3())
    assert cdn.public_url(key) == "https://cdn.example.com/icons/app_1/icon.png"
    minio = S3IconStorage(S3IconStorageConfig(bucket="b", endpoint="http://minio:9000"), client=FakeS3())
    assert minio.public_url(key) == "http://minio:9000/b/app_1/icon.png"


def test_s3_upload_error_is_wrapped():
    class Broken(FakeS3):
        def put_object(self, **kwargs):
            raise RuntimeError("AccessDenied")

    storage = S3IconStorage(S3IconStorageConfig(bucket="b"), client=Broken())
    with pytest.raises(IconStorageError, match="AccessDenied"):
        storage.upload("app_1/icon.png", b"png", content_type="image/png")


def test_backend_selection(tmp_path):
    local = make_icon_storage(Settings(icon_storage_backend="local", icon_storage_root=tmp_path))
    assert isinstance(local, LocalIconStorage)
    s3 = make_icon_storage(Settings(icon_storage_backend="S3", icon_s3_bucket="icons"))
    assert isinstance(s3, S3IconStorage)
    with pytest.raises(ValueError):
        make_icon_storage(Settings(icon_storage_backend="ftp"))


def test_s3_head_errors_other_than_missing_are_raised():
    class Forbidden(FakeS3):
        def head_object(self, Bucket, Key):
            raise ClientError({"Error": {"Code": "403", "Message": "Forbidden"}}, "HeadObject")

    s3 = Forbidden()
    storage = S3IconStorage(S3IconStorageConfig(bucket="b"), client=s3)
    with pytest.raises(IconStorageError, match="Failed to check"):
        storage.upload("app_1/icon.png", b"png", content_type="image/png", upsert=False)
    assert s3.objects == {}
