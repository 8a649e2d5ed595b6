# builder_api/app/services/icon_storage.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

# head_object reports a missing key with a bare HTTP status code
MISSING_OBJECT_CODES = {"404", "NoSuchKey", "NotFound"}


class IconStorageError(Exception):
    pass


def normalize_key(key: str) -> str:
    """Reject absolute paths and traversal; return a clean posix key."""
    raw = (key or "").replace("\\", "/").strip()
    if not raw:
        raise IconStorageError("Storage key is required")
    if raw.startswith("/"):
        raise IconStorageError("Absolute storage keys are not allowed")

    parts: List[str] = []
    for part in raw.split("/"):
        if not part or part == ".":
            continue
        if part == "..":
            raise IconStorageError("Path traversal is not allowed")
        parts.append(part)
    if not parts:
        raise IconStorageError("Storage key is required")
    return "/".join(parts)


class IconStorage:
    """Object storage for uploaded app icons."""

    backend = "base"

    def upload(self, key: str, data: bytes, *, content_type: str, upsert: bool = True) -> str:
        raise NotImplementedError

    def public_url(self, key: str) -> str:
        raise NotImplementedError


class LocalIconStorage(IconStorage):
    """
    Files under `root`, served by the app's StaticFiles mount at `/icons`.
    Content type is implied by the file extension when served.
    """

    backend = "local"

    def __init__(self, root: Path, public_base_url: str, mount_path: str = "/icons"):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")
        self.mount_path = "/" + mount_path.strip("/")

    def _path_for(self, key: str) -> Path:
        return self.root / normalize_key(key)

    def upload(self, key: str, data: bytes, *, content_type: str, upsert: bool = True) -> str:
        path = self._path_for(key)
        if path.exists() and not upsert:
            raise IconStorageError(f"Object already exists: {key}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_bytes(data)
            tmp.replace(path)
        except OSError as exc:
            raise IconStorageError(f"Failed to write `{key}`: {exc}") from exc
        logger.debug("stored %s (%d bytes, %s) at %s", key, len(data), content_type, path)
        return normalize_key(key)

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}{self.mount_path}/{normalize_key(key)}"


@dataclass(frozen=True)
class S3IconStorageConfig:
    bucket: str
    region: Optional[str] = None
    endpoint: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    public_base_url: Optional[str] = None


class S3IconStorage(IconStorage):
    backend = "s3"

    def __init__(self, config: S3IconStorageConfig, client=None):
        if not config.bucket:
            raise IconStorageError("An S3 bucket is required for icon storage")
        self._config = config
        self._client = client

    def _get_client(self):
        if self._client is not None:
            return self._client
        kwargs = {
            "service_name": "s3",
            "region_name": self._config.region,
            "endpoint_url": self._config.endpoint,
        }
        if self._config.access_key:
            kwargs["aws_access_key_id"] = self._config.access_key
        if self._config.secret_key:
            kwargs["aws_secret_access_key"] = self._config.secret_key
        self._client = boto3.client(**kwargs)
        return self._client

    def _exists(self, key: str) -> bool:
        try:
            self._get_client().head_object(Bucket=self._config.bucket, Key=key)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in MISSING_OBJECT_CODES:
                return False
            raise IconStorageError(f"Failed to check `{key}`: {exc}") from exc
        except Exception as exc:
            raise IconStorageError(f"Failed to check `{key}`: {exc}") from exc
        return True

    def upload(self, key: str, data: bytes, *, content_type: str, upsert: bool = True) -> str:
        key = normalize_key(key)
        if not upsert and self._exists(key):
            raise IconStorageError(f"Object already exists: {key}")
        try:
            self._get_client().put_object(
                Bucket=self._config.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except Exception as exc:
            raise IconStorageError(f"Failed to upload `{key}`: {exc}") from exc
        return key

    def public_url(self, key: str) -> str:
        key = normalize_key(key)
        cfg = self._config
        if cfg.public_base_url:
            return f"{cfg.public_base_url.rstrip('/')}/{key}"
        if cfg.endpoint:
            return f"{cfg.endpoint.rstrip('/')}/{cfg.bucket}/{key}"
        if cfg.region:
            return f"https://{cfg.bucket}.s3.{cfg.region}.amazonaws.com/{key}"
        return f"https://{cfg.bucket}.s3.amazonaws.com/{key}"
