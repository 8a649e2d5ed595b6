# builder_api/app/api/deps.py
from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from builder_api.app.core.config import Settings, get_settings
from builder_api.app.core.redis_conn import get_async_redis
from builder_api.app.integrations.github.client import GitHubDispatcher
from builder_api.app.services.build_service import BuildRequestService
from builder_api.app.services.build_store import BuildStore
from builder_api.app.services.icon_storage import (
    IconStorage,
    LocalIconStorage,
    S3IconStorage,
    S3IconStorageConfig,
)

# Long-lived collaborators: built once per process, injected per request.


@lru_cache
def get_build_store() -> BuildStore:
    s = get_settings()
    return BuildStore(get_async_redis(), prefix=s.build_key_prefix)


def make_icon_storage(s: Settings) -> IconStorage:
    backend = (s.icon_storage_backend or "local").strip().lower()
    if backend == "s3":
        return S3IconStorage(
            S3IconStorageConfig(
                bucket=s.icon_s3_bucket.strip(),
                region=s.icon_s3_region.strip() or None,
                endpoint=s.icon_s3_endpoint.strip() or None,
                access_key=s.icon_s3_access_key.strip() or None,
                secret_key=s.icon_s3_secret_key.strip() or None,
                public_base_url=s.icon_public_base_url.strip() or None,
            )
        )
    if backend == "local":
        return LocalIconStorage(s.icon_storage_root, s.public_base_url)
    raise ValueError(f"unknown icon_storage_backend: {s.icon_storage_backend!r}")


@lru_cache
def get_icon_storage() -> IconStorage:
    return make_icon_storage(get_settings())


@lru_cache
def get_dispatcher() -> GitHubDispatcher:
    s = get_settings()
    return GitHubDispatcher(
        s.dispatch_url,
        s.github_token,
        event_type=s.dispatch_event_type,
        timeout=s.dispatch_timeout_seconds,
    )


def get_build_service(
    store: BuildStore = Depends(get_build_store),
    storage: IconStorage = Depends(get_icon_storage),
    dispatcher: GitHubDispatcher = Depends(get_dispatcher),
    settings: Settings = Depends(get_settings),
) -> BuildRequestService:
    return BuildRequestService(store, storage, dispatcher, settings)
