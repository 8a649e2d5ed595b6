from __future__ import annotations

import json
from typing import Dict, List

import httpx
import pytest

from builder_api.app.api.deps import get_build_store, get_dispatcher, get_icon_storage
from builder_api.app.core.config import Settings, get_settings
from builder_api.app.integrations.github.client import GitHubDispatcher
from builder_api.app.services.build_store import BuildStore
from builder_api.app.services.icon_storage import LocalIconStorage
from builder_api.main import app


class FakeRedisHashes:
    """The handful of async hash commands BuildStore uses, kept in dicts."""

    def __init__(self):
        self.hashes: Dict[str, Dict[str, str]] = {}

    async def hget(self, key, field):
        return self.hashes.get(key, {}).get(field)

    async def hset(self, key, field, value):
        h = self.hashes.setdefault(key, {})
        created = field not in h
        h[field] = value
        return int(created)

    async def hsetnx(self, key, field, value):
        h = self.hashes.setdefault(key, {})
        if field in h:
            return False
        h[field] = value
        return True

    async def hdel(self, key, *fields):
        h = self.hashes.get(key, {})
        return sum(1 for f in fields if h.pop(f, None) is not None)


class DispatchRecorder:
    """httpx transport handler that records dispatch calls and answers with `status`."""

    def __init__(self, status: int = 204):
        self.status = status
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status >= 400:
            return httpx.Response(self.status, json={"message": "Not Found"})
        return httpx.Response(self.status)

    @property
    def payloads(self) -> List[dict]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def fake_redis() -> FakeRedisHashes:
    return FakeRedisHashes()


@pytest.fixture
def store(fake_redis) -> BuildStore:
    return BuildStore(fake_redis, prefix="test-builds")


@pytest.fixture
def icon_storage(tmp_path) -> LocalIconStorage:
    return LocalIconStorage(tmp_path / "icons", "http://testserver")


@pytest.fixture
def dispatch() -> DispatchRecorder:
    return DispatchRecorder()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(github_repo="acme/app-builds", github_token="t0ken")


@pytest.fixture
def overrides(store, icon_storage, dispatch, test_settings):
    """Route the app's collaborators to in-process fakes for one test."""
    dispatcher = GitHubDispatcher(
        test_settings.dispatch_url,
        test_settings.github_token,
        transport=httpx.MockTransport(dispatch),
    )
    app.dependency_overrides[get_build_store] = lambda: store
    app.dependency_overrides[get_icon_storage] = lambda: icon_storage
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_settings] = lambda: test_settings
    yield app.dependency_overrides
    app.dependency_overrides.clear()
