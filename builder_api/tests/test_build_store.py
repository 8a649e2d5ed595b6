import asyncio

import pytest

from builder_api.app.models.build import BuildFields, BuildRecord
from builder_api.app.services.build_store import (
    BuildNotFound,
    BuildStoreError,
    DuplicatePackageName,
    InvalidStatusTransition,
)


def _record(app_id: str, package_name: str) -> BuildRecord:
    fields = BuildFields(package_name=package_name, name="X")
    return BuildRecord.from_fields(fields, app_id=app_id, icon_url=None, now=1.0)


def test_insert_then_lookup(store):
    asyncio.run(store.insert(_record("app_1", "com.example.one")))

    found = asyncio.run(store.find_by_package_name("com.example.one"))
    assert found is not None and found.app_id == "app_1"
    assert asyncio.run(store.find_by_package_name("com.example.two")) is None
    assert asyncio.run(store.get("app_1")).status == "pending"


def test_package_name_is_unique_at_insert(store):
    asyncio.run(store.insert(_record("app_1", "com.example.one")))
    with pytest.raises(DuplicatePackageName):
        asyncio.run(store.insert(_record("app_2", "com.example.one")))
    assert asyncio.run(store.get("app_2")) is None


def test_failed_record_write_releases_package_name(store, fake_redis, monkeypatch):
    async def _broken(key, field, value):
        raise ConnectionError("redis went away")

    monkeypatch.setattr(fake_redis, "hset", _broken)
    with pytest.raises(BuildStoreError):
        asyncio.run(store.insert(_record("app_1", "com.example.one")))
    assert "com.example.one" not in fake_redis.hashes[store.packages_key]


def test_status_moves_forward_only(store):
    asyncio.run(store.insert(_record("app_1", "com.example.one")))

    updated = asyncio.run(store.update_status("app_1", "building"))
    assert updated.status == "building"
    assert asyncio.run(store.get("app_1")).status == "building"

    with pytest.raises(InvalidStatusTransition):
        asyncio.run(store.update_status("app_1", "failed"))
    with pytest.raises(InvalidStatusTransition):
        asyncio.run(store.update_status("app_1", "pending"))


def test_update_unknown_app(store):
    with pytest.raises(BuildNotFound):
        asyncio.run(store.update_status("nope", "failed"))


def test_keys_are_prefixed(store, fake_redis):
    asyncio.run(store.insert(_record("app_1", "com.example.one")))
    assert set(fake_redis.hashes) == {"test-builds:records", "test-builds:packages"}
