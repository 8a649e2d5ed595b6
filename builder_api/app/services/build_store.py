# builder_api/app/services/build_store.py
from __future__ import annotations

import logging
import time
from typing import Optional

from redis.asyncio import Redis as AsyncRedis

from builder_api.app.models.build import BuildRecord, can_transition

logger = logging.getLogger(__name__)


class BuildStoreError(Exception):
    pass


class DuplicatePackageName(BuildStoreError):
    def __init__(self, package_name: str):
        super().__init__(f"package_name already registered: {package_name}")
        self.package_name = package_name


class BuildNotFound(BuildStoreError):
    pass


class InvalidStatusTransition(BuildStoreError):
    def __init__(self, app_id: str, current: str, target: str):
        super().__init__(f"{app_id}: cannot move status {current} -> {target}")
        self.current = current
        self.target = target


class BuildStore:
    """
    Build records in Redis:
      {prefix}:records   hash app_id -> JSON record
      {prefix}:packages  hash package_name -> app_id  (uniqueness index)

    The package index is claimed with HSETNX before the record is written, so
    two concurrent inserts for one package name cannot both succeed.
    """

    def __init__(self, redis: AsyncRedis, prefix: str = "builds"):
        self._r = redis
        self.records_key = f"{prefix}:records"
        self.packages_key = f"{prefix}:packages"

    async def get(self, app_id: str) -> Optional[BuildRecord]:
        raw = await self._r.hget(self.records_key, app_id)
        if not raw:
            return None
        return BuildRecord.model_validate_json(raw)

    async def find_by_package_name(self, package_name: str) -> Optional[BuildRecord]:
        app_id = await self._r.hget(self.packages_key, package_name)
        if not app_id:
            return None
        record = await self.get(app_id)
        if record is None:
            # index entry without a record; insert() will still refuse the name
            logger.warning("package index %s points at missing record %s", package_name, app_id)
        return record

    async def insert(self, record: BuildRecord) -> BuildRecord:
        claimed = await self._r.hsetnx(self.packages_key, record.package_name, record.app_id)
        if not claimed:
            raise DuplicatePackageName(record.package_name)
        try:
            await self._r.hset(self.records_key, record.app_id, record.model_dump_json())
        except Exception as exc:
            await self._r.hdel(self.packages_key, record.package_name)
            raise BuildStoreError(str(exc)) from exc
        return record

    async def update_status(self, app_id: str, status: str) -> BuildRecord:
        record = await self.get(app_id)
        if record is None:
            raise BuildNotFound(app_id)
        if not can_transition(record.status, status):
            raise InvalidStatusTransition(app_id, record.status, status)
        updated = record.model_copy(update={"status": status, "updated_at": time.time()})
        await self._r.hset(self.records_key, app_id, updated.model_dump_json())
        return updated
