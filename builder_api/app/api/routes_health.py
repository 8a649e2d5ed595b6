from __future__ import annotations

from fastapi import APIRouter

from builder_api.app.core import redis_conn
from builder_api.app.core.config import settings

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health():
    redis_probe = "ok" if await redis_conn.ping() else "fail"

    # Only expose non-sensitive configuration (never tokens or keys)
    return {
        "service": settings.service_name,
        "version": settings.version,
        "environment": settings.environment,
        "status": "ok" if redis_probe == "ok" else "degraded",
        "config": {
            "icon_storage_backend": settings.icon_storage_backend,
            "dispatch_repo": settings.github_repo or None,
            "github_token_present": bool(settings.github_token),
            "max_upload_bytes": settings.max_upload_bytes,
        },
        "probes": {
            "redis": redis_probe,
        },
    }
