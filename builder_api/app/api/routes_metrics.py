from __future__ import annotations

from fastapi import APIRouter, Response

from builder_api.app.core.metrics import REGISTRY

router = APIRouter(prefix="/api", tags=["metrics"])


@router.get("/metrics")
def metrics() -> Response:
    return Response(content=REGISTRY.render_prometheus(), media_type="text/plain; version=0.0.4")
