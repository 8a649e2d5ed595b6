from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from starlette.datastructures import UploadFile

from builder_api.app.api.deps import get_build_service
from builder_api.app.core.metrics import build_request_counter, build_request_duration
from builder_api.app.services.build_service import (
    BuildRequestError,
    BuildRequestService,
    extract_fields,
    first_value,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["builds"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

ICON_FIELD = "appIcon"
CREATE_BUILD_PATH = "/create-build"

# Every method is routed here so non-POST requests get the JSON 405 with CORS headers.
ROUTE_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE", "CONNECT"]


class UploadTooLarge(ValueError):
    pass


def method_not_allowed() -> JSONResponse:
    return _json(405, {"error": "Method not allowed"})


def _json(status_code: int, content: dict) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=CORS_HEADERS)


async def _read_icon(part: Any, limit: int) -> Optional[bytes]:
    if not isinstance(part, UploadFile):
        return None
    data = await part.read(limit + 1)
    if len(data) > limit:
        raise UploadTooLarge(f"appIcon exceeds the upload limit of {limit} bytes")
    if not data and not part.filename:
        # browsers send an empty part when no file was chosen
        return None
    return data


async def _parse_submission(request: Request, limit: int) -> Tuple[Any, Optional[bytes]]:
    """
    The whole-body cap only applies when the client declares Content-Length.
    A chunked body is spooled in full by `request.form()`; past that point only
    the per-file cap on `appIcon` holds.
    """
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise UploadTooLarge(f"request body of {declared} bytes exceeds the limit of {limit} bytes")

    form = await request.form()
    try:
        icon = await _read_icon(first_value(form, ICON_FIELD), limit)
    finally:
        await form.close()
    return form, icon


@router.api_route(
    CREATE_BUILD_PATH,
    methods=ROUTE_METHODS,
    responses={
        200: {"description": "Build accepted and dispatched"},
        400: {"description": "Invalid or duplicate package name"},
        405: {"description": "Method not allowed"},
        500: {"description": "Storage, database or dispatch failure"},
    },
)
async def create_build(
    request: Request,
    service: BuildRequestService = Depends(get_build_service),
) -> Response:
    """
    Accept a multipart build request (text fields + optional `appIcon`),
    persist it and trigger the CI build.
    """
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)
    if request.method != "POST":
        return method_not_allowed()

    stop = build_request_duration.timer()
    result = "ok"
    try:
        form, icon = await _parse_submission(request, service.settings.max_upload_bytes)
        fields = extract_fields(form, default_primary_color=service.settings.default_primary_color)
        accepted = await service.create_build(fields, icon)
        return _json(200, accepted.to_response())
    except BuildRequestError as exc:
        result = "rejected" if exc.status_code < 500 else "error"
        return _json(exc.status_code, {"error": exc.message})
    except Exception as exc:
        result = "error"
        logger.exception("create-build failed")
        return _json(500, {"error": str(exc)})
    finally:
        build_request_counter.inc(labels={"result": result})
        stop({"result": result})
