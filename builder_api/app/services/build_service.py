# builder_api/app/services/build_service.py
from __future__ import annotations

import logging
import secrets
import string
import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from starlette.concurrency import run_in_threadpool

from builder_api.app.core.config import Settings
from builder_api.app.integrations.github.client import DispatchError, GitHubDispatcher
from builder_api.app.models.build import (
    STATUS_BUILDING,
    STATUS_FAILED,
    BuildFields,
    BuildOptions,
    BuildRecord,
    is_valid_package_name,
)
from builder_api.app.services.build_store import BuildStore, DuplicatePackageName
from builder_api.app.services.icon_storage import IconStorage, IconStorageError

logger = logging.getLogger(__name__)

ICON_CONTENT_TYPE = "image/png"
BOOLEAN_OPTIONS = ("navigation", "pull_to_refresh", "enable_zoom", "keep_awake", "open_external_links")

_ID_ALPHABET = string.digits + string.ascii_lowercase


# ----------------------------
# Request-level errors
# ----------------------------

class BuildRequestError(Exception):
    """A failure reported to the client as {"error": message}."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidPackageName(BuildRequestError):
    status_code = 400

    def __init__(self):
        super().__init__("Invalid package name. Use the format: com.company.appname")


class PackageNameTaken(BuildRequestError):
    status_code = 400

    def __init__(self):
        super().__init__("Package name already exists. Choose a different name.")


class IconUploadFailed(BuildRequestError):
    def __init__(self):
        super().__init__("Failed to upload the app icon")


class RecordInsertFailed(BuildRequestError):
    def __init__(self):
        super().__init__("Failed to save the build request")


class BuildTriggerFailed(BuildRequestError):
    def __init__(self):
        super().__init__("Failed to trigger the build")


# ----------------------------
# Field extraction
# ----------------------------

def first_value(form: Any, key: str) -> Any:
    """First value when the form holds several for `key`, else the raw value."""
    getlist = getattr(form, "getlist", None)
    if getlist is not None:
        values = getlist(key)
        return values[0] if values else None
    value = form.get(key)
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _text(form: Any, key: str) -> Optional[str]:
    value = first_value(form, key)
    return value if isinstance(value, str) else None


def _flag(form: Any, key: str) -> bool:
    return _text(form, key) == "true"


def extract_fields(form: Mapping[str, Any], *, default_primary_color: str = "#2196F3") -> BuildFields:
    """
    Normalize a submitted form. Defaults apply whenever the extracted value is
    falsy, so an empty string falls back the same way a missing field does.
    """
    options = BuildOptions(
        theme_mode=_text(form, "themeMode") or "system",
        primary_color=_text(form, "primary_color") or default_primary_color,
        orientation=_text(form, "orientation") or "auto",
        **{name: _flag(form, name) for name in BOOLEAN_OPTIONS},
    )
    return BuildFields(
        name=_text(form, "name"),
        website_url=_text(form, "website_url"),
        package_name=_text(form, "package_name"),
        notification_email=_text(form, "notification_email"),
        build_format=_text(form, "build_format") or "apk",
        options=options,
    )


def generate_app_id(now: Optional[float] = None) -> str:
    millis = int((time.time() if now is None else now) * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"app_{millis}_{suffix}"


def icon_key(app_id: str) -> str:
    return f"{app_id}/icon.png"


# ----------------------------
# Pipeline
# ----------------------------

@dataclass
class BuildAccepted:
    app_id: str
    notification_email: Optional[str]
    estimated_time: str

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": True,
            "app_id": self.app_id,
            "message": (
                f"Build started! You will receive an email at {self.notification_email} "
                f"within {self.estimated_time}."
            ),
            "estimated_time": self.estimated_time,
        }


class BuildRequestService:
    """
    validate -> uniqueness check -> icon upload -> insert (pending)
    -> dispatch -> status (building | failed)
    """

    def __init__(
        self,
        store: BuildStore,
        storage: IconStorage,
        dispatcher: GitHubDispatcher,
        settings: Settings,
    ):
        self.store = store
        self.storage = storage
        self.dispatcher = dispatcher
        self.settings = settings

    async def create_build(self, fields: BuildFields, icon: Optional[bytes] = None) -> BuildAccepted:
        package_name = fields.package_name
        if not is_valid_package_name(package_name):
            raise InvalidPackageName()

        if await self.store.find_by_package_name(package_name) is not None:
            logger.info("rejecting duplicate package_name %s", package_name)
            raise PackageNameTaken()

        app_id = generate_app_id()

        icon_url: Optional[str] = None
        if icon is not None:
            icon_url = await self._store_icon(app_id, icon)

        record = BuildRecord.from_fields(fields, app_id=app_id, icon_url=icon_url, now=time.time())
        try:
            await self.store.insert(record)
        except DuplicatePackageName:
            logger.info("package_name %s claimed concurrently", package_name)
            raise PackageNameTaken()
        except Exception:
            logger.exception("database error inserting %s", app_id)
            raise RecordInsertFailed()

        try:
            await self.dispatcher.dispatch(fields.dispatch_payload(app_id, icon_url))
        except DispatchError as exc:
            logger.error("build trigger failed for %s: %s", app_id, exc.body)
            await self._set_status(app_id, STATUS_FAILED)
            raise BuildTriggerFailed()

        await self._set_status(app_id, STATUS_BUILDING)
        logger.info("build %s dispatched for %s", app_id, package_name)
        return BuildAccepted(
            app_id=app_id,
            notification_email=fields.notification_email,
            estimated_time=self.settings.estimated_build_time,
        )

    async def _store_icon(self, app_id: str, icon: bytes) -> str:
        key = icon_key(app_id)
        try:
            await run_in_threadpool(
                self.storage.upload, key, icon, content_type=ICON_CONTENT_TYPE, upsert=True
            )
        except IconStorageError:
            logger.exception("icon upload error for %s", app_id)
            raise IconUploadFailed()
        return self.storage.public_url(key)

    async def _set_status(self, app_id: str, status: str) -> None:
        # Best-effort: a failed update is logged, never reported to the client.
        try:
            await self.store.update_status(app_id, status)
        except Exception as exc:
            logger.warning("could not set %s status=%s: %s", app_id, status, exc)
