# builder_api/app/models/build.py
from __future__ import annotations

import re
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

# Reverse-domain identifier: two or more lowercase segments, each starting with a letter.
PACKAGE_NAME_RE = re.compile(r"^[a-z][a-z0-9_]*(\.[a-z][a-z0-9_]*)+$")

STATUS_PENDING = "pending"
STATUS_BUILDING = "building"
STATUS_FAILED = "failed"

# Only these moves are made by the request handler; everything after
# "building" belongs to the CI pipeline.
ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_BUILDING, STATUS_FAILED},
}


def is_valid_package_name(value: Optional[str]) -> bool:
    return isinstance(value, str) and PACKAGE_NAME_RE.fullmatch(value) is not None


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


class BuildOptions(BaseModel):
    """Normalized build options, duplicated into the record's ``config``."""
    model_config = ConfigDict(extra="ignore")

    theme_mode: str = "system"
    primary_color: str = "#2196F3"
    navigation: bool = False
    pull_to_refresh: bool = False
    orientation: str = "auto"
    enable_zoom: bool = False
    keep_awake: bool = False
    open_external_links: bool = False


class BuildFields(BaseModel):
    """Everything extracted from one create-build form submission."""
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    website_url: Optional[str] = None
    package_name: Optional[str] = None
    notification_email: Optional[str] = None
    build_format: str = "apk"
    options: BuildOptions = Field(default_factory=BuildOptions)

    def dispatch_payload(self, app_id: str, icon_url: Optional[str]) -> Dict[str, Any]:
        """Flat client_payload for the CI pipeline (a copy, not a record reference)."""
        opts = self.options
        return {
            "app_id": app_id,
            "name": self.name,
            "website_url": self.website_url,
            "package_name": self.package_name,
            "icon_url": icon_url,
            "notification_email": self.notification_email,
            "primary_color": opts.primary_color,
            "theme_mode": opts.theme_mode,
            "navigation": opts.navigation,
            "pull_to_refresh": opts.pull_to_refresh,
            "orientation": opts.orientation,
            "enable_zoom": opts.enable_zoom,
            "keep_awake": opts.keep_awake,
            "open_external_links": opts.open_external_links,
            "build_format": self.build_format,
        }


class BuildRecord(BaseModel):
    """Persisted build request row."""
    model_config = ConfigDict(extra="ignore")

    app_id: str
    name: Optional[str] = None
    website_url: Optional[str] = None
    package_name: str
    notification_email: Optional[str] = None
    icon_url: Optional[str] = None
    primary_color: str
    theme_mode: str = "system"
    navigation: bool = False
    pull_to_refresh: bool = False
    orientation: str = "auto"
    enable_zoom: bool = False
    keep_awake: bool = False
    open_external_links: bool = False
    build_format: str = "apk"
    status: str = STATUS_PENDING
    config: BuildOptions
    created_at: float = 0.0
    updated_at: float = 0.0

    @classmethod
    def from_fields(
        cls,
        fields: BuildFields,
        *,
        app_id: str,
        icon_url: Optional[str],
        now: float,
    ) -> "BuildRecord":
        opts = fields.options
        return cls(
            app_id=app_id,
            name=fields.name,
            website_url=fields.website_url,
            package_name=fields.package_name or "",
            notification_email=fields.notification_email,
            icon_url=icon_url,
            primary_color=opts.primary_color,
            theme_mode=opts.theme_mode,
            navigation=opts.navigation,
            pull_to_refresh=opts.pull_to_refresh,
            orientation=opts.orientation,
            enable_zoom=opts.enable_zoom,
            keep_awake=opts.keep_awake,
            open_external_links=opts.open_external_links,
            build_format=fields.build_format,
            status=STATUS_PENDING,
            config=opts.model_copy(),
            created_at=now,
            updated_at=now,
        )
