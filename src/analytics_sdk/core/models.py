"""
Pydantic models for analytics requests and statistics.
"""
from collections.abc import Mapping
from datetime import date, datetime, timedelta, timezone
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

# Scalar values allowed in event metadata
MetaValue = str | int | float | bool

# Filter fields that every statistics query needs
REQUIRED_FILTER_FIELDS = ("id", "from", "to")


# =============================================================================
# Auth
# =============================================================================

class AccessToken(BaseModel):
    """A bearer token and its expiry. ``None`` means it never expires."""
    value: str
    expires_at: datetime | None = None

    def is_expired(self, now: datetime | None = None, leeway_seconds: int = 0) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return now >= expires_at - timedelta(seconds=leeway_seconds)


# =============================================================================
# Write Models
# =============================================================================

class Hit(BaseModel):
    """A single page view, usually derived from an inbound request.

    ``dnt`` is kept locally to honor Do-Not-Track and never sent.
    ``time`` is only used by batch submissions.
    """
    model_config = ConfigDict(frozen=True)

    url: str
    ip: str = ""
    user_agent: str = ""
    accept_language: str = ""
    referrer: str = ""
    title: str = ""

    # Client hints
    sec_ch_ua: str = ""
    sec_ch_ua_mobile: str = ""
    sec_ch_ua_platform: str = ""
    sec_ch_ua_platform_version: str = ""
    sec_ch_width: str = ""
    sec_ch_viewport_width: str = ""

    screen_width: int = 0
    screen_height: int = 0
    tags: Mapping[str, str] = Field(default_factory=dict, validate_default=True)

    time: datetime | None = None
    dnt: str = ""

    @property
    def do_not_track(self) -> bool:
        return self.dnt.strip() == "1"

    @field_validator("tags")
    @classmethod
    def freeze_tags(cls, v: Mapping[str, str]) -> Mapping[str, str]:
        return MappingProxyType(dict(v))

    @field_serializer("tags")
    def dump_tags(self, tags: Mapping[str, str]) -> dict[str, str]:
        return dict(tags)

    def to_payload(self) -> dict[str, Any]:
        """Request body for the hit endpoints."""
        payload = self.model_dump(mode="json", exclude={"dnt", "time"})
        if not payload["tags"]:
            del payload["tags"]
        if self.time is not None:
            payload["time"] = self.time.isoformat()
        return payload


class Event(BaseModel):
    """A named, timed event reported alongside a hit."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    hit: Hit
    duration: int = Field(default=0, ge=0)  # seconds
    metadata: Mapping[str, MetaValue] = Field(default_factory=dict, validate_default=True)

    @field_validator("metadata")
    @classmethod
    def freeze_metadata(cls, v: Mapping[str, MetaValue]) -> Mapping[str, MetaValue]:
        return MappingProxyType(dict(v))

    @field_serializer("metadata")
    def dump_metadata(self, metadata: Mapping[str, MetaValue]) -> dict[str, MetaValue]:
        return dict(metadata)

    def to_payload(self) -> dict[str, Any]:
        """Request body for the event endpoints.

        Metadata is sent as strings; booleans become "true"/"false".
        """
        payload = self.hit.to_payload()
        payload["event_name"] = self.name
        payload["event_duration"] = self.duration
        payload["event_meta"] = {
            key: _meta_to_str(value) for key, value in self.metadata.items()
        }
        return payload


def _meta_to_str(value: MetaValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# =============================================================================
# Query Models
# =============================================================================

class Filter(BaseModel):
    """Scope for a statistics query.

    ``domain_id``, ``from_date`` and ``to_date`` are required by every
    query; the client checks them before sending anything. The remaining
    fields narrow the result and are only sent when set.
    """
    model_config = ConfigDict(populate_by_name=True)

    domain_id: str | None = Field(default=None, alias="id")
    from_date: date | None = Field(default=None, alias="from")
    to_date: date | None = Field(default=None, alias="to")

    start: int | None = None  # active visitors window in seconds
    scale: str | None = None  # day, week, month, year
    tz: str | None = None

    # Pages
    path: str | None = None
    pattern: str | None = None
    entry_path: str | None = None
    exit_path: str | None = None

    # Events
    event: str | None = None
    event_meta_key: str | None = None

    # Visitors
    language: str | None = None
    country: str | None = None
    region: str | None = None
    city: str | None = None
    referrer: str | None = None
    referrer_name: str | None = None
    os: str | None = None
    browser: str | None = None
    platform: str | None = None
    screen_class: str | None = None

    # UTM
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_content: str | None = None
    utm_term: str | None = None

    tag: str | None = None

    # Paging and sorting
    limit: int | None = None
    offset: int | None = None
    sort: str | None = None
    direction: str | None = None  # asc, desc
    search: str | None = None

    def missing_required(self) -> list[str]:
        """Names of required query parameters that aren't set."""
        values = {"id": self.domain_id, "from": self.from_date, "to": self.to_date}
        return [name for name in REQUIRED_FILTER_FIELDS if not values[name]]

    def active_filters(self) -> dict[str, Any]:
        """Return dict of optional selectors that are set."""
        return {
            k: v for k, v in self.model_dump(exclude={"domain_id", "from_date", "to_date"}).items()
            if v is not None
        }

    def to_query_params(self) -> dict[str, Any]:
        """Query string parameters using the service's names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Response Models
# =============================================================================

class Domain(BaseModel):
    """A domain the credentials have access to."""
    id: str
    hostname: str
    subdomain: str | None = None
    identification_code: str | None = None
    public: bool = False
    timezone: str | None = None
    def_time: datetime | None = None
    mod_time: datetime | None = None


class MetaStats(BaseModel):
    """Visitor counts shared by most breakdowns."""
    visitors: int = 0
    relative_visitors: float = 0


class VisitorStats(BaseModel):
    """Visitors for one period of the requested scale."""
    day: datetime | None = None
    week: datetime | None = None
    month: datetime | None = None
    year: datetime | None = None
    visitors: int = 0
    views: int = 0
    sessions: int = 0
    bounces: int = 0
    bounce_rate: float = 0
    cr: float = 0  # conversion rate


class TotalVisitorStats(BaseModel):
    """Totals over the whole date range."""
    visitors: int = 0
    views: int = 0
    sessions: int = 0
    bounces: int = 0
    bounce_rate: float = 0
    cr: float = 0


class PageStats(MetaStats):
    """Stats for a single page, also used for entry and exit pages."""
    path: str = ""
    title: str = ""
    views: int = 0
    sessions: int = 0
    bounces: int = 0
    relative_views: float = 0
    bounce_rate: float = 0
    average_time_spent_seconds: int = 0
    entries: int | None = None
    exits: int | None = None
    entry_rate: float | None = None
    exit_rate: float | None = None


class ReferrerStats(MetaStats):
    """Stats for a traffic source."""
    referrer: str = ""
    referrer_name: str = ""
    referrer_icon: str = ""
    sessions: int = 0
    bounces: int = 0
    bounce_rate: float = 0


class EventStats(BaseModel):
    """Aggregated stats for one event name."""
    name: str
    visitors: int = 0
    views: int = 0
    cr: float = 0
    average_duration_seconds: int = 0
    meta_keys: list[str] = Field(default_factory=list)
    meta_value: str | None = None


class EventListStats(BaseModel):
    """Count of one event name and metadata combination."""
    name: str
    meta: dict[str, str] = Field(default_factory=dict)
    visitors: int = 0
    count: int = 0


class SessionDurationStats(BaseModel):
    """Average session duration for one day."""
    day: datetime | None = None
    average_time_spent_seconds: int = 0


class TimeOnPageStats(SessionDurationStats):
    """Average time on page for one day and path."""
    path: str = ""
    title: str = ""


class UTMStats(MetaStats):
    """Visitors for a UTM value. Only the queried dimension is set."""
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_content: str | None = None
    utm_term: str | None = None


class CountryStats(MetaStats):
    country_code: str = ""


class BrowserStats(MetaStats):
    browser: str = ""


class OSStats(MetaStats):
    os: str = ""


class LanguageStats(MetaStats):
    language: str = ""


class ScreenClassStats(MetaStats):
    screen_class: str = ""


class PlatformStats(BaseModel):
    """Visitor split by device platform."""
    platform_desktop: int = 0
    platform_mobile: int = 0
    platform_unknown: int = 0
    relative_platform_desktop: float = 0
    relative_platform_mobile: float = 0
    relative_platform_unknown: float = 0


class VisitorHourStats(BaseModel):
    """Visitors for one hour of the day."""
    hour: int
    visitors: int = 0
    views: int = 0
    sessions: int = 0
    bounces: int = 0
    bounce_rate: float = 0


class Growth(BaseModel):
    """Change against the previous period of the same length."""
    visitors_growth: float = 0
    views_growth: float = 0
    sessions_growth: float = 0
    bounces_growth: float = 0
    time_spent_growth: float = 0
    cr_growth: float = 0


class ActiveVisitorsData(BaseModel):
    """Visitors active within the filter's ``start`` window."""
    stats: list[PageStats] = Field(default_factory=list)
    visitors: int = 0
