"""
Core analytics module.

Contains the client, its data models and the error types it returns.
"""

from .client import AnalyticsClient
from .errors import (
    AnalyticsError,
    ApiError,
    AuthError,
    PermissionDeniedError,
    Result,
    TransportError,
    ValidationError,
)
from .models import (
    ActiveVisitorsData,
    BrowserStats,
    CountryStats,
    Domain,
    Event,
    EventListStats,
    EventStats,
    Filter,
    Growth,
    Hit,
    LanguageStats,
    OSStats,
    PageStats,
    PlatformStats,
    ReferrerStats,
    ScreenClassStats,
    SessionDurationStats,
    TimeOnPageStats,
    TotalVisitorStats,
    UTMStats,
    VisitorHourStats,
    VisitorStats,
)

__all__ = [
    "AnalyticsClient",
    "Hit", "Event", "Filter", "Domain",
    "VisitorStats", "TotalVisitorStats", "PageStats", "ReferrerStats",
    "EventStats", "EventListStats", "SessionDurationStats", "TimeOnPageStats",
    "UTMStats", "CountryStats", "BrowserStats", "OSStats", "PlatformStats",
    "LanguageStats", "ScreenClassStats", "VisitorHourStats", "Growth",
    "ActiveVisitorsData",
    "Result", "AnalyticsError", "ValidationError", "AuthError",
    "PermissionDeniedError", "ApiError", "TransportError",
]
