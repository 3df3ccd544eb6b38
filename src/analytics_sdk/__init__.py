"""
Async client for a hosted web analytics service.

Usage:
    from analytics_sdk import setup_analytics, hit_from_request

    analytics = setup_analytics(
        hostname="example.com",
        client_id="your-client-id",
        client_secret="your-client-secret",
    )

    @app.get("/")
    async def index(request: Request):
        result = await analytics.hit(hit_from_request(request, analytics.config))
        if not result:
            logger.warning(f"Page view not tracked: {result.error}")
        ...

    # Statistics
    stats = await analytics.visitors(
        Filter(id="domain-id", from_date=date(2021, 6, 19), to_date=date(2021, 6, 26))
    )
"""

from .config import ClientConfig, ConfigurationError
from .core import (
    AnalyticsClient,
    AnalyticsError,
    ApiError,
    AuthError,
    Domain,
    Event,
    Filter,
    Hit,
    PermissionDeniedError,
    Result,
    TransportError,
    ValidationError,
)
from .request import client_ip, hit_from_request

__version__ = "0.1.0"
__all__ = [
    "setup_analytics", "AnalyticsClient", "ClientConfig", "ConfigurationError",
    "Hit", "Event", "Filter", "Domain", "hit_from_request", "client_ip",
    "Result", "AnalyticsError", "ValidationError", "AuthError",
    "PermissionDeniedError", "ApiError", "TransportError",
]


def setup_analytics(
    hostname: str,
    client_id: str | None = None,
    client_secret: str | None = None,
    access_token: str | None = None,
    protocol: str = "https",
    **options,
) -> AnalyticsClient:
    """
    Set up an analytics client for a site.

    Args:
        hostname: Domain reported in hit URLs (e.g., "example.com")
        client_id: OAuth client ID (with client_secret)
        client_secret: OAuth client secret
        access_token: Write-only access token ("pa_...") instead of client credentials
        protocol: "https" (default) or "http"
        **options: Other ClientConfig fields (base_url, timeout, ip_headers, ...)

    Returns:
        AnalyticsClient bound to the new config

    Raises:
        ConfigurationError: If the credentials don't form exactly one auth mode
    """
    config = ClientConfig(
        hostname=hostname,
        protocol=protocol,
        client_id=client_id,
        client_secret=client_secret,
        access_token=access_token,
        **options,
    )
    return AnalyticsClient(config)
