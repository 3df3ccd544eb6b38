"""
HTTP client for the hosted analytics API.

Sends hits, events and keep-alive signals, and runs filtered statistics
queries. Every public method returns a ``Result`` instead of raising.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..config import ClientConfig
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
    AccessToken, ActiveVisitorsData, BrowserStats, CountryStats, Domain, Event,
    EventListStats, EventStats, Filter, Growth, Hit, LanguageStats, MetaValue,
    OSStats, PageStats, PlatformStats, ReferrerStats, ScreenClassStats,
    SessionDurationStats, TimeOnPageStats, TotalVisitorStats, UTMStats,
    VisitorHourStats, VisitorStats,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

# Auth
TOKEN_ENDPOINT = "/api/v1/token"

# Writes
HIT_ENDPOINT = "/api/v1/hit"
HIT_BATCH_ENDPOINT = "/api/v1/hit/batch"
EVENT_ENDPOINT = "/api/v1/event"
EVENT_BATCH_ENDPOINT = "/api/v1/event/batch"
SESSION_ENDPOINT = "/api/v1/session"

# Reads
DOMAIN_ENDPOINT = "/api/v1/domain"
STATISTICS = "/api/v1/statistics"


class AnalyticsClient:
    """Client for sending and querying analytics data."""

    def __init__(
        self,
        config: ClientConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self._transport = transport
        self._token: AccessToken | None = None
        self._refresh_task: asyncio.Task | None = None

        # Access tokens are used as-is and never exchanged
        if config.uses_access_token:
            self._token = AccessToken(value=config.access_token)

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.api_url,
            timeout=self.config.timeout,
            transport=self._transport,
        )

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================

    async def _get_token(self, rejected: AccessToken | None = None) -> AccessToken:
        """Return a usable token, refreshing it when needed.

        Only one refresh runs at a time. Callers arriving while a refresh
        is in flight wait for it instead of starting another one. A caller
        whose token was rejected reuses a newer token if one is already
        cached.

        Raises:
            AuthError: If the credential exchange fails
            TransportError: If the token endpoint can't be reached
        """
        token = self._token
        if (
            token is not None
            and token is not rejected
            and not token.is_expired(leeway_seconds=self.config.token_leeway_seconds)
        ):
            return token

        if self._refresh_task is None:
            self._refresh_task = asyncio.ensure_future(self._refresh_token())
            self._refresh_task.add_done_callback(_refresh_finished)

        # Abandoning this call must not cancel the refresh others wait on
        return await asyncio.shield(self._refresh_task)

    async def _refresh_token(self) -> AccessToken:
        try:
            token = await self._fetch_token()
            self._token = token
            return token
        finally:
            self._refresh_task = None

    async def _fetch_token(self) -> AccessToken:
        """Exchange the client credentials for a bearer token."""
        logger.debug(f"Requesting access token for {self.config.hostname}")
        try:
            async with self._http() as client:
                response = await client.post(
                    TOKEN_ENDPOINT,
                    json={
                        "client_id": self.config.client_id,
                        "client_secret": self.config.client_secret,
                    },
                )
        except httpx.RequestError as e:
            raise TransportError(f"Token request failed: {e}") from e

        if response.is_error:
            error = _api_error(response)
            logger.error(f"Token exchange failed for {self.config.hostname}: {error}")
            raise AuthError(f"Token exchange failed: {error.message}", response.status_code)

        try:
            data = response.json()
            token = AccessToken(
                value=data["access_token"],
                expires_at=data.get("expires_at"),
            )
        except (ValueError, KeyError, TypeError, PydanticValidationError) as e:
            raise AuthError(f"Malformed token response: {e}", response.status_code) from e

        logger.debug(f"Access token for {self.config.hostname} valid until {token.expires_at}")
        return token

    # =========================================================================
    # REQUESTS
    # =========================================================================

    async def _send(
        self,
        method: str,
        path: str,
        token: AccessToken,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        async with self._http() as client:
            return await client.request(
                method,
                path,
                headers={"Authorization": f"Bearer {token.value}"},
                json=json,
                params=params,
            )

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Result[httpx.Response]:
        """Send an authenticated request.

        A 401 triggers one token refresh and one retry. Any other error
        status is returned as an ApiError without retrying.
        """
        try:
            token = await self._get_token()
            logger.debug(f"{method} {path}")
            response = await self._send(method, path, token, json=json, params=params)

            if response.status_code == 401:
                if self.config.uses_access_token:
                    return Result.failure(AuthError("Access token was rejected", 401))

                logger.warning(f"{method} {path} unauthorized, refreshing access token")
                token = await self._get_token(rejected=token)
                response = await self._send(method, path, token, json=json, params=params)

                if response.status_code == 401:
                    return Result.failure(
                        AuthError("Unauthorized after refreshing the access token", 401)
                    )
        except AnalyticsError as e:
            return Result.failure(e)
        except httpx.RequestError as e:
            logger.error(f"{method} {path} failed: {e}")
            return Result.failure(TransportError(f"{method} {path} failed: {e}"))

        if response.is_error:
            error = _api_error(response)
            logger.error(f"{method} {path} failed: {error}")
            return Result.failure(error)

        return Result.success(response)

    async def _write(self, path: str, payload: Any) -> Result[None]:
        result = await self._request("POST", path, json=payload)
        if not result.ok:
            return Result.failure(result.error)
        return Result.success()

    def _require_oauth(self, operation: str) -> Result | None:
        if self.config.uses_access_token:
            return Result.failure(PermissionDeniedError(
                f"{operation} requires client_id and client_secret; "
                f"access tokens can only send hits and events"
            ))
        return None

    def _skip(self, hit: Hit) -> bool:
        if self.config.respect_dnt and hit.do_not_track:
            logger.debug(f"Skipping {hit.url}: Do-Not-Track is set")
            return True
        return False

    # =========================================================================
    # WRITES
    # =========================================================================

    async def hit(self, hit: Hit) -> Result[None]:
        """Send a page view."""
        if self._skip(hit):
            return Result.success()
        return await self._write(HIT_ENDPOINT, hit.to_payload())

    async def event(
        self,
        name: str,
        hit: Hit,
        duration: int = 0,
        metadata: dict[str, MetaValue] | None = None,
    ) -> Result[None]:
        """
        Send a custom event.

        Args:
            name: Event name (e.g., "Signup")
            hit: The page view the event happened on
            duration: Optional duration in seconds
            metadata: Scalar values attached to the event (e.g., {"plan": "pro"})
        """
        try:
            event = Event(name=name, hit=hit, duration=duration, metadata=metadata or {})
        except PydanticValidationError as e:
            return Result.failure(ValidationError(f"Invalid event: {_describe(e)}"))

        if self._skip(event.hit):
            return Result.success()
        return await self._write(EVENT_ENDPOINT, event.to_payload())

    async def keep_alive(self, hit: Hit) -> Result[None]:
        """Extend the visitor's session without counting a page view."""
        if self._skip(hit):
            return Result.success()
        return await self._write(SESSION_ENDPOINT, hit.to_payload())

    async def hit_batch(self, hits: list[Hit]) -> Result[None]:
        """Send several page views in one request.

        Hits without a ``time`` are stamped with the current time.
        """
        payload = [_timestamped(hit).to_payload() for hit in hits if not self._skip(hit)]
        if not payload:
            return Result.success()
        return await self._write(HIT_BATCH_ENDPOINT, payload)

    async def event_batch(self, events: list[Event]) -> Result[None]:
        """Send several events in one request."""
        payload = []
        for event in events:
            if self._skip(event.hit):
                continue
            payload.append(
                event.model_copy(update={"hit": _timestamped(event.hit)}).to_payload()
            )
        if not payload:
            return Result.success()
        return await self._write(EVENT_BATCH_ENDPOINT, payload)

    # =========================================================================
    # READS
    # =========================================================================

    async def domain(self) -> Result[list[Domain]]:
        """List the domains the credentials have access to."""
        denied = self._require_oauth("Listing domains")
        if denied is not None:
            return denied

        result = await self._request("GET", DOMAIN_ENDPOINT)
        if not result.ok:
            return Result.failure(result.error)
        return _parse_list(result.value, Domain)

    async def _statistics(
        self, path: str, filter: Filter, model: type[M], many: bool = True
    ) -> Result[Any]:
        """Run a statistics query after checking auth mode and filter."""
        denied = self._require_oauth("Reading statistics")
        if denied is not None:
            return denied

        invalid = _validate_filter(filter)
        if invalid:
            return Result.failure(invalid)

        active = filter.active_filters()
        logger.debug(
            f"Query {path} for domain {filter.domain_id} "
            f"{filter.from_date}..{filter.to_date} {active if active else ''}"
        )

        result = await self._request("GET", f"{STATISTICS}{path}", params=filter.to_query_params())
        if not result.ok:
            return Result.failure(result.error)
        if many:
            return _parse_list(result.value, model)
        return _parse_one(result.value, model)

    async def visitors(self, filter: Filter) -> Result[list[VisitorStats]]:
        """Visitors, views, sessions and bounces per day (or ``filter.scale``)."""
        return await self._statistics("/visitor", filter, VisitorStats)

    async def total_visitors(self, filter: Filter) -> Result[TotalVisitorStats]:
        """Totals for the whole date range."""
        return await self._statistics("/total", filter, TotalVisitorStats, many=False)

    async def sessions(self, filter: Filter) -> Result[list[SessionDurationStats]]:
        """Average session duration per day."""
        return await self._statistics("/session/duration", filter, SessionDurationStats)

    async def time_on_page(self, filter: Filter) -> Result[list[TimeOnPageStats]]:
        return await self._statistics("/time-on-page", filter, TimeOnPageStats)

    async def pages(self, filter: Filter) -> Result[list[PageStats]]:
        return await self._statistics("/page", filter, PageStats)

    async def entry_pages(self, filter: Filter) -> Result[list[PageStats]]:
        return await self._statistics("/page/entry", filter, PageStats)

    async def exit_pages(self, filter: Filter) -> Result[list[PageStats]]:
        return await self._statistics("/page/exit", filter, PageStats)

    async def referrers(self, filter: Filter) -> Result[list[ReferrerStats]]:
        return await self._statistics("/referrer", filter, ReferrerStats)

    async def events(self, filter: Filter) -> Result[list[EventStats]]:
        """Event counts grouped by name."""
        return await self._statistics("/events", filter, EventStats)

    async def event_metadata(self, filter: Filter) -> Result[list[EventStats]]:
        """Breakdown of one event by ``filter.event_meta_key``."""
        denied = self._require_oauth("Reading statistics")
        if denied is not None:
            return denied
        if filter is not None and not (filter.event and filter.event_meta_key):
            return Result.failure(ValidationError(
                "Filter needs event and event_meta_key for event metadata"
            ))
        return await self._statistics("/event/meta", filter, EventStats)

    async def event_list(self, filter: Filter) -> Result[list[EventListStats]]:
        """Events grouped by name and metadata."""
        return await self._statistics("/event/list", filter, EventListStats)

    async def utm_sources(self, filter: Filter) -> Result[list[UTMStats]]:
        return await self._statistics("/utm/source", filter, UTMStats)

    async def utm_mediums(self, filter: Filter) -> Result[list[UTMStats]]:
        return await self._statistics("/utm/medium", filter, UTMStats)

    async def utm_campaigns(self, filter: Filter) -> Result[list[UTMStats]]:
        return await self._statistics("/utm/campaign", filter, UTMStats)

    async def utm_contents(self, filter: Filter) -> Result[list[UTMStats]]:
        return await self._statistics("/utm/content", filter, UTMStats)

    async def utm_terms(self, filter: Filter) -> Result[list[UTMStats]]:
        return await self._statistics("/utm/term", filter, UTMStats)

    async def countries(self, filter: Filter) -> Result[list[CountryStats]]:
        return await self._statistics("/country", filter, CountryStats)

    async def browsers(self, filter: Filter) -> Result[list[BrowserStats]]:
        return await self._statistics("/browser", filter, BrowserStats)

    async def operating_systems(self, filter: Filter) -> Result[list[OSStats]]:
        return await self._statistics("/os", filter, OSStats)

    async def platforms(self, filter: Filter) -> Result[PlatformStats]:
        return await self._statistics("/platform", filter, PlatformStats, many=False)

    async def languages(self, filter: Filter) -> Result[list[LanguageStats]]:
        return await self._statistics("/language", filter, LanguageStats)

    async def screen_classes(self, filter: Filter) -> Result[list[ScreenClassStats]]:
        return await self._statistics("/screen", filter, ScreenClassStats)

    async def visitor_hours(self, filter: Filter) -> Result[list[VisitorHourStats]]:
        return await self._statistics("/hours", filter, VisitorHourStats)

    async def growth(self, filter: Filter) -> Result[Growth]:
        """Growth compared to the previous period of the same length."""
        return await self._statistics("/growth", filter, Growth, many=False)

    async def active_visitors(self, filter: Filter) -> Result[ActiveVisitorsData]:
        """Visitors active in the last ``filter.start`` seconds."""
        return await self._statistics("/active", filter, ActiveVisitorsData, many=False)


# =============================================================================
# Helpers
# =============================================================================

def _validate_filter(filter: Filter | None) -> ValidationError | None:
    if filter is None:
        return ValidationError("A filter with id, from and to is required")

    missing = filter.missing_required()
    if missing:
        return ValidationError(f"Filter is missing {', '.join(missing)}")

    if filter.from_date > filter.to_date:
        return ValidationError(
            f"Filter from ({filter.from_date}) is after to ({filter.to_date})"
        )
    return None


def _refresh_finished(task: asyncio.Task) -> None:
    # Every waiter may have been cancelled; read the error so asyncio
    # doesn't report it as never retrieved
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Token refresh ended with {error!r}")


def _timestamped(hit: Hit) -> Hit:
    if hit.time is not None:
        return hit
    return hit.model_copy(update={"time": datetime.now(timezone.utc)})


def _api_error(response: httpx.Response) -> ApiError:
    """Build an ApiError from an error response.

    The service answers with ``{"error": [...], "validation": {...}}``.
    """
    message = response.reason_phrase or f"HTTP {response.status_code}"
    code = None
    validation: dict[str, str] = {}

    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict):
        errors = data.get("error")
        if isinstance(errors, list) and errors:
            message = str(errors[0])
        elif isinstance(errors, str) and errors:
            message = errors

        if isinstance(data.get("validation"), dict):
            validation = {str(k): str(v) for k, v in data["validation"].items()}
            if validation and not errors:
                message = "; ".join(f"{k}: {v}" for k, v in validation.items())

        if data.get("code") is not None:
            code = str(data["code"])

    return ApiError(response.status_code, message, code=code, validation=validation)


def _json(response: httpx.Response) -> Any:
    if not response.content:
        return None
    return response.json()


def _parse_list(response: httpx.Response, model: type[M]) -> Result[list[M]]:
    try:
        data = _json(response)
        return Result.success([model.model_validate(item) for item in (data or [])])
    except (ValueError, TypeError, PydanticValidationError) as e:
        return Result.failure(
            ApiError(response.status_code, f"Unexpected response from {response.url.path}: {e}")
        )


def _parse_one(response: httpx.Response, model: type[M]) -> Result[M]:
    try:
        return Result.success(model.model_validate(_json(response) or {}))
    except (ValueError, TypeError, PydanticValidationError) as e:
        return Result.failure(
            ApiError(response.status_code, f"Unexpected response from {response.url.path}: {e}")
        )


def _describe(error: PydanticValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in e['loc'])}: {e['msg']}"
        for e in error.errors()
    )
