"""Shared fixtures: a fake analytics service behind httpx.MockTransport."""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from analytics_sdk.config import ClientConfig
from analytics_sdk.core.client import AnalyticsClient
from analytics_sdk.core.models import Hit


class FakeService:
    """Records requests and answers them like the analytics API.

    Tokens are issued as token-1, token-2, ... Requests carrying a token
    listed in ``reject_tokens`` get a 401.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.issued = 0
        self.token_delay = 0.0
        self.token_status = 200
        self.token_lifetime = timedelta(hours=1)
        self.reject_tokens: set[str] = set()
        self.routes: dict[tuple[str, str], list[tuple[int, object]]] = {}

    def route(self, method: str, path: str, status: int = 200, json: object = None):
        """Queue a response. The last queued response repeats."""
        self.routes.setdefault((method, path), []).append((status, json))

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    @property
    def token_calls(self) -> int:
        return len(self.calls("/api/v1/token"))

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.path == "/api/v1/token":
            await asyncio.sleep(self.token_delay)
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": ["invalid client"]})
            self.issued += 1
            expires_at = datetime.now(timezone.utc) + self.token_lifetime
            return httpx.Response(200, json={
                "access_token": f"token-{self.issued}",
                "expires_at": expires_at.isoformat(),
            })

        token = request.headers.get("authorization", "").removeprefix("Bearer ")
        if token in self.reject_tokens:
            return httpx.Response(401, json={"error": ["unauthorized"]})

        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(200)
        status, body = queue.pop(0) if len(queue) > 1 else queue[0]
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def service():
    return FakeService()


@pytest.fixture
def config():
    return ClientConfig(hostname="example.com", client_id="abc", client_secret="xyz")


@pytest.fixture
def client(config, service):
    return AnalyticsClient(config, transport=service.transport)


@pytest.fixture
def token_client(service):
    """Client in single access token mode."""
    config = ClientConfig(hostname="example.com", access_token="pa_write_only")
    return AnalyticsClient(config, transport=service.transport)


@pytest.fixture
def hit():
    return Hit(
        url="https://example.com/pricing",
        ip="203.0.113.7",
        user_agent="Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) Chrome/120.0.0.0",
        accept_language="en-US,en;q=0.9",
        referrer="https://www.google.com/",
    )
