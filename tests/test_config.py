"""Tests for ClientConfig validation and request models."""

from datetime import date, datetime, timedelta, timezone

import pytest

from analytics_sdk import AnalyticsClient, setup_analytics
from analytics_sdk.config import (
    DEFAULT_BASE_URL,
    DEFAULT_IP_HEADERS,
    ClientConfig,
    ConfigurationError,
)
from analytics_sdk.core.models import AccessToken, Filter


class TestClientConfig:
    """Exactly one auth mode must be configured."""

    def test_client_credentials(self):
        config = ClientConfig(hostname="example.com", client_id="abc", client_secret="xyz")
        assert config.uses_access_token is False
        assert config.protocol == "https"
        assert config.base_url == DEFAULT_BASE_URL
        assert config.ip_headers == DEFAULT_IP_HEADERS

    def test_access_token(self):
        config = ClientConfig(hostname="example.com", access_token="pa_abc")
        assert config.uses_access_token is True

    def test_no_credentials(self):
        with pytest.raises(ConfigurationError):
            ClientConfig(hostname="example.com")

    def test_secret_without_id(self):
        with pytest.raises(ConfigurationError):
            ClientConfig(hostname="example.com", client_secret="xyz")

    def test_both_modes(self):
        with pytest.raises(ConfigurationError, match="not both"):
            ClientConfig(hostname="example.com", client_id="abc", client_secret="xyz",
                         access_token="pa_abc")

    def test_access_token_prefix(self):
        with pytest.raises(ConfigurationError, match="pa_"):
            ClientConfig(hostname="example.com", access_token="abc")

    def test_missing_hostname(self):
        with pytest.raises(ConfigurationError):
            ClientConfig(hostname=" ", access_token="pa_abc")

    def test_hostname_with_scheme(self):
        with pytest.raises(ConfigurationError):
            ClientConfig(hostname="https://example.com", access_token="pa_abc")

    def test_protocol_normalized(self):
        config = ClientConfig(hostname="example.com", protocol="HTTP", access_token="pa_abc")
        assert config.protocol == "http"

    def test_invalid_protocol(self):
        with pytest.raises(ConfigurationError):
            ClientConfig(hostname="example.com", protocol="ftp", access_token="pa_abc")

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            ClientConfig(hostname="example.com")

    def test_self_hosted_base_url(self):
        config = ClientConfig(hostname="example.com", access_token="pa_abc",
                              base_url="https://analytics.internal/")
        assert config.api_url == "https://analytics.internal"

    def test_plain_http_base_url_warns(self):
        with pytest.warns(UserWarning, match="unencrypted"):
            ClientConfig(hostname="example.com", access_token="pa_abc",
                         base_url="http://localhost:8080")

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ANALYTICS_HOSTNAME", "example.com")
        monkeypatch.setenv("ANALYTICS_CLIENT_ID", "abc")
        monkeypatch.setenv("ANALYTICS_CLIENT_SECRET", "xyz")
        monkeypatch.setenv("ANALYTICS_TIMEOUT", "2.5")

        config = ClientConfig.from_env()

        assert config.hostname == "example.com"
        assert config.client_id == "abc"
        assert config.timeout == 2.5

    def test_from_env_overrides(self, monkeypatch):
        monkeypatch.setenv("SITE_HOSTNAME", "example.com")
        monkeypatch.setenv("SITE_ACCESS_TOKEN", "pa_env")

        config = ClientConfig.from_env(prefix="SITE_", protocol="http")

        assert config.access_token == "pa_env"
        assert config.protocol == "http"

    def test_from_env_bad_timeout(self, monkeypatch):
        monkeypatch.setenv("ANALYTICS_HOSTNAME", "example.com")
        monkeypatch.setenv("ANALYTICS_ACCESS_TOKEN", "pa_env")
        monkeypatch.setenv("ANALYTICS_TIMEOUT", "soon")

        with pytest.raises(ConfigurationError):
            ClientConfig.from_env()


class TestSetupAnalytics:

    def test_returns_client(self):
        client = setup_analytics("example.com", client_id="abc", client_secret="xyz", timeout=1.0)
        assert isinstance(client, AnalyticsClient)
        assert client.config.timeout == 1.0

    def test_invalid_setup_raises_immediately(self):
        with pytest.raises(ConfigurationError):
            setup_analytics("example.com")


class TestFilter:
    """Test Filter Pydantic model."""

    def test_wire_names_accepted(self):
        filters = Filter.model_validate({"id": "dom1", "from": "2021-06-19", "to": "2021-06-26"})
        assert filters.domain_id == "dom1"
        assert filters.from_date == date(2021, 6, 19)

    def test_missing_required(self):
        filters = Filter(from_date=date(2021, 6, 19), to_date=date(2021, 6, 26))
        assert filters.missing_required() == ["id"]
        assert Filter().missing_required() == ["id", "from", "to"]

    def test_active_filters(self):
        filters = Filter(domain_id="dom1", country="de", browser="Firefox")
        assert filters.active_filters() == {"country": "de", "browser": "Firefox"}
        assert Filter(domain_id="dom1").active_filters() == {}

    def test_query_params_use_wire_names(self):
        filters = Filter(domain_id="dom1", from_date=date(2021, 6, 19),
                         to_date=date(2021, 6, 26), utm_source="newsletter", limit=10)
        assert filters.to_query_params() == {
            "id": "dom1",
            "from": "2021-06-19",
            "to": "2021-06-26",
            "utm_source": "newsletter",
            "limit": 10,
        }


class TestAccessToken:

    def test_no_expiry_never_expires(self):
        assert AccessToken(value="pa_abc").is_expired() is False

    def test_expiry_with_leeway(self):
        now = datetime(2021, 6, 19, 12, 0, tzinfo=timezone.utc)
        token = AccessToken(value="t", expires_at=now + timedelta(seconds=20))
        assert token.is_expired(now) is False
        assert token.is_expired(now, leeway_seconds=30) is True

    def test_naive_expiry_treated_as_utc(self):
        now = datetime(2021, 6, 19, 12, 0, tzinfo=timezone.utc)
        token = AccessToken(value="t", expires_at=datetime(2021, 6, 19, 11, 0))
        assert token.is_expired(now) is True
