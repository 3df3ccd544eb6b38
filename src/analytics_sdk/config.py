"""
Configuration for the analytics client.
"""
import logging
import os
import warnings
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.pirsch.io"
DEFAULT_TIMEOUT = 5.0
DEFAULT_TOKEN_LEEWAY_SECONDS = 30

# Long-lived write-only tokens are issued with this prefix
ACCESS_TOKEN_PREFIX = "pa_"

PROTOCOLS = ("http", "https")

# Checked in order when deriving the visitor IP from a request.
# The first header holding a valid address wins.
DEFAULT_IP_HEADERS = (
    "CF-Connecting-IP",
    "True-Client-IP",
    "X-Forwarded-For",
    "Forwarded",
    "X-Real-IP",
)


class ConfigurationError(ValueError):
    """Raised when the client is configured with an unusable set of options."""
    pass


def validate_access_token(access_token: str) -> None:
    """Validate a long-lived access token.

    Raises:
        ConfigurationError: If the token doesn't carry the access token prefix
    """
    if not access_token.startswith(ACCESS_TOKEN_PREFIX):
        raise ConfigurationError(
            f"Access tokens must start with '{ACCESS_TOKEN_PREFIX}'. "
            f"Use client_id and client_secret for OAuth clients."
        )


@dataclass
class ClientConfig:
    """Configuration for a single analytics client.

    Exactly one auth mode must be set: either ``client_id`` and
    ``client_secret``, or a single ``access_token``. Access tokens can only
    send hits, events and keep-alive signals.

    Usage:
        config = ClientConfig(
            hostname="example.com",
            client_id="abc",
            client_secret="xyz",
        )
    """

    # Required
    hostname: str  # Domain reported in hit URLs (e.g., "example.com")

    protocol: str = "https"  # Scheme reported in hit URLs

    # Auth (one mode only)
    client_id: str | None = None
    client_secret: str | None = None
    access_token: str | None = None

    # Transport
    base_url: str = DEFAULT_BASE_URL  # Override for self-hosted deployments
    timeout: float = DEFAULT_TIMEOUT

    # Tokens are treated as expired this many seconds early
    token_leeway_seconds: int = DEFAULT_TOKEN_LEEWAY_SECONDS

    # Hit derivation
    ip_headers: tuple[str, ...] = field(default=DEFAULT_IP_HEADERS)
    respect_dnt: bool = True

    @property
    def uses_access_token(self) -> bool:
        """Check if the client runs in single access token mode."""
        return self.access_token is not None

    @property
    def api_url(self) -> str:
        """Base URL without a trailing slash."""
        return self.base_url.rstrip("/")

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate_hostname()
        self._validate_protocol()
        self._validate_credentials()
        self._validate_base_url()
        self.ip_headers = tuple(self.ip_headers)

    def _validate_hostname(self) -> None:
        if not self.hostname or not self.hostname.strip():
            raise ConfigurationError("hostname is required")
        if "://" in self.hostname or "/" in self.hostname:
            raise ConfigurationError(
                f"hostname must be a bare host name, got '{self.hostname}'"
            )

    def _validate_protocol(self) -> None:
        self.protocol = (self.protocol or "").lower()
        if self.protocol not in PROTOCOLS:
            raise ConfigurationError(
                f"protocol must be one of {', '.join(PROTOCOLS)}, got '{self.protocol}'"
            )

    def _validate_credentials(self) -> None:
        """Make sure exactly one auth mode is active."""
        has_oauth = bool(self.client_id or self.client_secret)

        if self.access_token and has_oauth:
            raise ConfigurationError(
                "Configure either client_id/client_secret or access_token, not both"
            )

        if self.access_token:
            validate_access_token(self.access_token)
            logger.debug(f"Client for {self.hostname}: using access token")
            return

        if not self.client_id or not self.client_secret:
            raise ConfigurationError(
                "Both client_id and client_secret are required "
                "unless an access_token is configured"
            )
        logger.debug(f"Client for {self.hostname}: using client credentials")

    def _validate_base_url(self) -> None:
        if not self.base_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"base_url must be an http(s) URL, got '{self.base_url}'"
            )
        if self.base_url.startswith("http://"):
            warnings.warn(
                f"Client for {self.hostname}: credentials will be sent "
                f"unencrypted to {self.base_url}",
                UserWarning,
                stacklevel=3,
            )

    @classmethod
    def from_env(cls, prefix: str = "ANALYTICS_", **overrides) -> "ClientConfig":
        """Build a config from environment variables.

        Reads ``{prefix}HOSTNAME``, ``PROTOCOL``, ``CLIENT_ID``,
        ``CLIENT_SECRET``, ``ACCESS_TOKEN``, ``BASE_URL`` and ``TIMEOUT``.
        Keyword overrides take precedence over the environment.
        """
        def env(name: str) -> str | None:
            value = os.environ.get(f"{prefix}{name}")
            return value if value else None

        values = {
            "hostname": env("HOSTNAME") or "",
            "protocol": env("PROTOCOL") or "https",
            "client_id": env("CLIENT_ID"),
            "client_secret": env("CLIENT_SECRET"),
            "access_token": env("ACCESS_TOKEN"),
            "base_url": env("BASE_URL") or DEFAULT_BASE_URL,
        }
        timeout = env("TIMEOUT")
        if timeout is not None:
            try:
                values["timeout"] = float(timeout)
            except ValueError:
                raise ConfigurationError(f"{prefix}TIMEOUT must be a number, got '{timeout}'")

        values.update(overrides)
        return cls(**values)
