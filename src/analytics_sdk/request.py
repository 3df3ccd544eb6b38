"""
Hit derivation from inbound HTTP requests.

Builds the ``Hit`` reported to the analytics service from a FastAPI (or
Starlette) request. Derivation is pure: it reads the request and the client
config, performs no I/O, and returns the same hit for the same request.

What gets extracted:
- URL: rebuilt from the configured protocol and hostname plus the request
  path and query, so proxies and internal host names don't leak into stats
- IP: see "Client IP precedence" below
- Referrer: the Referer header, or a referral query parameter
- User-Agent, Accept-Language and client hints for visitor fingerprinting
  and bot filtering on the service side
- DNT, kept on the hit so the client can skip it

Client IP precedence:
    Headers in ``ClientConfig.ip_headers`` are checked in order (default:
    CF-Connecting-IP, True-Client-IP, X-Forwarded-For, Forwarded, X-Real-IP).
    The first header that holds a valid IP address wins. For list-valued
    headers (X-Forwarded-For, Forwarded) the leftmost valid entry is used,
    which is the original client when every proxy appends to the list.
    Invalid entries are skipped. Without a usable header the socket peer
    address is used. Set ``ip_headers=()`` when the app isn't behind a
    trusted proxy, otherwise visitors can spoof their address.
"""

import ipaddress

from fastapi import Request

from .config import ClientConfig
from .core.models import Hit

# Query parameters carrying a referrer when the Referer header is missing
REFERRER_QUERY_PARAMS = ("ref", "referer", "referrer", "source", "utm_source")

# Headers copied verbatim onto the hit
CLIENT_HINT_HEADERS = {
    "sec_ch_ua": "Sec-CH-UA",
    "sec_ch_ua_mobile": "Sec-CH-UA-Mobile",
    "sec_ch_ua_platform": "Sec-CH-UA-Platform",
    "sec_ch_ua_platform_version": "Sec-CH-UA-Platform-Version",
    "sec_ch_width": "Sec-CH-Width",
    "sec_ch_viewport_width": "Sec-CH-Viewport-Width",
}


def _normalize_ip(value: str) -> str | None:
    """Return the address in a header entry, or None if it isn't one.

    Accepts bare addresses, IPv4 with a port, and bracketed IPv6 with or
    without a port.
    """
    value = value.strip().strip('"')
    if not value:
        return None

    if value.startswith("["):
        end = value.find("]")
        if end == -1:
            return None
        value = value[1:end]
    elif value.count(":") == 1:
        value = value.split(":", 1)[0]

    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        return None


def _forwarded_for(value: str) -> list[str]:
    """Extract ``for=`` values from an RFC 7239 Forwarded header."""
    addresses = []
    for element in value.split(","):
        for pair in element.split(";"):
            key, _, param = pair.partition("=")
            if key.strip().lower() == "for":
                addresses.append(param)
    return addresses


def _header_ip(name: str, value: str) -> str | None:
    if name.lower() == "forwarded":
        candidates = _forwarded_for(value)
    else:
        candidates = value.split(",")

    for candidate in candidates:
        ip = _normalize_ip(candidate)
        if ip:
            return ip
    return None


def client_ip(request: Request, ip_headers: tuple[str, ...] = ()) -> str:
    """Get the visitor IP, checking trusted headers before the peer address."""
    for name in ip_headers:
        value = request.headers.get(name)
        if not value:
            continue
        ip = _header_ip(name, value)
        if ip:
            return ip

    if request.client and request.client.host:
        return _normalize_ip(request.client.host) or request.client.host
    return ""


def referrer_from_request(request: Request) -> str:
    """Get the Referer header, falling back to referral query parameters."""
    referrer = request.headers.get("referer", "").strip()
    if referrer:
        return referrer

    for param in REFERRER_QUERY_PARAMS:
        value = request.query_params.get(param, "").strip()
        if value:
            return value
    return ""


def page_url(request: Request, config: ClientConfig) -> str:
    """Canonical URL of the requested page on the configured host."""
    url = f"{config.protocol}://{config.hostname}{request.url.path}"
    if request.url.query:
        url = f"{url}?{request.url.query}"
    return url


def hit_from_request(
    request: Request,
    config: ClientConfig,
    title: str = "",
    screen_width: int = 0,
    screen_height: int = 0,
    tags: dict[str, str] | None = None,
) -> Hit:
    """
    Derive a Hit from an inbound request.

    Args:
        request: The request being served
        config: Client config providing protocol, hostname and trusted IP headers
        title: Optional page title
        screen_width: Optional screen width reported by the browser
        screen_height: Optional screen height reported by the browser
        tags: Optional custom tags for the page view

    Returns:
        An immutable Hit ready to send
    """
    headers = request.headers
    hints = {field: headers.get(header, "") for field, header in CLIENT_HINT_HEADERS.items()}

    return Hit(
        url=page_url(request, config),
        ip=client_ip(request, config.ip_headers),
        user_agent=headers.get("user-agent", ""),
        accept_language=headers.get("accept-language", ""),
        referrer=referrer_from_request(request),
        title=title,
        screen_width=screen_width,
        screen_height=screen_height,
        tags=tags or {},
        dnt=headers.get("dnt", ""),
        **hints,
    )
