"""Client identifier extraction for IP-keyed rate limits."""

from __future__ import annotations

from fastapi import Request

from gatekeeper.core.config import settings

UNKNOWN_CLIENT = "unknown"


def get_client_ip(request: Request) -> str:
    """Return the best-effort client IP for ``request``.

    Order of preference: first ``X-Forwarded-For`` entry, ``X-Real-IP``,
    then the socket peer. Proxy headers are only honored when
    ``RATE_LIMIT_TRUST_PROXY_HEADERS`` is enabled, since clients can forge
    them when the service is not behind a proxy.

    Examples:
        X-Forwarded-For: "192.168.1.1, 10.0.0.1" -> "192.168.1.1"
    """

    if settings.rate_limit.trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first

        real_ip = request.headers.get("x-real-ip")
        if real_ip and real_ip.strip():
            return real_ip.strip()

    return get_peer_ip(request)


def get_peer_ip(request: Request) -> str:
    """Return the socket peer address, ignoring proxy headers.

    Used for guards on credential checks, where a forged ``X-Forwarded-For``
    must not buy a fresh budget.
    """

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT
