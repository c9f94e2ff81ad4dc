"""
Rate limit dependencies shared by the routers.

Each dependency counts the request against one limiter and reports the
client's quota in RateLimit-Limit / RateLimit-Remaining headers.
"""

from fastapi import Request, Response

from questpoints.services.rate_limit import (
    RateLimiter,
    get_public_list_rate_limiter,
    get_spin_rate_limiter,
)


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _enforce(limiter: RateLimiter, request: Request, response: Response) -> None:
    ip_address = _client_ip(request)
    limiter.check(ip_address)
    response.headers["RateLimit-Limit"] = str(limiter.requests_per_window)
    response.headers["RateLimit-Remaining"] = str(limiter.remaining(ip_address))


def enforce_spin_rate_limit(request: Request, response: Response) -> None:
    """Dependency: count the request against the caller's spin limit."""
    _enforce(get_spin_rate_limiter(), request, response)


def enforce_public_list_rate_limit(request: Request, response: Response) -> None:
    """Dependency: count the request against the caller's public read limit."""
    _enforce(get_public_list_rate_limiter(), request, response)
