"""
Request utility functions

Client identity used by the rate limit gate, the login flow and audit records.
"""
from typing import Optional

from slowapi.util import get_remote_address
from starlette.requests import Request

from app.core.config import settings


def get_client_ip(request: Request) -> str:
    """
    Get client IP, respecting X-Forwarded-For only behind a trusted proxy.

    Falls back to the socket peer address (slowapi's resolver), which never returns empty.
    """
    if settings.TRUST_FORWARDED_FOR:
        forwarded = request.headers.get("x-forwarded-for")
        # First IP in the chain is the original client
        first_hop = (forwarded or "").split(",")[0].strip()
        if first_hop:
            return first_hop
    return get_remote_address(request)


def get_user_agent(request: Request) -> Optional[str]:
    """Extract user agent string from request."""
    return request.headers.get("user-agent")
