"""
JWT cookie handling

The access token is delivered in the response body and in the "JWT" cookie.
Cookie attributes: Path=/, Max-Age=JWT_TTL_SECONDS, SameSite from settings (lax),
HttpOnly/Secure from settings (config refuses to disable them outside development).
"""
from typing import Optional
from fastapi import Response
from starlette.requests import Request

from app.core.config import settings

COOKIE_PATH = "/"


def _cookie_domain() -> Optional[str]:
    return settings.COOKIE_DOMAIN or None


def set_jwt_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.JWT_COOKIE_NAME,
        value=token,
        max_age=settings.JWT_TTL_SECONDS,
        path=COOKIE_PATH,
        domain=_cookie_domain(),
        secure=settings.COOKIE_SECURE,
        httponly=settings.COOKIE_HTTPONLY,
        samesite=settings.COOKIE_SAMESITE,
    )


def clear_jwt_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.JWT_COOKIE_NAME,
        path=COOKIE_PATH,
        domain=_cookie_domain(),
        secure=settings.COOKIE_SECURE,
        httponly=settings.COOKIE_HTTPONLY,
        samesite=settings.COOKIE_SAMESITE,
    )


def extract_jwt(request: Request) -> Optional[str]:
    """Raw token from the JWT cookie, or None if absent/empty."""
    return request.cookies.get(settings.JWT_COOKIE_NAME) or None
