"""
Authentication routes

- POST /api/login: username-keyed rate limit, credential check, JWT in body + cookie
- POST /api/logout: clears the JWT cookie

The gate middleware skips /api/login; the login policy is consumed here so
it can be keyed by the submitted username rather than the client IP.
"""
import asyncio
import logging
import random
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_optional_user
from app.core.audit_log import security_audit
from app.core.config import settings
from app.core.cookies import clear_jwt_cookie, set_jwt_cookie
from app.core.database import get_db
from app.core.exceptions import InvalidCredentials, ValidationFailed
from app.core.rate_limit import LOGIN_POLICY, RateLimiter
from app.core.request_utils import get_client_ip, get_user_agent
from app.core.security import create_access_token, verify_password
from app.core.validation import detect_suspicious_pattern
from app.models.user import User
from app.schemas.schemas import LoginResponse, MessageResponse, UserLogin, UserResponse
from app.services.user_service import UserService

logger = logging.getLogger(__name__)
router = APIRouter()

TOO_MANY_ATTEMPTS_MESSAGE = "Too many login attempts. Please try again in a minute."

# Seconds of artificial latency before answering a throttled login
LOGIN_THROTTLE_DELAY = (0.1, 0.5)


@router.post("/login", response_model=LoginResponse)
async def login(
    request: Request,
    response: Response,
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db),
):
    """
    Login and get access token.

    The token is returned in the body and set as the HttpOnly JWT cookie.
    Failure messages never reveal whether the username exists.
    """
    username = (credentials.username or "").strip()
    if not username or not credentials.password:
        raise ValidationFailed("Missing credentials")

    client_ip = get_client_ip(request)
    user_agent = get_user_agent(request)

    limiter: RateLimiter = request.app.state.rate_limiter
    if settings.RATE_LIMIT_ENABLED:
        decision = await limiter.consume(LOGIN_POLICY, username.lower())
        if not decision.accepted:
            await asyncio.sleep(random.uniform(*LOGIN_THROTTLE_DELAY))
            security_audit.log_rate_limit_exceeded(
                identifier=username,
                policy=LOGIN_POLICY,
                ip=client_ip,
                path=request.url.path,
            )
            security_audit.log_login_failure(username, client_ip, "rate_limited", user_agent)
            raise InvalidCredentials(TOO_MANY_ATTEMPTS_MESSAGE)

    user = await UserService(db).get_user_by_login(username)

    if not user or not user.is_active or not verify_password(credentials.password, user.hashed_password):
        security_audit.log_login_failure(
            username,
            client_ip,
            "invalid_credentials",
            user_agent,
            suspicious_input=detect_suspicious_pattern(username),
        )
        raise InvalidCredentials()

    token = create_access_token(str(user.id), username=user.username)
    set_jwt_cookie(response, token)

    security_audit.log_login(user.username, client_ip, user_agent, user_id=user.id)

    return LoginResponse(
        message="Login successful",
        token=token,
        user=UserResponse.model_validate(user),
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    user: Optional[User] = Depends(get_optional_user),
):
    """Clear the JWT cookie. The client should discard any token it kept from the body."""
    clear_jwt_cookie(response)
    if user:
        security_audit.log_logout(user.username, get_client_ip(request), user_id=user.id)
    return MessageResponse(message="Logged out successfully")
