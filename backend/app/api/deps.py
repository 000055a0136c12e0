"""
API dependencies

The credential is read from the JWT cookie only. Missing, malformed, expired
and orphaned tokens all produce the same 401 {"message": "JWT Token not found"}.
"""
import logging
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.audit_log import security_audit
from app.core.cookies import extract_jwt
from app.core.database import get_db
from app.core.exceptions import AccessDenied, CredentialExpired, CredentialMissing
from app.core.request_utils import get_client_ip
from app.core.security import decode_token
from app.models.user import User

logger = logging.getLogger(__name__)


async def _user_from_request(request: Request, db: AsyncSession) -> Optional[User]:
    token = extract_jwt(request)
    if not token:
        raise CredentialMissing()

    payload = decode_token(token)
    if not payload or payload.get("type") != "access":
        logger.debug("Rejected invalid or expired JWT cookie")
        raise CredentialExpired()

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise CredentialExpired()

    user = await db.get(User, user_id)
    if not user or not user.is_active:
        raise CredentialMissing()

    return user


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Get current authenticated user"""
    return await _user_from_request(request, db)


async def get_optional_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Get current user if authenticated, None otherwise"""
    try:
        return await _user_from_request(request, db)
    except CredentialMissing:
        return None


async def get_current_admin(
    request: Request,
    user: User = Depends(get_current_user),
) -> User:
    """Require admin user"""
    if not user.is_admin:
        security_audit.log_access_denied(
            username=user.username,
            ip=get_client_ip(request),
            resource=request.url.path,
            required_role="admin",
        )
        raise AccessDenied("Admin access required")
    return user
