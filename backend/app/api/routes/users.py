"""
User routes

Registration, profile, password recovery and admin user management.
Admin-created accounts get a random password and a welcome email whose
reset link lets the owner set their own.
register / forgot-password / reset-password-token are gated by the stricter
protected_api rate limit policy.
"""
import logging
import secrets
from typing import List

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_admin, get_current_user
from app.core.audit_log import security_audit
from app.core.database import get_db
from app.core.exceptions import (
    Conflict,
    InvalidCredentials,
    NotFound,
    TokenInvalidOrExpired,
    ValidationFailed,
)
from app.core.request_utils import get_client_ip
from app.core.security import get_password_hash, verify_password
from app.core.validation import password_policy_message, sanitize_text
from app.models.user import ROLE_ADMIN, ROLE_USER, User
from app.schemas.schemas import (
    ForgotPasswordRequest,
    MessageResponse,
    PasswordChange,
    ResetPasswordRequest,
    UserCreate,
    UserCreatedResponse,
    UserRegister,
    UserResponse,
    UserUpdate,
    UserUpdatedResponse,
)
from app.services.email_service import EmailService, get_email_service
from app.services.password_reset_service import PasswordResetService
from app.services.user_service import UserService, validate_new_account

logger = logging.getLogger(__name__)
router = APIRouter()

RESET_REQUEST_MESSAGE = "If an account with that email exists, a reset link has been sent"
ROLES = (ROLE_USER, ROLE_ADMIN)


@router.post("/register", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: Request,
    data: UserRegister,
    db: AsyncSession = Depends(get_db),
):
    """Create a regular user account."""
    if not data.username or not data.email or not data.password:
        raise ValidationFailed("Missing fields")

    username = sanitize_text(data.username)
    email = data.email.strip().lower()

    errors = validate_new_account(username, email, data.password)
    if errors:
        raise ValidationFailed("Invalid registration data", errors=errors)

    user_service = UserService(db)
    conflict = await user_service.find_conflict(username, email)
    if conflict:
        raise Conflict(conflict)

    user = await user_service.create_user(username, email, data.password)
    await db.commit()

    logger.info(f"User registered: id={user.id} ip={get_client_ip(request)}")
    return MessageResponse(message="Registered")


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(user: User = Depends(get_current_user)):
    """Get current user profile"""
    return user


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    request: Request,
    data: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    """
    Request a password reset link.

    Always returns the same message to prevent email enumeration.
    The token is only ever delivered by email.
    """
    if not data.email or not data.email.strip():
        raise ValidationFailed("Email is required")

    reset = await PasswordResetService(db, email_service).request_reset(data.email)

    security_audit.log_password_reset_request(
        data.email.strip(),
        get_client_ip(request),
        user_found=reset is not None,
    )

    return MessageResponse(message=RESET_REQUEST_MESSAGE)


@router.post("/reset-password-token/{token}", response_model=MessageResponse)
async def reset_password_with_token(
    token: str,
    request: Request,
    data: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
):
    """Set a new password using the emailed token. The token is consumed."""
    if not data.password:
        raise ValidationFailed("Missing password")

    policy_error = password_policy_message(data.password)
    if policy_error:
        raise ValidationFailed(policy_error)

    user = await PasswordResetService(db).redeem(token, data.password)
    if not user:
        raise TokenInvalidOrExpired()

    security_audit.log_password_change(user.username, get_client_ip(request), "reset_token", user_id=user.id)
    return MessageResponse(message="Password has been reset successfully")


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    request: Request,
    data: PasswordChange,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Change password (requires current password)."""
    if not data.current_password or not data.new_password:
        raise ValidationFailed("Missing fields")

    if not verify_password(data.current_password, user.hashed_password):
        raise InvalidCredentials("Current password is incorrect")

    policy_error = password_policy_message(data.new_password)
    if policy_error:
        raise ValidationFailed(policy_error)

    user.hashed_password = get_password_hash(data.new_password)
    user.record_password_change()
    await db.commit()

    security_audit.log_password_change(user.username, get_client_ip(request), "self_service", user_id=user.id)
    return MessageResponse(message="Password changed successfully")


# ============================================================
# Admin
# ============================================================

@router.get("", response_model=List[UserResponse])
async def list_users(
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(User).order_by(User.id))
    return result.scalars().all()


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    request: Request,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await db.get(User, user_id)
    if not user:
        raise NotFound("User not found")

    security_audit.log_sensitive_data_access(
        admin.username,
        get_client_ip(request),
        resource=f"user/{user_id}",
        user_id=admin.id,
    )
    return user


@router.post("/{user_id}/reset-password", response_model=MessageResponse)
async def send_reset_link(
    user_id: int,
    request: Request,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    """Email a reset link to a user on an admin's behalf."""
    user = await db.get(User, user_id)
    if not user:
        raise NotFound("User not found")

    await PasswordResetService(db, email_service).request_reset(user.email)

    security_audit.log_password_reset_request(
        user.email,
        get_client_ip(request),
        user_found=True,
        requested_by=admin.username,
    )
    return MessageResponse(message=f"Reset link sent to {user.email}")


@router.post("", response_model=UserCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    request: Request,
    data: UserCreate,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    """Create an account and email its owner a link to set a password."""
    for field in ("username", "email"):
        if not getattr(data, field):
            raise ValidationFailed(f"Missing {field}")

    username = sanitize_text(data.username)
    email = data.email.strip().lower()
    role = ROLE_ADMIN if data.role == ROLE_ADMIN else ROLE_USER

    errors = validate_new_account(username, email, check_password=False)
    if errors:
        raise ValidationFailed("Invalid user data", errors=errors)

    user_service = UserService(db)
    conflict = await user_service.find_conflict(username, email)
    if conflict:
        raise Conflict(conflict)

    # Placeholder until the owner follows the welcome link
    user = await user_service.create_user(username, email, secrets.token_hex(16), role=role)
    reset = await PasswordResetService(db).issue_for_user(user)
    await db.commit()

    result = await email_service.send_welcome(user.email, user.username, reset.token, role)
    if not result.success:
        logger.warning(f"Welcome email for user {user.id} not delivered: {result.error}")

    security_audit.log_sensitive_data_access(
        admin.username,
        get_client_ip(request),
        resource=f"user/{user.id}",
        user_id=admin.id,
        action="create",
    )
    return UserCreatedResponse(
        id=user.id,
        role=user.role,
        message="User created successfully. Password setup email sent.",
    )


@router.post("/create-admin", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def create_admin(
    request: Request,
    data: UserRegister,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create an admin account with a password chosen by the calling admin."""
    if not data.username or not data.email or not data.password:
        raise ValidationFailed("Missing fields")

    username = sanitize_text(data.username)
    email = data.email.strip().lower()

    errors = validate_new_account(username, email, data.password)
    if errors:
        raise ValidationFailed("Invalid admin data", errors=errors)

    user_service = UserService(db)
    conflict = await user_service.find_conflict(username, email)
    if conflict:
        raise Conflict(conflict)

    user = await user_service.create_user(username, email, data.password, role=ROLE_ADMIN)
    await db.commit()

    security_audit.log_sensitive_data_access(
        admin.username,
        get_client_ip(request),
        resource=f"user/{user.id}",
        user_id=admin.id,
        action="create_admin",
    )
    return MessageResponse(message="Admin created")


@router.put("/{user_id}", response_model=UserUpdatedResponse)
async def update_user(
    user_id: int,
    request: Request,
    data: UserUpdate,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """Edit username, email, role or active flag. Deactivated accounts cannot log in."""
    user = await db.get(User, user_id)
    if not user:
        raise NotFound("User not found")

    if data.role is not None and data.role not in ROLES:
        raise ValidationFailed(f"Role must be one of: {', '.join(ROLES)}")
    if user.id == admin.id and (data.is_active is False or data.role == ROLE_USER):
        raise ValidationFailed("Admins cannot deactivate or demote themselves")

    username = sanitize_text(data.username) if data.username is not None else None
    email = data.email.strip().lower() if data.email is not None else None

    user_service = UserService(db)
    if username is not None or email is not None:
        new_username = username if username is not None else user.username
        new_email = email if email is not None else user.email
        errors = validate_new_account(new_username, new_email, check_password=False)
        if errors:
            raise ValidationFailed("Invalid user data", errors=errors)
        conflict = await user_service.find_conflict(new_username, new_email, exclude_id=user.id)
        if conflict:
            raise Conflict(conflict)

    changed = await user_service.update_user(
        user,
        username=username,
        email=email,
        role=data.role,
        is_active=data.is_active,
    )
    await db.commit()

    security_audit.log_sensitive_data_access(
        admin.username,
        get_client_ip(request),
        resource=f"user/{user_id}",
        user_id=admin.id,
        action="update",
        changed=changed,
    )
    return UserUpdatedResponse(saved=True, changed=changed)


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: int,
    request: Request,
    admin: User = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete an account together with its pending reset requests."""
    if user_id == admin.id:
        raise ValidationFailed("Admins cannot delete their own account")

    if not await UserService(db).delete_user(user_id):
        raise NotFound("User not found")
    await db.commit()

    security_audit.log_sensitive_data_access(
        admin.username,
        get_client_ip(request),
        resource=f"user/{user_id}",
        user_id=admin.id,
        action="delete",
    )
    return MessageResponse(message="User deleted")
