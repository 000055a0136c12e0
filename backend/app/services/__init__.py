# Services layer for business logic
from app.services.email_service import EmailService, SendResult
from app.services.password_reset_service import PasswordResetService
from app.services.user_service import UserService

__all__ = [
    "EmailService",
    "SendResult",
    "PasswordResetService",
    "UserService",
]
