from app.models.user import User
from app.models.password_reset import PasswordResetRequest
from app.models.item import Item

__all__ = ["User", "PasswordResetRequest", "Item"]
