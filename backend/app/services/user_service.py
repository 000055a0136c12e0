"""
User Service

Account lookup and creation shared by the register route and the
create_admin command.
"""
import logging
from typing import List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.security import get_password_hash
from app.core.validation import FieldRule, detect_suspicious_pattern, validate_fields
from app.models.user import ROLE_ADMIN, ROLE_USER, User

logger = logging.getLogger(__name__)

ACCOUNT_RULES = {
    "username": FieldRule(required=True, type="string", min=3, max=50),
    "email": FieldRule(required=True, type="email"),
    "password": FieldRule(required=True, type="password"),
}


def validate_new_account(
    username: str,
    email: str,
    password: Optional[str] = None,
    *,
    check_password: bool = True,
) -> List[str]:
    """
    Check a prospective account against the username/email/password rules.

    Usernames may not contain "@" so a login name can never be mistaken
    for somebody else's email address. Admin-created accounts skip the
    password rule; their owner sets one through the welcome link.

    Returns:
        Every failing reason; empty list when the account data is acceptable
    """
    data = {"username": username, "email": email}
    rules = {name: rule for name, rule in ACCOUNT_RULES.items() if name != "password"}
    if check_password:
        data["password"] = password
        rules["password"] = ACCOUNT_RULES["password"]
    errors = validate_fields(data, rules)
    if username and "@" in username:
        errors.setdefault("username", []).append("username must not contain @")
    if username and detect_suspicious_pattern(username):
        logger.warning("Suspicious username submitted for a new account")
        if settings.REJECT_SUSPICIOUS_INPUT:
            errors.setdefault("username", []).append("username contains invalid characters")
    return [message for messages in errors.values() for message in messages]


class UserService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def get_user_by_login(self, login: str) -> Optional[User]:
        """Email lookup when the login contains "@", otherwise username."""
        if "@" in login:
            return await self.get_user_by_email(login)
        result = await self.db.execute(select(User).where(User.username == login))
        return result.scalar_one_or_none()

    async def find_conflict(self, username: str, email: str, exclude_id: Optional[int] = None) -> Optional[str]:
        """Message for another account sharing this email or username, else None."""
        query = select(User).where(or_(func.lower(User.email) == email.lower(), User.username == username))
        if exclude_id is not None:
            query = query.where(User.id != exclude_id)
        result = await self.db.execute(query)
        clash = result.scalars().first()
        if not clash:
            return None
        if clash.email.lower() == email.lower():
            return "Email in use"
        return "Username in use"

    async def create_user(
        self,
        username: str,
        email: str,
        password: str,
        role: str = ROLE_USER,
    ) -> User:
        user = User(
            username=username,
            email=email.strip().lower(),
            hashed_password=get_password_hash(password),
            role=role,
        )
        self.db.add(user)
        await self.db.flush()
        logger.info(f"User created: id={user.id} role={role}")
        return user

    async def create_admin(self, username: str, email: str, password: str) -> User:
        """
        Create an admin account after the same checks registration applies.

        Raises:
            ValueError: with every failing reason, or the conflicting field
        """
        errors = validate_new_account(username, email, password)
        if errors:
            raise ValueError("; ".join(errors))

        conflict = await self.find_conflict(username, email)
        if conflict:
            raise ValueError(conflict)

        return await self.create_user(username, email, password, role=ROLE_ADMIN)

    async def update_user(
        self,
        user: User,
        username: Optional[str] = None,
        email: Optional[str] = None,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> List[str]:
        """
        Apply admin edits. Fields left as None are unchanged.

        Returns:
            Names of the fields that changed
        """
        changed = []
        if username is not None and username != user.username:
            user.username = username
            changed.append("username")
        if email is not None and email.strip().lower() != user.email:
            user.email = email.strip().lower()
            changed.append("email")
        if role is not None and role != user.role:
            user.role = role
            changed.append("role")
        if is_active is not None and is_active != user.is_active:
            user.is_active = is_active
            changed.append("is_active")
        await self.db.flush()
        return changed

    async def delete_user(self, user_id: int) -> bool:
        """Delete an account; its reset requests go with it (ON DELETE CASCADE)."""
        result = await self.db.execute(delete(User).where(User.id == user_id))
        return result.rowcount == 1
