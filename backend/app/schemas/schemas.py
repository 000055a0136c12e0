from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel


# ============================================================================
# USER SCHEMAS
# ============================================================================
# Request fields are optional so the routes can answer missing input with a
# 400 and a specific message instead of a generic schema error.
class UserRegister(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class UserLogin(BaseModel):
    username: Optional[str] = None  # username or email
    password: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    role: str
    is_active: bool = True
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Admin user management
class UserCreate(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None  # "user" unless "admin"


class UserUpdate(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    is_active: Optional[bool] = None


class UserCreatedResponse(BaseModel):
    id: int
    role: str
    message: str


class UserUpdatedResponse(BaseModel):
    saved: bool
    changed: List[str]


class LoginResponse(BaseModel):
    message: str
    token: str
    user: UserResponse


class MessageResponse(BaseModel):
    message: str


# ============================================================================
# PASSWORD SCHEMAS
# ============================================================================
class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    password: Optional[str] = None


class PasswordChange(BaseModel):
    current_password: Optional[str] = None
    new_password: Optional[str] = None


# ============================================================================
# ITEM SCHEMAS
# ============================================================================
class ItemResponse(BaseModel):
    id: int
    name: str
    category: Optional[str] = None

    class Config:
        from_attributes = True


class ItemListResponse(BaseModel):
    items: List[ItemResponse]
    total: int
