import re
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import List, Literal, Optional

from models.users import Role
from schemas.common import ORMBase

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")

def _check_password_strength(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not PASSWORD_PATTERN.match(value):
        raise ValueError(
            "Password must contain at least one uppercase letter, one lowercase letter, and one number"
        )
    return value

# Shared properties for user models
class UserBase(BaseModel):
    email: EmailStr

# Schema for user authentication credentials
class UserLogin(UserBase):
    password: str = Field(min_length=1)

# Schema for user registration requests
class UserCreate(UserBase):
    password: str
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    phone: Optional[str] = None
    gender: Optional[Literal["male", "female", "other"]] = None

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return _check_password_strength(v)

# Output schema for user details (never exposes the password hash)
class UserResponse(ORMBase):
    id: int
    email: str
    role: Role
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    gender: Optional[str] = None
    is_active: bool
    email_verified: bool
    created_at: Optional[datetime] = None

# Registration result
class RegisterResponse(BaseModel):
    user: UserResponse
    token: str

# Login result; the refresh token travels in an HTTP-only cookie
class LoginResponse(BaseModel):
    user: UserResponse
    token: str
    expires_at: datetime

class TokenRefreshRequest(BaseModel):
    refresh_token: Optional[str] = None

class TokenResponse(BaseModel):
    token: str
    expires_at: datetime

class TokenValidation(BaseModel):
    is_valid: bool
    user: UserResponse

class ForgotPasswordRequest(BaseModel):
    email: EmailStr

class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return _check_password_strength(v)

class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return _check_password_strength(v)

# Profile updates; every field optional
class UserUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    phone: Optional[str] = None
    gender: Optional[Literal["male", "female", "other"]] = None

class AddressCreate(BaseModel):
    label: str = Field(min_length=1)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zip_code: str = Field(min_length=1)
    country: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    is_default: bool = False

class AddressUpdate(BaseModel):
    label: Optional[str] = Field(None, min_length=1)
    first_name: Optional[str] = Field(None, min_length=1)
    last_name: Optional[str] = Field(None, min_length=1)
    address: Optional[str] = Field(None, min_length=1)
    city: Optional[str] = Field(None, min_length=1)
    state: Optional[str] = Field(None, min_length=1)
    zip_code: Optional[str] = Field(None, min_length=1)
    country: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = Field(None, min_length=1)
    is_default: Optional[bool] = None

class AddressResponse(ORMBase):
    id: int
    label: str
    first_name: str
    last_name: str
    address: str
    city: str
    state: str
    zip_code: str
    country: str
    phone: str
    is_default: bool

class PreferencesUpdate(BaseModel):
    theme: Optional[Literal["light", "dark"]] = None
    notifications: Optional[bool] = None
    email_notifications: Optional[bool] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    language: Optional[str] = Field(None, min_length=2, max_length=2)

class PreferencesResponse(ORMBase):
    theme: str
    notifications: bool
    email_notifications: bool
    currency: str
    language: str

class ProfileCounts(BaseModel):
    orders: int
    reviews: int
    wishlists: int

class ProfileResponse(UserResponse):
    preferences: Optional[PreferencesResponse] = None
    addresses: List[AddressResponse] = []
    counts: ProfileCounts

# Admin listing row
class AdminUserRow(UserResponse):
    order_count: int = 0

# Schema for administrative activation toggles
class UserStatusUpdate(BaseModel):
    is_active: bool
