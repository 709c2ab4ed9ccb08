"""Auth schemas"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class RegisterRequest(BaseModel):
    """Schema for registering a new account"""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=1, max_length=128)


class UserInfo(BaseModel):
    """Identity summary returned alongside an access token"""

    id: str
    email: str
    first_name: str
    last_name: str

    class Config:
        from_attributes = True


class AuthResponse(BaseModel):
    """Uniform result of register, login and refresh.

    The refresh token itself never appears here; the API layer delivers it
    as an HTTP-only cookie.
    """

    success: bool
    access_token: Optional[str] = None
    token_type: str = "bearer"
    expires_at: Optional[datetime] = None
    user: Optional[UserInfo] = None
    errors: List[str] = Field(default_factory=list)


class ChangePasswordResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    errors: List[str] = Field(default_factory=list)


class UserProfileResponse(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    created_at: datetime
    last_login_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    message: str
