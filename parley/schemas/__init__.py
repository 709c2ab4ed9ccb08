"""Pydantic schemas for request/response validation"""
from parley.schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    ChangePasswordResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    UserInfo,
    UserProfileResponse,
)

__all__ = [
    "RegisterRequest",
    "LoginRequest",
    "ChangePasswordRequest",
    "UserInfo",
    "AuthResponse",
    "ChangePasswordResponse",
    "UserProfileResponse",
    "MessageResponse",
]
