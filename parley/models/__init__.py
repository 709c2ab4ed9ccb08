"""Database models"""
from parley.models.refresh_token import RefreshToken
from parley.models.user import User

__all__ = ["RefreshToken", "User"]
