"""Session lifecycle services"""
from parley.services.refresh_token_store import RefreshTokenStore
from parley.services.session_service import SessionService
from parley.services.user_directory import IdentityResult, UserDirectory

__all__ = ["IdentityResult", "RefreshTokenStore", "SessionService", "UserDirectory"]
