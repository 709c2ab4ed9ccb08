"""Session lifecycle: registration, login, refresh token rotation and revocation.

Refresh token states::

    Active ──redeem──▶ Revoked ("Rotated", replaced_by_token_id → successor)
    Active ──revoke──▶ Revoked (caller-supplied reason)
    Active ──time────▶ Expired

Revoked and Expired tokens can never be redeemed. Presenting a token that is
already revoked is treated as replay of a stolen token: every active token of
its owner is revoked.

Register, login and refresh never raise for expected failures; they return an
``AuthResponse`` with ``success=False`` and human-readable ``errors``. Failure
messages are deliberately generic so callers cannot tell an unknown token from
an expired or revoked one, or an unknown email from a wrong password.
"""
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from parley.middleware.monitoring import record_auth_event, record_reuse_detected, record_revocation
from parley.models.refresh_token import RefreshToken
from parley.models.user import User
from parley.schemas.auth import (
    AuthResponse,
    ChangePasswordResponse,
    LoginRequest,
    RegisterRequest,
    UserInfo,
    UserProfileResponse,
)
from parley.services.refresh_token_store import RefreshTokenStore
from parley.services.user_directory import UserDirectory
from parley.utils.clock import Clock, utcnow
from parley.utils.jwt_utils import TokenSigner
from parley.utils.logger import logger

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_REFRESH_TOKEN = "Invalid refresh token"
REUSE_DETECTED_REASON = "Possible token reuse detected"
DEFAULT_REVOKE_REASON = "Revoked by user"
DEFAULT_REVOKE_ALL_REASON = "Revoked all tokens"

AuthOutcome = Tuple[AuthResponse, Optional[str]]


class SessionService:
    """Orchestrates the user store, token signer and refresh token store."""

    def __init__(
        self,
        users: UserDirectory,
        tokens: RefreshTokenStore,
        signer: TokenSigner,
        clock: Clock = utcnow,
    ):
        self.users = users
        self.tokens = tokens
        self.signer = signer
        self._clock = clock

    # ------------------------------------------------------------------
    # Register / login
    # ------------------------------------------------------------------

    def register(self, request: RegisterRequest) -> AuthOutcome:
        user = User(
            email=request.email,
            first_name=request.first_name,
            last_name=request.last_name,
        )
        result = self.users.create(user, request.password)
        if not result.succeeded:
            logger.info("Registration rejected", extra={"action": "register"})
            record_auth_event("register", False)
            return AuthResponse(success=False, errors=result.errors), None

        outcome = self._issue_session(user)
        record_auth_event("register", True)
        logger.info(f"Registered user {user.id}", extra={"user_id": user.id, "action": "register"})
        return outcome

    def login(self, request: LoginRequest) -> AuthOutcome:
        user = self.users.find_by_email(request.email)
        if user is None:
            # Same hashing cost as a real check
            self.users.verify_unknown_user(request.password)
        if user is None or not self.users.verify_password(user, request.password):
            logger.info("Login failed", extra={"user_id": user.id if user else None, "action": "login"})
            record_auth_event("login", False)
            return self._failure(INVALID_CREDENTIALS), None

        outcome = self._issue_session(user)
        self.users.record_login(user)
        record_auth_event("login", True)
        logger.info(f"User {user.id} logged in", extra={"user_id": user.id, "action": "login"})
        return outcome

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh_token(self, presented: str) -> AuthOutcome:
        """Redeem ``presented`` for a new access token and a rotated refresh token."""
        now = self._clock()
        record = self.tokens.get_by_value(presented) if presented else None
        if record is None:
            return self._refresh_failed("unknown token"), None

        if record.is_revoked:
            self._contain_reuse(record, now)
            return self._refresh_failed("revoked token", record), None

        if record.is_expired(now):
            return self._refresh_failed("expired token", record), None

        user = self.users.find_by_id(record.user_id)
        if user is None:
            return self._refresh_failed("owner not found", record), None

        successor = self.signer.issue_refresh_token(user.id)
        if not self.tokens.rotate(record, successor, now):
            # Lost a race with a concurrent redemption of the same token
            return self._refresh_failed("rotation conflict", record), None

        record_revocation("rotated")
        record_auth_event("refresh", True)
        logger.info(
            f"Rotated refresh token {record.id} -> {successor.id}",
            extra={"user_id": user.id, "token_id": record.id, "action": "rotate"},
        )
        return self._success(user), successor.token

    def _contain_reuse(self, record: RefreshToken, now: datetime) -> None:
        """Revoke every active token of the owner of a replayed token.

        Best-effort: a persistence failure here is logged, and the caller
        still receives the generic authentication failure.
        """
        record_reuse_detected()
        try:
            revoked = self.tokens.revoke_all_active(record.user_id, now, REUSE_DETECTED_REASON)
        except SQLAlchemyError:
            logger.error(
                f"Reuse containment failed for user {record.user_id}",
                extra={"user_id": record.user_id, "token_id": record.id, "action": "reuse_containment"},
                exc_info=True,
            )
            return

        record_revocation("reuse", revoked)
        logger.warning(
            f"Refresh token reuse detected for user {record.user_id}; revoked {revoked} active tokens",
            extra={
                "user_id": record.user_id,
                "token_id": record.id,
                "action": "reuse_containment",
                "revoked_count": revoked,
            },
        )

    def _refresh_failed(self, cause: str, record: Optional[RefreshToken] = None) -> AuthResponse:
        record_auth_event("refresh", False)
        logger.info(
            f"Refresh rejected: {cause}",
            extra={
                "user_id": record.user_id if record else None,
                "token_id": record.id if record else None,
                "action": "refresh",
            },
        )
        return self._failure(INVALID_REFRESH_TOKEN)

    # ------------------------------------------------------------------
    # Revocation
    # ------------------------------------------------------------------

    def revoke_token(self, value: str, reason: str = DEFAULT_REVOKE_REASON) -> None:
        """Revoke a single active token. Unknown or already revoked: no-op."""
        record = self.tokens.get_by_value(value) if value else None
        if record is None:
            return

        now = self._clock()
        if not record.is_active(now):
            return

        if self.tokens.revoke(record, now, reason):
            record_revocation("user")
            logger.info(
                f"Revoked refresh token {record.id}: {reason}",
                extra={"user_id": record.user_id, "token_id": record.id, "action": "revoke", "reason": reason},
            )

    def revoke_all_user_tokens(self, user_id: str, reason: str = DEFAULT_REVOKE_ALL_REASON) -> None:
        revoked = self.tokens.revoke_all_active(user_id, self._clock(), reason)
        record_revocation("all", revoked)
        logger.info(
            f"Revoked {revoked} refresh tokens for user {user_id}: {reason}",
            extra={"user_id": user_id, "action": "revoke_all", "reason": reason, "revoked_count": revoked},
        )

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    def change_password(self, user_id: str, current_password: str, new_password: str) -> ChangePasswordResponse:
        user = self.users.find_by_id(user_id)
        if user is None:
            return ChangePasswordResponse(success=False, errors=["User not found"])

        result = self.users.update_password(user, current_password, new_password)
        if not result.succeeded:
            return ChangePasswordResponse(success=False, errors=result.errors)
        return ChangePasswordResponse(success=True, message="Password changed successfully")

    def get_user_profile(self, user_id: str) -> Optional[UserProfileResponse]:
        user = self.users.find_by_id(user_id)
        if user is None:
            return None
        return UserProfileResponse.model_validate(user)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue_session(self, user: User) -> AuthOutcome:
        """Mint an access token and persist a fresh refresh token for ``user``."""
        record = self.signer.issue_refresh_token(user.id)
        self.tokens.add(record)
        self.tokens.save()
        return self._success(user), record.token

    def _success(self, user: User) -> AuthResponse:
        access_token, expires_at = self.signer.issue_access_token_with_expiry(user)
        return AuthResponse(
            success=True,
            access_token=access_token,
            expires_at=expires_at,
            user=UserInfo.model_validate(user),
        )

    @staticmethod
    def _failure(message: str) -> AuthResponse:
        return AuthResponse(success=False, errors=[message])
