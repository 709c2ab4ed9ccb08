"""JWT utilities: HS256 access token signing, refresh token generation, verification"""
import base64
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from jose import JWTError, jwt

from parley.config import Settings, settings as default_settings
from parley.models.refresh_token import RefreshToken
from parley.models.user import User
from parley.utils.clock import Clock, from_timestamp, to_timestamp, utcnow
from parley.utils.errors import ConfigurationError, InvalidAccessTokenError
from parley.utils.logger import logger

REFRESH_TOKEN_BYTES = 64

RandomSource = Callable[[int], bytes]


def check_signing_config(config: Settings) -> None:
    """Abort startup when no signing secret is configured."""
    if not config.JWT_SECRET_KEY:
        raise ConfigurationError("JWT_SECRET_KEY is not configured")


class TokenSigner:
    """Issues access tokens and generates refresh token records.

    Stateless apart from configuration. ``clock`` and ``random_bytes`` are
    injectable so tests can pin time and entropy.
    """

    def __init__(
        self,
        config: Settings = default_settings,
        clock: Clock = utcnow,
        random_bytes: RandomSource = secrets.token_bytes,
    ):
        self._config = config
        self._clock = clock
        self._random_bytes = random_bytes

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def _secret(self) -> str:
        if not self._config.JWT_SECRET_KEY:
            raise ConfigurationError("JWT_SECRET_KEY is not configured")
        return self._config.JWT_SECRET_KEY

    def access_ttl_minutes(self) -> int:
        return self._config.JWT_EXPIRATION_MINUTES

    def refresh_ttl_days(self) -> int:
        return self._config.REFRESH_TOKEN_EXPIRATION_DAYS

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    def issue_access_token(self, user: User) -> str:
        return self.issue_access_token_with_expiry(user)[0]

    def issue_access_token_with_expiry(self, user: User) -> Tuple[str, datetime]:
        """Sign a JWT access token for ``user``; return it with its ``exp`` as a datetime.

        Claims: sub, email, jti, nameid, unique_name, firstName, lastName,
        iat, exp, plus iss/aud when configured. ``exp`` is always
        ``iat + JWT_EXPIRATION_MINUTES``.
        """
        secret = self._secret()
        issued_at = to_timestamp(self._clock())
        ttl_minutes = self.access_ttl_minutes()

        payload: Dict[str, Any] = {
            "sub": user.id,
            "email": user.email or "",
            "jti": str(uuid.uuid4()),
            "nameid": user.id,
            "unique_name": user.user_name or "",
            "firstName": user.first_name or "",
            "lastName": user.last_name or "",
            "iat": issued_at,
            "exp": issued_at + ttl_minutes * 60,
        }
        if self._config.JWT_ISSUER:
            payload["iss"] = self._config.JWT_ISSUER
        if self._config.JWT_AUDIENCE:
            payload["aud"] = self._config.JWT_AUDIENCE

        token = jwt.encode(payload, secret, algorithm=self._config.JWT_ALGORITHM)
        logger.debug(
            f"Issued access token for {user.id}, expires in {ttl_minutes} minutes",
            extra={"user_id": user.id, "action": "issue_access_token"},
        )
        return token, from_timestamp(payload["exp"])

    def issue_refresh_token(self, user_id: str) -> RefreshToken:
        """Generate an unpersisted refresh token record for ``user_id``."""
        now = self._clock()
        days = self.refresh_ttl_days()
        value = base64.b64encode(self._random_bytes(REFRESH_TOKEN_BYTES)).decode("ascii")

        record = RefreshToken(
            id=str(uuid.uuid4()),
            token=value,
            user_id=user_id,
            created_at=now,
            expires_at=now + timedelta(days=days),
        )
        logger.debug(
            f"Generated refresh token for {user_id}, expires in {days} days",
            extra={"user_id": user_id, "token_id": record.id, "action": "issue_refresh_token"},
        )
        return record

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def decode_access_token(self, token: str) -> Dict[str, Any]:
        """Verify an access token and return its payload.

        Checks signature, expiry, and issuer/audience when configured.

        Raises:
            InvalidAccessTokenError: on any verification failure.
        """
        options: Dict[str, Any] = {"verify_aud": bool(self._config.JWT_AUDIENCE)}
        try:
            payload = jwt.decode(
                token,
                self._secret(),
                algorithms=[self._config.JWT_ALGORITHM],
                audience=self._config.JWT_AUDIENCE,
                issuer=self._config.JWT_ISSUER,
                options=options,
            )
        except JWTError as exc:
            logger.debug(f"JWT decode failed: {exc}")
            raise InvalidAccessTokenError("Invalid or expired token") from exc

        if not payload.get("sub") or not payload.get("jti"):
            raise InvalidAccessTokenError("Token is missing required claims")
        return payload


_signer: Optional[TokenSigner] = None


def get_token_signer() -> TokenSigner:
    """Return the process-wide signer built from settings."""
    global _signer
    if _signer is None:
        _signer = TokenSigner(default_settings)
    return _signer
