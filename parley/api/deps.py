"""API dependencies for session services and bearer authentication.

Account-scoped endpoints resolve the caller from ``Authorization: Bearer <JWT>``.
A missing or unverifiable token yields 401; the token's ``sub`` claim is the
user id.
"""
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from parley.database import get_db
from parley.services.refresh_token_store import RefreshTokenStore
from parley.services.session_service import SessionService
from parley.services.user_directory import UserDirectory
from parley.utils.errors import InvalidAccessTokenError
from parley.utils.jwt_utils import TokenSigner, get_token_signer

_bearer_scheme = HTTPBearer(auto_error=False)


def get_session_service(
    db: Session = Depends(get_db),
    signer: TokenSigner = Depends(get_token_signer),
) -> SessionService:
    """Build a request-scoped SessionService over the request's DB session."""
    return SessionService(
        users=UserDirectory(db),
        tokens=RefreshTokenStore(db),
        signer=signer,
    )


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    signer: TokenSigner = Depends(get_token_signer),
) -> str:
    """Require a valid access token and return its subject (user id)."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization: Bearer <token> header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = signer.decode_access_token(credentials.credentials)
    except InvalidAccessTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return payload["sub"]
