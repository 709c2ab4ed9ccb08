"""Authentication endpoints: register, login, refresh, logout, account"""
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from parley.api.deps import get_current_user_id, get_session_service
from parley.config import settings
from parley.middleware.rate_limit import get_rate_limit, limiter
from parley.schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    ChangePasswordResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    UserProfileResponse,
)
from parley.services.session_service import SessionService

router = APIRouter(prefix="/api/auth", tags=["auth"])

COOKIE_NAME = settings.REFRESH_TOKEN_COOKIE_NAME


# ---------------------------------------------------------------------------
# Refresh token cookie
# ---------------------------------------------------------------------------

def set_refresh_token_cookie(response: Response, value: str, ttl_days: int) -> None:
    """Attach the refresh token as an HTTP-only, same-site-lax cookie."""
    response.set_cookie(
        key=COOKIE_NAME,
        value=value,
        max_age=ttl_days * 24 * 60 * 60,
        path="/",
        httponly=True,
        secure=not settings.is_development,
        samesite="lax",
    )


def delete_refresh_token_cookie(response: Response) -> None:
    response.delete_cookie(
        key=COOKIE_NAME,
        path="/",
        httponly=True,
        secure=not settings.is_development,
        samesite="lax",
    )


def _auth_response(result: AuthResponse, failure_status: int) -> JSONResponse:
    status_code = status.HTTP_200_OK if result.success else failure_status
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Session endpoints
# ---------------------------------------------------------------------------

@router.post("/register", response_model=AuthResponse, responses={400: {"model": AuthResponse}})
@limiter.limit(get_rate_limit("register"))
def register(
    request: Request,
    data: RegisterRequest,
    service: SessionService = Depends(get_session_service),
):
    """Create an account and start a session.

    On success the access token is returned in the body and the refresh token
    is set as the ``refreshToken`` cookie.
    """
    result, refresh_value = service.register(data)
    response = _auth_response(result, status.HTTP_400_BAD_REQUEST)
    if refresh_value:
        set_refresh_token_cookie(response, refresh_value, service.signer.refresh_ttl_days())
    return response


@router.post("/login", response_model=AuthResponse, responses={401: {"model": AuthResponse}})
@limiter.limit(get_rate_limit("login"))
def login(
    request: Request,
    data: LoginRequest,
    service: SessionService = Depends(get_session_service),
):
    """Log in with email and password"""
    result, refresh_value = service.login(data)
    response = _auth_response(result, status.HTTP_401_UNAUTHORIZED)
    if refresh_value:
        set_refresh_token_cookie(response, refresh_value, service.signer.refresh_ttl_days())
    return response


@router.post("/refresh-token", response_model=AuthResponse, responses={401: {"model": AuthResponse}})
@limiter.limit(get_rate_limit("refresh"))
def refresh_token(
    request: Request,
    service: SessionService = Depends(get_session_service),
    refresh_cookie: Optional[str] = Cookie(None, alias=COOKIE_NAME),
):
    """Exchange the refresh token cookie for a new access token.

    The presented refresh token is rotated: it stops working and a new one is
    set in its place. On failure the cookie is cleared.
    """
    if not refresh_cookie:
        return _auth_response(
            AuthResponse(success=False, errors=["Refresh token not found"]),
            status.HTTP_401_UNAUTHORIZED,
        )

    result, refresh_value = service.refresh_token(refresh_cookie)
    response = _auth_response(result, status.HTTP_401_UNAUTHORIZED)
    if not result.success:
        delete_refresh_token_cookie(response)
    elif refresh_value:
        set_refresh_token_cookie(response, refresh_value, service.signer.refresh_ttl_days())
    return response


@router.post("/logout", response_model=MessageResponse)
def logout(
    response: Response,
    service: SessionService = Depends(get_session_service),
    refresh_cookie: Optional[str] = Cookie(None, alias=COOKIE_NAME),
):
    """Revoke the current refresh token and clear the cookie"""
    if refresh_cookie:
        service.revoke_token(refresh_cookie, "User logged out")
    delete_refresh_token_cookie(response)
    return MessageResponse(message="Logged out successfully")


# ---------------------------------------------------------------------------
# Account endpoints (bearer token required)
# ---------------------------------------------------------------------------

@router.post(
    "/change-password",
    response_model=ChangePasswordResponse,
    responses={400: {"model": ChangePasswordResponse}},
)
@limiter.limit(get_rate_limit("change_password"))
def change_password(
    request: Request,
    data: ChangePasswordRequest,
    user_id: str = Depends(get_current_user_id),
    service: SessionService = Depends(get_session_service),
    refresh_cookie: Optional[str] = Cookie(None, alias=COOKIE_NAME),
):
    """Change the caller's password.

    On success the session's refresh token is revoked and its cookie cleared,
    so the client must log in again once the access token expires.
    """
    result = service.change_password(user_id, data.current_password, data.new_password)
    if not result.success:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=result.model_dump(mode="json"))

    if refresh_cookie:
        service.revoke_token(refresh_cookie, "Password changed")
    response = JSONResponse(status_code=status.HTTP_200_OK, content=result.model_dump(mode="json"))
    delete_refresh_token_cookie(response)
    return response


@router.get("/profile", response_model=UserProfileResponse, responses={404: {"model": MessageResponse}})
def get_profile(
    user_id: str = Depends(get_current_user_id),
    service: SessionService = Depends(get_session_service),
):
    """Return the caller's profile"""
    profile = service.get_user_profile(user_id)
    if profile is None:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"message": "User not found"})
    return profile


@router.post("/revoke-all-tokens", response_model=MessageResponse)
def revoke_all_tokens(
    response: Response,
    user_id: str = Depends(get_current_user_id),
    service: SessionService = Depends(get_session_service),
):
    """Revoke every refresh token of the caller (log out of all devices)"""
    service.revoke_all_user_tokens(user_id, "User revoked all tokens")
    delete_refresh_token_cookie(response)
    return MessageResponse(message="All tokens revoked successfully")
