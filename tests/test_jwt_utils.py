"""Tests for access token signing and refresh token generation"""
import base64
from datetime import datetime, timedelta

import pytest
from jose import jwt

from parley.config import Settings
from parley.models.user import User
from parley.utils.errors import ConfigurationError, InvalidAccessTokenError
from parley.utils.jwt_utils import REFRESH_TOKEN_BYTES, TokenSigner, check_signing_config

SECRET = "unit-test-secret"
FIXED_NOW = datetime(2026, 1, 15, 12, 0, 0)


def make_user() -> User:
    return User(
        id="8d2c7f0e-0000-4000-8000-000000000001",
        email="carol@example.com",
        user_name="carol@example.com",
        first_name="Carol",
        last_name="Danvers",
        password_hash="x",
    )


def make_settings(**overrides) -> Settings:
    values = {"JWT_SECRET_KEY": SECRET}
    values.update(overrides)
    return Settings(**values)


def test_access_token_claims():
    """Test that the access token carries identity and name claims"""
    signer = TokenSigner(make_settings())
    token = signer.issue_access_token(make_user())

    claims = jwt.get_unverified_claims(token)
    assert claims["sub"] == "8d2c7f0e-0000-4000-8000-000000000001"
    assert claims["nameid"] == claims["sub"]
    assert claims["email"] == "carol@example.com"
    assert claims["unique_name"] == "carol@example.com"
    assert claims["firstName"] == "Carol"
    assert claims["lastName"] == "Danvers"
    assert claims["jti"]
    assert "iss" not in claims
    assert "aud" not in claims
    assert jwt.get_unverified_header(token)["alg"] == "HS256"


def test_access_token_default_ttl_is_60_minutes():
    """Test exp == iat + 60 minutes with no override"""
    signer = TokenSigner(make_settings(), clock=lambda: FIXED_NOW)
    claims = jwt.get_unverified_claims(signer.issue_access_token(make_user()))
    assert claims["exp"] - claims["iat"] == 60 * 60


def test_access_token_configured_ttl():
    signer = TokenSigner(make_settings(JWT_EXPIRATION_MINUTES=15), clock=lambda: FIXED_NOW)
    claims = jwt.get_unverified_claims(signer.issue_access_token(make_user()))
    assert claims["exp"] - claims["iat"] == 15 * 60


def test_access_token_unique_jti():
    signer = TokenSigner(make_settings())
    user = make_user()
    first = jwt.get_unverified_claims(signer.issue_access_token(user))
    second = jwt.get_unverified_claims(signer.issue_access_token(user))
    assert first["jti"] != second["jti"]


def test_access_token_includes_issuer_and_audience():
    signer = TokenSigner(make_settings(JWT_ISSUER="parley", JWT_AUDIENCE="parley-web"))
    token = signer.issue_access_token(make_user())

    claims = jwt.get_unverified_claims(token)
    assert claims["iss"] == "parley"
    assert claims["aud"] == "parley-web"

    payload = signer.decode_access_token(token)
    assert payload["sub"] == make_user().id


def test_access_token_requires_secret():
    """Test that signing without a secret is a configuration error"""
    signer = TokenSigner(Settings(JWT_SECRET_KEY=None))
    with pytest.raises(ConfigurationError):
        signer.issue_access_token(make_user())


def test_check_signing_config():
    check_signing_config(make_settings())
    with pytest.raises(ConfigurationError):
        check_signing_config(Settings(JWT_SECRET_KEY=None))
    with pytest.raises(ConfigurationError):
        check_signing_config(Settings(JWT_SECRET_KEY=""))


def test_refresh_token_generation():
    """Test refresh token value, owner and 7 day default lifetime"""
    signer = TokenSigner(make_settings(), clock=lambda: FIXED_NOW, random_bytes=lambda n: b"\x07" * n)
    record = signer.issue_refresh_token("user-1")

    assert record.token == base64.b64encode(b"\x07" * REFRESH_TOKEN_BYTES).decode()
    assert record.user_id == "user-1"
    assert record.id
    assert record.created_at == FIXED_NOW
    assert record.expires_at - record.created_at == timedelta(days=7)
    assert record.revoked_at is None
    assert record.revoked_reason is None
    assert record.replaced_by_token_id is None


def test_refresh_token_values_are_unique():
    signer = TokenSigner(make_settings())
    values = {signer.issue_refresh_token("user-1").token for _ in range(20)}
    assert len(values) == 20
    # 64 random bytes -> 88 base64 characters
    assert all(len(value) == 88 for value in values)


def test_refresh_token_configured_ttl():
    signer = TokenSigner(make_settings(REFRESH_TOKEN_EXPIRATION_DAYS=30), clock=lambda: FIXED_NOW)
    record = signer.issue_refresh_token("user-1")
    assert signer.refresh_ttl_days() == 30
    assert record.expires_at - record.created_at == timedelta(days=30)


@pytest.mark.parametrize("raw", ["", "abc", "0", "-5"])
def test_ttl_settings_fall_back_to_defaults(raw):
    """Test unparseable or non-positive TTLs fall back to 60 minutes / 7 days"""
    config = make_settings(JWT_EXPIRATION_MINUTES=raw, REFRESH_TOKEN_EXPIRATION_DAYS=raw)
    assert config.JWT_EXPIRATION_MINUTES == 60
    assert config.REFRESH_TOKEN_EXPIRATION_DAYS == 7


def test_decode_round_trip():
    signer = TokenSigner(make_settings())
    payload = signer.decode_access_token(signer.issue_access_token(make_user()))
    assert payload["email"] == "carol@example.com"


def test_decode_rejects_wrong_secret():
    token = TokenSigner(make_settings()).issue_access_token(make_user())
    other = TokenSigner(make_settings(JWT_SECRET_KEY="another-secret"))
    with pytest.raises(InvalidAccessTokenError):
        other.decode_access_token(token)


def test_decode_rejects_expired_token():
    issued_long_ago = datetime.utcnow() - timedelta(hours=3)
    signer = TokenSigner(make_settings(), clock=lambda: issued_long_ago)
    token = signer.issue_access_token(make_user())
    with pytest.raises(InvalidAccessTokenError):
        signer.decode_access_token(token)


def test_decode_rejects_wrong_audience():
    token = TokenSigner(make_settings(JWT_AUDIENCE="other-app")).issue_access_token(make_user())
    signer = TokenSigner(make_settings(JWT_AUDIENCE="parley-web"))
    with pytest.raises(InvalidAccessTokenError):
        signer.decode_access_token(token)


def test_decode_rejects_garbage():
    signer = TokenSigner(make_settings())
    with pytest.raises(InvalidAccessTokenError):
        signer.decode_access_token("not-a-jwt")


def test_access_token_expiry_matches_exp_claim():
    signer = TokenSigner(make_settings(), clock=lambda: FIXED_NOW)
    token, expires_at = signer.issue_access_token_with_expiry(make_user())

    assert expires_at == FIXED_NOW + timedelta(minutes=60)
    assert jwt.get_unverified_claims(token)["exp"] == int((expires_at - datetime(1970, 1, 1)).total_seconds())
