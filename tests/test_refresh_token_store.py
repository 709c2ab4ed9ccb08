"""Tests for refresh token persistence and atomic rotation"""
from datetime import timedelta

from sqlalchemy.orm import Session

from parley.models.refresh_token import RefreshToken
from parley.models.user import User
from parley.services.refresh_token_store import ROTATED_REASON, RefreshTokenStore
from parley.utils.clock import utcnow
from parley.utils.jwt_utils import TokenSigner


def persist(store: RefreshTokenStore, signer: TokenSigner, user_id: str) -> RefreshToken:
    record = signer.issue_refresh_token(user_id)
    store.add(record)
    store.save()
    return record


def test_add_and_get_by_value(db: Session, signer: TokenSigner, user: User):
    store = RefreshTokenStore(db)
    record = persist(store, signer, user.id)

    found = store.get_by_value(record.token)
    assert found is not None
    assert found.id == record.id
    assert found.user_id == user.id
    assert store.get_by_value("does-not-exist") is None


def test_get_active_by_user_excludes_revoked_and_expired(db: Session, signer: TokenSigner, user: User):
    store = RefreshTokenStore(db)
    now = utcnow()
    active = persist(store, signer, user.id)
    revoked = persist(store, signer, user.id)
    expired = persist(store, signer, user.id)

    revoked.revoked_at = now
    revoked.revoked_reason = "test"
    expired.expires_at = now - timedelta(seconds=1)
    store.save()

    assert [r.id for r in store.get_active_by_user(user.id, now)] == [active.id]


def test_rotate_links_successor(db: Session, signer: TokenSigner, user: User):
    """Test rotation revokes the old token and links the new one"""
    store = RefreshTokenStore(db)
    old = persist(store, signer, user.id)
    new = signer.issue_refresh_token(user.id)
    now = utcnow()

    assert store.rotate(old, new, now) is True

    db.expire_all()
    old_row = store.get_by_value(old.token)
    new_row = store.get_by_value(new.token)
    assert old_row.revoked_at is not None
    assert old_row.revoked_reason == ROTATED_REASON
    assert old_row.replaced_by_token_id == new_row.id
    assert new_row.is_active(now)
    assert [r.id for r in store.get_active_by_user(user.id, now)] == [new_row.id]


def test_rotate_conflict_writes_nothing(db: Session, session_factory, signer: TokenSigner, user: User):
    """Test that a second rotation of the same token fails without side effects"""
    store = RefreshTokenStore(db)
    old = persist(store, signer, user.id)

    # Both "requests" load the token while it is still active
    other_store = RefreshTokenStore(session_factory())
    stale = other_store.get_by_value(old.token)
    assert stale.revoked_at is None

    winner = signer.issue_refresh_token(user.id)
    assert store.rotate(old, winner, utcnow()) is True

    loser = signer.issue_refresh_token(user.id)
    assert other_store.rotate(stale, loser, utcnow()) is False

    db.expire_all()
    assert store.get_by_value(loser.token) is None
    old_row = store.get_by_value(old.token)
    assert old_row.replaced_by_token_id == winner.id
    assert len(store.get_active_by_user(user.id, utcnow())) == 1


def test_revoke_sets_reason_once(db: Session, signer: TokenSigner, user: User):
    store = RefreshTokenStore(db)
    record = persist(store, signer, user.id)

    assert store.revoke(record, utcnow(), "first") is True
    assert store.revoke(record, utcnow(), "second") is False

    db.expire_all()
    assert store.get_by_value(record.token).revoked_reason == "first"


def test_revoke_all_active(db: Session, signer: TokenSigner, user: User):
    """Test bulk revocation touches only active tokens, with one timestamp and reason"""
    store = RefreshTokenStore(db)
    first = persist(store, signer, user.id)
    second = persist(store, signer, user.id)
    already = persist(store, signer, user.id)
    assert store.revoke(already, utcnow(), "earlier") is True

    now = utcnow()
    assert store.revoke_all_active(user.id, now, "bulk") == 2

    rows = [store.get_by_value(r.token) for r in (first, second)]
    assert {r.revoked_reason for r in rows} == {"bulk"}
    assert {r.revoked_at for r in rows} == {now}
    assert store.get_by_value(already.token).revoked_reason == "earlier"
    assert store.get_active_by_user(user.id, now) == []


def test_revoke_all_active_noop(db: Session, user: User):
    assert RefreshTokenStore(db).revoke_all_active(user.id, utcnow(), "bulk") == 0
