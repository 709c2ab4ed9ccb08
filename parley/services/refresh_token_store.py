"""Refresh token persistence.

The store is the single source of truth for refresh token state. Rotation and
bulk revocation are each applied as one transaction; rotation is guarded by a
compare-and-set on the old row (``revoked_at IS NULL``) so two concurrent
redemptions of the same token cannot both succeed.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from parley.models.refresh_token import RefreshToken
from parley.utils.logger import logger

ROTATED_REASON = "Rotated"


class RefreshTokenStore:
    """SQLAlchemy-backed repository over :class:`RefreshToken` rows."""

    def __init__(self, db: Session):
        self.db = db

    def add(self, record: RefreshToken) -> None:
        """Stage a new record; call :meth:`save` to commit."""
        self.db.add(record)

    def get_by_value(self, value: str) -> Optional[RefreshToken]:
        return self.db.execute(
            select(RefreshToken).where(RefreshToken.token == value)
        ).scalar_one_or_none()

    def get_active_by_user(self, user_id: str, now: datetime) -> List[RefreshToken]:
        return list(
            self.db.execute(
                select(RefreshToken).where(
                    RefreshToken.user_id == user_id,
                    RefreshToken.revoked_at.is_(None),
                    RefreshToken.expires_at > now,
                )
            ).scalars()
        )

    def save(self) -> None:
        """Commit pending changes."""
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def rotate(self, old: RefreshToken, new: RefreshToken, now: datetime) -> bool:
        """Atomically revoke ``old`` as rotated and insert its successor ``new``.

        Returns False, with nothing written, when ``old`` was revoked by someone
        else between lookup and commit.
        """
        try:
            result = self.db.execute(
                update(RefreshToken)
                .where(RefreshToken.id == old.id, RefreshToken.revoked_at.is_(None))
                .values(
                    revoked_at=now,
                    revoked_reason=ROTATED_REASON,
                    replaced_by_token_id=new.id,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self.db.rollback()
                logger.info(
                    f"Rotation conflict on refresh token {old.id}",
                    extra={"user_id": old.user_id, "token_id": old.id, "action": "rotate_conflict"},
                )
                return False

            self.db.add(new)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(old)
        return True

    def revoke(self, record: RefreshToken, now: datetime, reason: str) -> bool:
        """Revoke a single token unless it is already revoked.

        Returns True when this call set ``revoked_at``.
        """
        try:
            result = self.db.execute(
                update(RefreshToken)
                .where(RefreshToken.id == record.id, RefreshToken.revoked_at.is_(None))
                .values(revoked_at=now, revoked_reason=reason)
                .execution_options(synchronize_session=False)
            )
            revoked = result.rowcount
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return revoked == 1

    def revoke_all_active(self, user_id: str, now: datetime, reason: str) -> int:
        """Revoke every active token of ``user_id`` in one committed statement.

        Returns the number of rows revoked.
        """
        try:
            result = self.db.execute(
                update(RefreshToken)
                .where(
                    RefreshToken.user_id == user_id,
                    RefreshToken.revoked_at.is_(None),
                    RefreshToken.expires_at > now,
                )
                .values(revoked_at=now, revoked_reason=reason)
                .execution_options(synchronize_session=False)
            )
            revoked = result.rowcount
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        # Loaded instances are stale after a bulk update
        self.db.expire_all()
        return revoked
