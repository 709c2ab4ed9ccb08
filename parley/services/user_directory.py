"""User store: account creation, credential verification, lockout.

Passwords are hashed with Argon2 (argon2-cffi). Verification failures count
towards a temporary lockout; while locked out every password check fails.
"""
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from parley.config import Settings, settings as default_settings
from parley.models.user import User
from parley.utils.clock import Clock, utcnow
from parley.utils.logger import logger

ph = PasswordHasher()

# Verified against when the email is unknown, so both paths cost one argon2 check
_DUMMY_HASH = ph.hash("parley-unknown-user")


@dataclass
class IdentityResult:
    """Outcome of a user store mutation"""
    succeeded: bool
    errors: List[str] = field(default_factory=list)

    @classmethod
    def success(cls) -> "IdentityResult":
        return cls(succeeded=True)

    @classmethod
    def failed(cls, *errors: str) -> "IdentityResult":
        return cls(succeeded=False, errors=list(errors))


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_password(password: str, min_length: int) -> List[str]:
    """Return policy violations for ``password`` (empty when acceptable)"""
    errors = []
    if len(password) < min_length:
        errors.append(f"Passwords must be at least {min_length} characters.")
    if not any(c.isdigit() for c in password):
        errors.append("Passwords must have at least one digit ('0'-'9').")
    if not any(c.islower() for c in password):
        errors.append("Passwords must have at least one lowercase ('a'-'z').")
    if not any(c.isupper() for c in password):
        errors.append("Passwords must have at least one uppercase ('A'-'Z').")
    if all(c.isalnum() for c in password):
        errors.append("Passwords must have at least one non alphanumeric character.")
    return errors


class UserDirectory:
    """SQLAlchemy-backed user store"""

    def __init__(self, db: Session, config: Settings = default_settings, clock: Clock = utcnow):
        self.db = db
        self._config = config
        self._clock = clock

    def find_by_id(self, user_id: str) -> Optional[User]:
        return self.db.get(User, user_id)

    def find_by_email(self, email: str) -> Optional[User]:
        return self.db.execute(
            select(User).where(func.lower(User.email) == normalize_email(email))
        ).scalar_one_or_none()

    def create(self, user: User, password: str) -> IdentityResult:
        """Persist ``user`` with a hash of ``password``.

        Fails on duplicate email or password policy violations.
        """
        user.email = normalize_email(user.email)
        if not user.user_name:
            user.user_name = user.email

        if self.find_by_email(user.email) is not None:
            return IdentityResult.failed(f"Email '{user.email}' is already taken.")

        policy_errors = validate_password(password, self._config.PASSWORD_MIN_LENGTH)
        if policy_errors:
            return IdentityResult.failed(*policy_errors)

        user.password_hash = ph.hash(password)
        user.created_at = self._clock()
        user.access_failed_count = 0
        email = user.email
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email
            self.db.rollback()
            logger.info(
                f"Duplicate registration for {email} rejected by the database",
                extra={"action": "create_user"},
            )
            return IdentityResult.failed(f"Email '{email}' is already taken.")
        self.db.refresh(user)

        logger.info(f"Created user: {user.id}", extra={"user_id": user.id, "action": "create_user"})
        return IdentityResult.success()

    def is_locked_out(self, user: User) -> bool:
        return user.lockout_end is not None and user.lockout_end > self._clock()

    def verify_password(self, user: User, password: str) -> bool:
        """Check ``password`` against the stored hash, tracking failures.

        Returns False while the account is locked out, without checking the
        password.
        """
        if self.is_locked_out(user):
            logger.warning(
                f"Password check rejected for locked out user {user.id}",
                extra={"user_id": user.id, "action": "lockout_reject"},
            )
            return False

        if self._check_hash(user, password):
            if user.access_failed_count or user.lockout_end is not None:
                user.access_failed_count = 0
                user.lockout_end = None
                self.db.commit()
            return True

        user.access_failed_count = (user.access_failed_count or 0) + 1
        if user.access_failed_count >= self._config.LOCKOUT_MAX_FAILED_ATTEMPTS:
            user.lockout_end = self._clock() + timedelta(minutes=self._config.LOCKOUT_MINUTES)
            user.access_failed_count = 0
            logger.warning(
                f"User {user.id} locked out after repeated failed logins",
                extra={"user_id": user.id, "action": "lockout"},
            )
        self.db.commit()
        return False

    def verify_unknown_user(self, password: str) -> bool:
        """Run a password check against a dummy hash. Always False."""
        try:
            ph.verify(_DUMMY_HASH, password)
        except VerificationError:
            pass
        return False

    def update_password(self, user: User, current_password: str, new_password: str) -> IdentityResult:
        if not self._check_hash(user, current_password):
            return IdentityResult.failed("Incorrect password.")

        policy_errors = validate_password(new_password, self._config.PASSWORD_MIN_LENGTH)
        if policy_errors:
            return IdentityResult.failed(*policy_errors)

        user.password_hash = ph.hash(new_password)
        self.db.commit()
        logger.info(f"Password changed for {user.id}", extra={"user_id": user.id, "action": "change_password"})
        return IdentityResult.success()

    def record_login(self, user: User) -> None:
        user.last_login_at = self._clock()
        self.db.commit()

    @staticmethod
    def _check_hash(user: User, password: str) -> bool:
        try:
            return ph.verify(user.password_hash, password)
        except VerifyMismatchError:
            return False
        except (VerificationError, InvalidHashError):
            logger.error(
                f"Stored password hash for {user.id} could not be verified",
                extra={"user_id": user.id},
            )
            return False
