from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .config import DEFAULT_SESSION_TTL_MINUTES
from .database import Database
from .models import SessionToken, User, UserRole

TOKEN_BYTES = 32
TOKEN_EXPIRY_MINUTES = DEFAULT_SESSION_TTL_MINUTES
MIN_PASSWORD_LENGTH = 4

# Roles allowed to change fleet records; guests only read.
EDITOR_ROLES = frozenset({UserRole.ADMIN, UserRole.UPLOAD})

_logger = logging.getLogger(__name__)


@dataclass
class AuthService:
    database: Database
    token_expiry_minutes: int = TOKEN_EXPIRY_MINUTES

    def register_user(self, username: str, password: str, *, role: UserRole) -> User:
        normalized = username.strip().lower()
        if not normalized:
            raise ValueError("Username is required.")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
        if self.database.get_user_by_username(normalized):
            raise ValueError("Username is already taken.")
        return self.database.add_user(normalized, self._hash_password(password), role)

    def authenticate(self, username: str, password: str) -> Optional[SessionToken]:
        normalized = username.strip().lower()
        user = self.database.get_user_by_username(normalized)
        if not user:
            _logger.debug("Sign-in rejected for unknown user %s", normalized)
            return None
        if not self._verify_password(password, user.password_hash):
            _logger.debug("Sign-in rejected for %s: bad password", normalized)
            return None
        purged = self.database.purge_expired_tokens()
        if purged:
            _logger.debug("Purged %d expired session tokens", purged)
        token = secrets.token_urlsafe(TOKEN_BYTES)
        expires_at = datetime.utcnow() + timedelta(minutes=self.token_expiry_minutes)
        return self.database.add_session_token(user.id, token, expires_at)

    def get_user_for_token(self, token: str) -> Optional[User]:
        if not token:
            return None
        session = self.database.get_session_token(token)
        if not session:
            return None
        if session.expires_at < datetime.utcnow():
            return None
        return self.database.get_user(session.user_id)

    def logout(self, token: str) -> None:
        if token:
            self.database.delete_session_token(token)

    def _hash_password(self, password: str) -> str:
        salt = secrets.token_hex(16)
        digest = hashlib.sha256(f"{salt}:{password}".encode("utf-8")).hexdigest()
        return f"{salt}${digest}"

    def _verify_password(self, password: str, stored: str) -> bool:
        try:
            salt, digest = stored.split("$", 1)
        except ValueError:
            return False
        check = hashlib.sha256(f"{salt}:{password}".encode("utf-8")).hexdigest()
        return secrets.compare_digest(check, digest)


def require_editor(user: User, action: str) -> None:
    if user.role not in EDITOR_ROLES:
        raise PermissionError(f"Guests cannot {action}.")


def require_admin(user: User, action: str) -> None:
    if user.role != UserRole.ADMIN:
        raise PermissionError(f"Only administrators may {action}.")
