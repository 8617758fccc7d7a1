# backend/busdb/apps/accounts/identity.py

"""
Identity provider.

Owns credentials (email + secret) and hands out an opaque account id. The
administrator directory links to it only through `account_id`; it never
sees a secret or a hash.

`SqlIdentityProvider` keeps accounts in the `identity_accounts` table with
Argon2id hashes (see `busdb.security`). Legacy bcrypt hashes still verify
and are upgraded on the next successful sign-in.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Optional, Protocol

from fastapi import Depends
from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session

from busdb.database import get_db
from busdb.errors import AuthenticationFailed, DuplicateKey, NotFound, TransientError
from busdb.security import hash_secret, needs_rehash, verify_secret
from .models import IdentityAccount

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    def authenticate(self, email: str, secret: str) -> str:
        ...

    def create_account(self, email: str, secret: str) -> str:
        ...

    def set_secret(self, account_id: str, secret: str) -> None:
        ...

    def delete_account(self, account_id: str) -> None:
        ...


def _normalise_email(value: str) -> str:
    return (value or "").strip().lower()


class SqlIdentityProvider:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _unavailable(self, action: str, exc: Exception) -> TransientError:
        self.db.rollback()
        logger.warning("Identity provider unavailable", extra={"action": action, "error": str(exc)})
        return TransientError(f"Identity provider unavailable during {action}.")

    def _by_email(self, email: str) -> Optional[IdentityAccount]:
        return (
            self.db.query(IdentityAccount)
            .filter(IdentityAccount.email == _normalise_email(email))
            .first()
        )

    def authenticate(self, email: str, secret: str) -> str:
        """Return the account id, or raise AuthenticationFailed."""
        try:
            account = self._by_email(email)
            if account is None or not verify_secret(secret, account.hashed_secret):
                raise AuthenticationFailed("Incorrect email or password.")

            now = datetime.now(timezone.utc)
            account.last_login_at = now
            if needs_rehash(account.hashed_secret):
                account.hashed_secret = hash_secret(secret)
                account.secret_changed_at = now
            self.db.commit()
        except sa_exc.DBAPIError as exc:
            raise self._unavailable("authenticate", exc) from exc
        return account.id

    def create_account(self, email: str, secret: str) -> str:
        email = _normalise_email(email)
        account = IdentityAccount(email=email, hashed_secret=hash_secret(secret))
        try:
            if self._by_email(email) is not None:
                raise DuplicateKey("identity_accounts", email)
            self.db.add(account)
            self.db.commit()
        except sa_exc.IntegrityError as exc:
            self.db.rollback()
            raise DuplicateKey("identity_accounts", email) from exc
        except sa_exc.DBAPIError as exc:
            raise self._unavailable("create_account", exc) from exc

        logger.info("Identity account created", extra={"account_id": account.id, "email": email})
        return account.id

    def set_secret(self, account_id: str, secret: str) -> None:
        try:
            account = self.db.get(IdentityAccount, account_id)
            if account is None:
                raise NotFound("identity_accounts", account_id)
            account.hashed_secret = hash_secret(secret)
            account.secret_changed_at = datetime.now(timezone.utc)
            self.db.commit()
        except sa_exc.DBAPIError as exc:
            raise self._unavailable("set_secret", exc) from exc
        logger.info("Identity secret changed", extra={"account_id": account_id})

    def delete_account(self, account_id: str) -> None:
        """Remove an account; a missing account is not an error."""
        try:
            account = self.db.get(IdentityAccount, account_id)
            if account is None:
                return
            self.db.delete(account)
            self.db.commit()
        except sa_exc.DBAPIError as exc:
            raise self._unavailable("delete_account", exc) from exc
        logger.info("Identity account deleted", extra={"account_id": account_id})


def get_identity_provider(db: Session = Depends(get_db)) -> SqlIdentityProvider:
    """FastAPI dependency."""
    return SqlIdentityProvider(db)
