# backend/busdb/security.py

"""
Security helpers for busdb.

Responsibilities:
- Secret hashing and verification for the identity provider
- JWT access token creation and decoding
- FastAPI dependencies that turn a bearer token into a resolved Scope

The token only carries the actor's email (`sub`). Authorization is never
read from the token: the Scope is resolved again from the administrator
directory on every request, so a deactivation takes effect immediately.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError
import bcrypt

from busdb.apps.accounts.scope import Scope, resolve_scope
from busdb.apps.directory.store import SqlDocumentStore, get_document_store
from busdb.errors import UnknownActor

# ---------------------------------------------------------------------------
# CONFIG
# ---------------------------------------------------------------------------

# In production, ALWAYS override these via environment variables.
SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_IN_PRODUCTION")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

try:
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(
        os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60")
    )
except ValueError:
    ACCESS_TOKEN_EXPIRE_MINUTES = 60

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


# ---------------------------------------------------------------------------
# SECRET HASHING
# ---------------------------------------------------------------------------

_pwd_hasher = PasswordHasher(
    time_cost=int(os.getenv("ARGON2_TIME_COST", "3")),
    memory_cost=int(os.getenv("ARGON2_MEMORY_COST", "65536")),  # KiB (64MB)
    parallelism=int(os.getenv("ARGON2_PARALLELISM", "2")),
    hash_len=int(os.getenv("ARGON2_HASH_LEN", "32")),
    salt_len=int(os.getenv("ARGON2_SALT_LEN", "16")),
)


def _is_argon2_hash(hashed: str) -> bool:
    return isinstance(hashed, str) and hashed.startswith("$argon2")


def _is_bcrypt_hash(hashed: str) -> bool:
    return isinstance(hashed, str) and hashed.startswith(("$2a$", "$2b$", "$2y$"))


def verify_secret(plain: str, hashed: str) -> bool:
    """Return True if the plain secret matches the stored hash."""
    if not plain or not hashed:
        return False

    if _is_argon2_hash(hashed):
        try:
            return _pwd_hasher.verify(hashed, plain)
        except (VerifyMismatchError, VerificationError, InvalidHash):
            return False

    # Accounts imported from the previous platform carry bcrypt hashes.
    if _is_bcrypt_hash(hashed):
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            return False

    return False


def hash_secret(secret: str) -> str:
    """Hash a secret for storage (Argon2id)."""
    return _pwd_hasher.hash(secret)


def needs_rehash(hashed: str) -> bool:
    if not _is_argon2_hash(hashed):
        return True
    return _pwd_hasher.check_needs_rehash(hashed)


# ---------------------------------------------------------------------------
# JWT TOKENS
# ---------------------------------------------------------------------------


def create_access_token(
    *,
    subject: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a signed JWT whose `sub` is the actor's email."""
    expire = datetime.now(timezone.utc) + (
        expires_delta
        if expires_delta is not None
        else timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return jwt.encode({"sub": subject, "exp": expire}, SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> str:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise _credentials_exception()
    subject = payload.get("sub")
    if not subject:
        raise _credentials_exception()
    return str(subject)


# ---------------------------------------------------------------------------
# FASTAPI DEPENDENCIES
# ---------------------------------------------------------------------------


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_scope(
    token: str = Depends(oauth2_scheme),
    documents: SqlDocumentStore = Depends(get_document_store),
) -> Scope:
    """
    Resolve the Scope for the bearer of the token.

    Deleted or unknown administrators get 401; inactive ones still get a
    Scope here so that `/auth/me` can display it.
    """
    email = decode_access_token(token)
    try:
        return resolve_scope(documents, email)
    except UnknownActor:
        raise _credentials_exception()


def get_active_scope(scope: Scope = Depends(get_current_scope)) -> Scope:
    """Scope for any operation other than viewing one's own profile."""
    return scope.require_active()

