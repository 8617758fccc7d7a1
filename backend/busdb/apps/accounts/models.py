# backend/busdb/apps/accounts/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String

from busdb.database import Base
from busdb.utils.identifiers import new_account_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class AdminStatus(str, enum.Enum):
    """
    Administrator account state.

    ACTIVE <-> INACTIVE, either -> DELETED. DELETED is terminal: the record
    is kept for the audit trail but is never listed and cannot sign in.
    """

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    DELETED = "DELETED"


ADMIN_TRANSITIONS = {
    AdminStatus.ACTIVE: {AdminStatus.INACTIVE, AdminStatus.DELETED},
    AdminStatus.INACTIVE: {AdminStatus.ACTIVE, AdminStatus.DELETED},
    AdminStatus.DELETED: set(),
}


# ---------------------------------------------------------------------------
# IDENTITY PROVIDER ACCOUNTS
# ---------------------------------------------------------------------------


class IdentityAccount(Base):
    """
    Credential record owned by the identity provider.

    The directory never reads this table directly; administrators only keep
    the `account_id` link. Secrets are stored as Argon2id hashes.
    """

    __tablename__ = "identity_accounts"

    id = Column(
        String(36),
        primary_key=True,
        default=new_account_id,
    )
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_secret = Column(String(255), nullable=False)

    secret_changed_at = Column(DateTime(timezone=True), nullable=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<IdentityAccount {self.email}>"
