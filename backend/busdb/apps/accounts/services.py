# backend/busdb/apps/accounts/services.py

"""
Administrator lifecycle.

Administrators are directory records (collection `administrators`) with an
account at the identity provider and a tagged status:

    ACTIVE <-> INACTIVE, ACTIVE | INACTIVE -> DELETED (terminal)

Deletion is soft: the record stays for the audit trail with `deleted_at`
set, is never listed and cannot sign in. Its RUT and email stay taken.

Creation provisions the provider account first and writes the record
second. If the write fails the provider account is left in place and
`OrphanedProviderAccount` carries what an operator needs to clean up.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends

from busdb.apps.directory.entities import ADMINISTRATOR, ADMINISTRATORS, INSTITUTION
from busdb.apps.directory.services import DirectoryStore, Payload, _as_dict
from busdb.apps.directory.store import DocumentStore, SqlDocumentStore, get_document_store
from busdb.errors import (
    AccountInactive,
    AuthenticationFailed,
    DuplicateKey,
    ImmutableKey,
    InvalidTransition,
    OrphanedProviderAccount,
    ScopeViolation,
    UnknownActor,
    ValidationError,
    WeakSecret,
)
from .identity import IdentityProvider, SqlIdentityProvider, get_identity_provider
from .models import ADMIN_TRANSITIONS, AdminStatus
from .scope import Scope, find_administrator_by_email

logger = logging.getLogger(__name__)

MIN_SECRET_LENGTH = int(os.getenv("BUSDB_MIN_SECRET_LENGTH", "6"))

# Owned by the lifecycle; never taken from a create / update payload.
_LIFECYCLE_FIELDS = (
    "status",
    "is_active",
    "is_deleted",
    "account_id",
    "deactivated_at",
    "deleted_at",
)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _normalise_email(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _status_fields(status: AdminStatus) -> Dict[str, Any]:
    return {
        "status": status.value,
        "is_active": status == AdminStatus.ACTIVE,
        "is_deleted": status == AdminStatus.DELETED,
    }


def _validate_secret_strength(secret: Optional[str]) -> None:
    if not secret or len(secret) < MIN_SECRET_LENGTH:
        raise WeakSecret(f"Password must be at least {MIN_SECRET_LENGTH} characters long.")


class AdministratorService:
    def __init__(self, documents: DocumentStore, identity: IdentityProvider) -> None:
        self.documents = documents
        self.identity = identity
        self.directory = DirectoryStore(ADMINISTRATOR, documents)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _email_taken(self, email: str) -> bool:
        """Emails are unique across every administrator record, deleted ones included."""
        email = _normalise_email(email)
        return bool(
            self.documents.scan(
                ADMINISTRATORS,
                lambda r: _normalise_email(r.get("email")) == email,
            )
        )

    @staticmethod
    def _guard_super_admin_record(scope: Scope, record: Dict[str, Any]) -> None:
        if record.get("is_super_admin") and not scope.is_super_admin:
            raise ScopeViolation("Only a super administrator can manage super administrators.")

    def _provision(self, scope: Scope, data: Dict[str, Any], secret: str) -> dict:
        """Checks, then provider account, then record."""
        for field in _LIFECYCLE_FIELDS:
            data.pop(field, None)
        data.pop("password", None)
        data["email"] = _normalise_email(data.get("email"))

        self._guard_super_admin_record(scope, data)
        _validate_secret_strength(secret)
        key, record = self.directory.prepare(scope, data)
        if self._email_taken(record["email"]):
            raise DuplicateKey(
                ADMINISTRATORS,
                record["email"],
                "An administrator with this email already exists.",
            )

        account_id = self.identity.create_account(record["email"], secret)
        record.update(_status_fields(AdminStatus.ACTIVE))
        record.update(account_id=account_id, deactivated_at=None, deleted_at=None)

        try:
            self.documents.create(ADMINISTRATORS, key, record)
        except Exception as exc:
            logger.error(
                "Administrator write failed after provider account was created",
                extra={"account_id": account_id, "email": record["email"], "rut": key},
            )
            raise OrphanedProviderAccount(
                account_id=account_id,
                email=record["email"],
                rut=key,
                cause=exc,
            ) from exc

        logger.info(
            "Administrator created",
            extra={
                "rut": key,
                "institution_id": record["institution_id"],
                "is_super_admin": record["is_super_admin"],
                "actor": scope.actor_email,
            },
        )
        return record

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create(self, scope: Scope, payload: Payload, secret: Optional[str] = None) -> dict:
        data = _as_dict(payload)
        if secret is None:
            secret = data.get("password")
        return self._provision(scope, data, secret)

    def register(self, payload: Payload, secret: Optional[str] = None) -> dict:
        """
        Self-registration of a regular administrator into an existing
        institution. No actor is signed in, so the registrant's own
        institution stands in as the scope.
        """
        data = _as_dict(payload)
        if not data.pop("terms", False):
            raise ValidationError("The terms of use must be accepted.")
        if secret is None:
            secret = data.get("password")
        data["is_super_admin"] = False
        data.setdefault("role", "Admin")

        scope = Scope(
            is_super_admin=False,
            institution_id=data.get("institution_id"),
            is_active=True,
            actor_email=_normalise_email(data.get("email")),
        )
        return self._provision(scope, data, secret)

    def bootstrap_super_admin(self, payload: Payload, secret: Optional[str] = None) -> dict:
        """
        Create the first super administrator (and optionally its institution).

        Only allowed while the administrator collection is empty.
        """
        if self.documents.scan(ADMINISTRATORS):
            raise ScopeViolation("A super administrator already exists; bootstrap is closed.")

        data = _as_dict(payload)
        if secret is None:
            secret = data.get("password")
        institution = data.pop("institution", None)
        scope = Scope(
            is_super_admin=True,
            institution_id=None,
            is_active=True,
            actor_email=_normalise_email(data.get("email")),
        )

        if institution is not None:
            institution_key = INSTITUTION.normalize_key(institution.get("id"))
            if self.documents.get(INSTITUTION.collection, institution_key) is None:
                DirectoryStore(INSTITUTION, self.documents).create(scope, institution)
            data["institution_id"] = int(institution_key)

        data["is_super_admin"] = True
        data.setdefault("role", "Super Admin")
        return self._provision(scope, data, secret)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def current(self, scope: Scope) -> dict:
        """The actor's own record, whatever its status short of deleted."""
        record = find_administrator_by_email(self.documents, scope.actor_email or "")
        if record is None:
            raise UnknownActor("No administrator is registered with this email.")
        return record

    def get(self, scope: Scope, rut: Any) -> dict:
        return self.directory.get(scope, rut)

    def list(
        self,
        scope: Scope,
        *,
        include_inactive: bool = False,
        institution_id: Optional[int] = None,
    ) -> List[dict]:
        records = self.directory.list(scope, institution_id=institution_id)
        if include_inactive:
            return records
        return [r for r in records if r.get("status") == AdminStatus.ACTIVE.value]

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def update(self, scope: Scope, rut: Any, patch: Payload) -> dict:
        scope.require_active()
        key, stored = self.directory.load_for_mutation(scope, rut)
        self._guard_super_admin_record(scope, stored)

        changes = _as_dict(patch, exclude_unset=True)
        for field in _LIFECYCLE_FIELDS:
            changes.pop(field, None)

        new_email = changes.pop("email", None)
        if new_email is not None and _normalise_email(new_email) != _normalise_email(stored.get("email")):
            raise ImmutableKey("email cannot be changed; it identifies the sign-in account.")

        if changes.get("is_super_admin") and not scope.is_super_admin:
            raise ScopeViolation("Only a super administrator can grant super administrator rights.")

        return self.directory.update(scope, key, changes)

    def _transition(self, scope: Scope, rut: Any, target: AdminStatus) -> dict:
        scope.require_active()
        key, stored = self.directory.load_for_mutation(scope, rut)
        self._guard_super_admin_record(scope, stored)

        current = AdminStatus(stored.get("status", AdminStatus.ACTIVE.value))
        if target not in ADMIN_TRANSITIONS[current]:
            raise InvalidTransition(current.value, target.value)

        record = {**stored, **_status_fields(target)}
        now = _utcnow_iso()
        if target == AdminStatus.INACTIVE:
            record["deactivated_at"] = now
        elif target == AdminStatus.ACTIVE:
            record["deactivated_at"] = None
        elif target == AdminStatus.DELETED:
            record["deleted_at"] = now

        self.documents.put(ADMINISTRATORS, key, record)
        logger.info(
            "Administrator status changed",
            extra={
                "rut": key,
                "from_status": current.value,
                "to_status": target.value,
                "actor": scope.actor_email,
            },
        )
        return record

    def deactivate(self, scope: Scope, rut: Any) -> dict:
        return self._transition(scope, rut, AdminStatus.INACTIVE)

    def reactivate(self, scope: Scope, rut: Any) -> dict:
        return self._transition(scope, rut, AdminStatus.ACTIVE)

    def delete(self, scope: Scope, rut: Any) -> dict:
        return self._transition(scope, rut, AdminStatus.DELETED)

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def authenticate(self, email: str, secret: str) -> Tuple[Scope, dict]:
        """
        Sign an administrator in. Returns the resolved Scope and record.

        Provider rejection -> AuthenticationFailed; no live administrator or
        a record linked to another provider account -> UnknownActor;
        inactive -> AccountInactive.
        """
        account_id = self.identity.authenticate(email, secret)

        record = find_administrator_by_email(self.documents, email)
        if record is None or (record.get("account_id") and record["account_id"] != account_id):
            logger.info("Sign-in rejected: no live administrator", extra={"email": _normalise_email(email)})
            raise UnknownActor("No administrator is registered with this email.")

        status = record.get("status")
        if status != AdminStatus.ACTIVE.value:
            logger.info("Sign-in rejected: account inactive", extra={"rut": record.get("rut")})
            raise AccountInactive("Administrator account is deactivated.")

        scope = Scope(
            is_super_admin=bool(record.get("is_super_admin")),
            institution_id=record.get("institution_id"),
            is_active=True,
            actor_email=_normalise_email(record.get("email")),
            actor_rut=record.get("rut"),
        )
        logger.info("Administrator signed in", extra={"rut": record.get("rut")})
        return scope, record

    def change_secret(self, scope: Scope, current_secret: str, new_secret: str) -> None:
        """Change the actor's own secret; always re-authenticates first."""
        scope.require_active()
        record = find_administrator_by_email(self.documents, scope.actor_email or "")
        if record is None:
            raise UnknownActor("No administrator is registered with this email.")

        try:
            account_id = self.identity.authenticate(scope.actor_email, current_secret)
        except AuthenticationFailed:
            logger.info("Secret change rejected: re-authentication failed", extra={"rut": record.get("rut")})
            raise
        if record.get("account_id") and record["account_id"] != account_id:
            raise UnknownActor("Administrator is linked to a different sign-in account.")

        _validate_secret_strength(new_secret)
        self.identity.set_secret(account_id, new_secret)
        logger.info("Administrator secret changed", extra={"rut": record.get("rut")})


def get_administrator_service(
    documents: SqlDocumentStore = Depends(get_document_store),
    identity: SqlIdentityProvider = Depends(get_identity_provider),
) -> AdministratorService:
    """FastAPI dependency."""
    return AdministratorService(documents, identity)
