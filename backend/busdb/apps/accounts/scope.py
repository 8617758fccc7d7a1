# backend/busdb/apps/accounts/scope.py

"""
Scope resolution.

A Scope is the authorization context of one actor for one logical
operation: global (super administrator) or restricted to one institution,
and active or not. Callers resolve it once, pass it explicitly into every
directory call, and resolve it again for the next operation.

The visibility rule lives here and only here (`Scope.can_see` /
`Scope.filter`); every entity type uses it.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Iterable, List, Optional

from busdb.errors import AccountInactive, ScopeViolation, UnknownActor
from busdb.apps.directory.entities import ADMINISTRATORS
from busdb.apps.directory.store import DocumentStore
from .models import AdminStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Scope:
    is_super_admin: bool
    institution_id: Optional[int]
    is_active: bool
    actor_email: Optional[str] = None
    actor_rut: Optional[str] = None

    # -- checks --------------------------------------------------------------

    def require_active(self) -> "Scope":
        if not self.is_active:
            raise AccountInactive("Administrator account is deactivated.")
        return self

    def require_super_admin(self, action: str) -> None:
        if not self.is_super_admin:
            raise ScopeViolation(f"Only a super administrator can {action}.")

    def require_institution(self, institution_id: Optional[int]) -> None:
        """Mutations may only target the actor's own institution unless super."""
        if self.is_super_admin:
            return
        if self.institution_id is None or institution_id != self.institution_id:
            raise ScopeViolation(
                f"Institution {institution_id} is outside the administrator's scope."
            )

    # -- visibility ----------------------------------------------------------

    def can_see(self, institution_id: Optional[int]) -> bool:
        if self.is_super_admin:
            return True
        if self.institution_id is None:
            return False
        return institution_id == self.institution_id

    def filter(
        self,
        records: Iterable[dict],
        *,
        field: str = "institution_id",
        institution_id: Optional[int] = None,
    ) -> List[dict]:
        """
        Apply the visibility rule to a sequence of records.

        - Super administrators see everything, optionally narrowed to
          `institution_id` when one is requested.
        - Restricted administrators always see their own institution only;
          an explicit `institution_id` does not widen that.
        """
        if self.is_super_admin:
            if institution_id is None:
                return list(records)
            return [r for r in records if r.get(field) == institution_id]
        return [r for r in records if self.can_see(r.get(field))]


def _normalise_email(value: str) -> str:
    return (value or "").strip().lower()


def find_administrator_by_email(documents: DocumentStore, email: str) -> Optional[dict]:
    """Return the non-deleted administrator with this email, if any."""
    email = _normalise_email(email)
    if not email:
        return None
    matches = documents.scan(
        ADMINISTRATORS,
        lambda r: _normalise_email(r.get("email", "")) == email
        and r.get("status") != AdminStatus.DELETED.value,
    )
    return matches[0] if matches else None


def resolve_scope(documents: DocumentStore, actor_email: str) -> Scope:
    """
    Resolve the Scope for the administrator identified by `actor_email`.

    Raises UnknownActor when no administrator matches or the match is
    deleted; deleted accounts look exactly like missing ones. Inactive
    accounts still resolve (with is_active=False) so that the caller can
    display them; anything beyond that must call `require_active()`.
    """
    record = find_administrator_by_email(documents, actor_email)
    if record is None:
        logger.info("Scope resolution failed: unknown actor", extra={"email": _normalise_email(actor_email)})
        raise UnknownActor("No administrator is registered with this email.")

    is_active = record.get("status") == AdminStatus.ACTIVE.value
    return Scope(
        is_super_admin=bool(record.get("is_super_admin")),
        institution_id=record.get("institution_id"),
        is_active=is_active,
        actor_email=_normalise_email(record.get("email", "")),
        actor_rut=record.get("rut"),
    )
