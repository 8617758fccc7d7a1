from __future__ import annotations

import pytest

from busdb.apps.accounts.scope import Scope, resolve_scope
from busdb.apps.directory.entities import ADMINISTRATORS
from busdb.apps.directory.store import SqlDocumentStore
from busdb.errors import AccountInactive, ScopeViolation, UnknownActor


def _create_admin(
    documents: SqlDocumentStore,
    *,
    rut: str,
    email: str,
    institution_id: int = 1,
    status: str = "ACTIVE",
    is_super_admin: bool = False,
) -> dict:
    record = {
        "rut": rut,
        "name": "Ana",
        "surname": "Rojas",
        "email": email,
        "phone": "+56911111111",
        "institution_id": institution_id,
        "role": "Admin",
        "is_super_admin": is_super_admin,
        "status": status,
        "is_active": status == "ACTIVE",
        "is_deleted": status == "DELETED",
    }
    documents.create(ADMINISTRATORS, rut, record)
    return record


def test_resolve_scope_for_restricted_and_super_admins(db_session):
    documents = SqlDocumentStore(db_session)
    _create_admin(documents, rut="22222222-2", email="ana@school.cl", institution_id=7)
    _create_admin(documents, rut="11111111-1", email="root@bus.cl", is_super_admin=True)

    restricted = resolve_scope(documents, "Ana@School.cl ")
    assert restricted == Scope(
        is_super_admin=False,
        institution_id=7,
        is_active=True,
        actor_email="ana@school.cl",
        actor_rut="22222222-2",
    )

    root = resolve_scope(documents, "root@bus.cl")
    assert root.is_super_admin is True
    assert root.is_active is True


def test_inactive_admin_resolves_with_inactive_scope(db_session):
    documents = SqlDocumentStore(db_session)
    _create_admin(documents, rut="22222222-2", email="ana@school.cl", status="INACTIVE")

    scope = resolve_scope(documents, "ana@school.cl")
    assert scope.is_active is False
    with pytest.raises(AccountInactive):
        scope.require_active()


def test_deleted_and_unknown_admins_are_unknown_actors(db_session):
    documents = SqlDocumentStore(db_session)
    _create_admin(documents, rut="22222222-2", email="gone@school.cl", status="DELETED")

    with pytest.raises(UnknownActor):
        resolve_scope(documents, "gone@school.cl")
    with pytest.raises(UnknownActor):
        resolve_scope(documents, "nobody@school.cl")


def test_filter_restricts_to_own_institution():
    records = [{"rut": "a", "institution_id": 1}, {"rut": "b", "institution_id": 2}]
    restricted = Scope(is_super_admin=False, institution_id=1, is_active=True)
    root = Scope(is_super_admin=True, institution_id=None, is_active=True)
    orphan = Scope(is_super_admin=False, institution_id=None, is_active=True)

    assert [r["rut"] for r in restricted.filter(records)] == ["a"]
    # An explicit filter never widens a restricted scope.
    assert [r["rut"] for r in restricted.filter(records, institution_id=2)] == ["a"]
    assert [r["rut"] for r in root.filter(records)] == ["a", "b"]
    assert [r["rut"] for r in root.filter(records, institution_id=2)] == ["b"]
    assert orphan.filter(records) == []


def test_require_institution_and_super_admin():
    restricted = Scope(is_super_admin=False, institution_id=1, is_active=True)
    restricted.require_institution(1)
    with pytest.raises(ScopeViolation):
        restricted.require_institution(2)
    with pytest.raises(ScopeViolation):
        restricted.require_super_admin("create institutions")

    root = Scope(is_super_admin=True, institution_id=None, is_active=True)
    root.require_institution(2)
    root.require_super_admin("create institutions")
