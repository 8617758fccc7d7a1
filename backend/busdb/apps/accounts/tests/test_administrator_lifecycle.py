from __future__ import annotations

import pytest

from busdb.apps.accounts.identity import SqlIdentityProvider
from busdb.apps.accounts.models import IdentityAccount
from busdb.apps.accounts.scope import Scope, resolve_scope
from busdb.apps.accounts.services import AdministratorService
from busdb.apps.directory.entities import ADMINISTRATORS, INSTITUTION
from busdb.apps.directory.services import DirectoryStore
from busdb.apps.directory.store import SqlDocumentStore
from busdb.scripts.reconcile_orphaned_account import discard_orphaned_account
from busdb.errors import (
    AccountInactive,
    AuthenticationFailed,
    DuplicateKey,
    ImmutableKey,
    InvalidTransition,
    NotFound,
    OrphanedProviderAccount,
    ScopeViolation,
    TransientError,
    UnknownActor,
    ValidationError,
    WeakSecret,
)

ROOT = Scope(is_super_admin=True, institution_id=None, is_active=True, actor_email="root@bus.cl")
SCHOOL_1 = Scope(is_super_admin=False, institution_id=1, is_active=True, actor_email="ana@school1.cl")

SECRET = "s3cret-pass"


class _FailingAdministratorWrites(SqlDocumentStore):
    def create(self, collection, key, record):
        if collection == ADMINISTRATORS:
            raise TransientError("document store down")
        return super().create(collection, key, record)


def _create_institution(documents, institution_id: int) -> None:
    DirectoryStore(INSTITUTION, documents).create(
        ROOT,
        {
            "id": institution_id,
            "name": f"School {institution_id}",
            "address": "Av. Principal 123",
            "email": f"contact{institution_id}@school.cl",
            "phone": "+56222222222",
            "manager_name": "Marta Diaz",
        },
    )


def _admin_payload(rut: str, email: str, institution_id: int = 1, **fields) -> dict:
    payload = {
        "rut": rut,
        "name": "Ana",
        "surname": "Rojas",
        "email": email,
        "phone": "+56911111111",
        "institution_id": institution_id,
    }
    payload.update(fields)
    return payload


@pytest.fixture()
def service(db_session):
    documents = SqlDocumentStore(db_session)
    _create_institution(documents, 1)
    _create_institution(documents, 2)
    return AdministratorService(documents, SqlIdentityProvider(db_session))


def test_create_links_provider_account(service, db_session):
    record = service.create(ROOT, _admin_payload("22222222-2", "Ana@School1.cl"), SECRET)

    assert record["status"] == "ACTIVE"
    assert record["is_active"] is True
    assert record["is_deleted"] is False
    assert record["email"] == "ana@school1.cl"
    account = db_session.get(IdentityAccount, record["account_id"])
    assert account is not None
    assert account.email == "ana@school1.cl"
    assert account.hashed_secret != SECRET


def test_create_rejects_duplicates_before_provisioning(service, db_session):
    service.create(ROOT, _admin_payload("22222222-2", "ana@school1.cl"), SECRET)

    with pytest.raises(DuplicateKey):
        service.create(ROOT, _admin_payload("22222222-2", "other@school1.cl"), SECRET)
    with pytest.raises(DuplicateKey):
        service.create(ROOT, _admin_payload("33333333-3", "ANA@school1.cl"), SECRET)

    assert db_session.query(IdentityAccount).count() == 1


def test_restricted_admin_cannot_create_super_admins_or_other_institutions(service):
    with pytest.raises(ScopeViolation):
        service.create(SCHOOL_1, _admin_payload("22222222-2", "a@school1.cl", is_super_admin=True), SECRET)
    with pytest.raises(ScopeViolation):
        service.create(SCHOOL_1, _admin_payload("22222222-2", "a@school2.cl", institution_id=2), SECRET)

    record = service.create(SCHOOL_1, _admin_payload("22222222-2", "a@school1.cl"), SECRET)
    assert record["is_super_admin"] is False


def test_weak_secret_is_rejected(service):
    with pytest.raises(WeakSecret):
        service.create(ROOT, _admin_payload("22222222-2", "a@school1.cl"), "12345")


def test_failed_write_after_provisioning_reports_orphaned_account(db_session):
    documents = _FailingAdministratorWrites(db_session)
    _create_institution(documents, 1)
    service = AdministratorService(documents, SqlIdentityProvider(db_session))

    with pytest.raises(OrphanedProviderAccount) as exc:
        service.create(ROOT, _admin_payload("22222222-2", "ana@school1.cl"), SECRET)

    assert exc.value.rut == "22222222-2"
    assert exc.value.email == "ana@school1.cl"
    # No automatic rollback: the provider account is still there.
    assert db_session.get(IdentityAccount, exc.value.account_id) is not None
    assert documents.get(ADMINISTRATORS, "22222222-2") is None

    # Manual reconciliation removes the unlinked account afterwards.
    assert discard_orphaned_account(documents, SqlIdentityProvider(db_session), exc.value.account_id)
    assert db_session.get(IdentityAccount, exc.value.account_id) is None


def test_reconciliation_keeps_accounts_linked_to_an_administrator(service, db_session):
    record = service.create(ROOT, _admin_payload("22222222-2", "ana@school1.cl"), SECRET)

    assert not discard_orphaned_account(service.documents, SqlIdentityProvider(db_session), record["account_id"])
    assert db_session.get(IdentityAccount, record["account_id"]) is not None
    service.authenticate("ana@school1.cl", SECRET)


def test_deactivated_admin_is_listed_only_with_include_inactive(service):
    service.create(ROOT, _admin_payload("22222222-2", "ana@school1.cl"), SECRET)
    service.create(ROOT, _admin_payload("33333333-3", "luis@school1.cl"), SECRET)

    deactivated = service.deactivate(ROOT, "33333333-3")
    assert deactivated["status"] == "INACTIVE"
    assert deactivated["deactivated_at"] is not None

    assert [a["rut"] for a in service.list(ROOT)] == ["22222222-2"]
    assert [a["rut"] for a in service.list(ROOT, include_inactive=True)] == ["22222222-2", "33333333-3"]
    assert resolve_scope(service.documents, "luis@school1.cl").is_active is False

    reactivated = service.reactivate(ROOT, "33333333-3")
    assert reactivated["status"] == "ACTIVE"
    assert reactivated["deactivated_at"] is None


def test_deleted_admin_disappears_but_keeps_its_keys(service):
    service.create(ROOT, _admin_payload("22222222-2", "ana@school1.cl"), SECRET)

    deleted = service.delete(ROOT, "22222222-2")
    assert deleted["status"] == "DELETED"
    assert deleted["deleted_at"] is not None

    assert service.list(ROOT, include_inactive=True) == []
    with pytest.raises(NotFound):
        service.get(ROOT, "22222222-2")
    with pytest.raises(UnknownActor):
        resolve_scope(service.documents, "ana@school1.cl")
    with pytest.raises(UnknownActor):
        service.authenticate("ana@school1.cl", SECRET)
    with pytest.raises(DuplicateKey):
        service.create(ROOT, _admin_payload("22222222-2", "new@school1.cl"), SECRET)
    with pytest.raises(DuplicateKey):
        service.create(ROOT, _admin_payload("33333333-3", "ana@school1.cl"), SECRET)
    # DELETED is terminal.
    with pytest.raises(NotFound):
        service.reactivate(ROOT, "22222222-2")


def test_illegal_transitions(service):
    service.create(ROOT, _admin_payload("22222222-2", "ana@school1.cl"), SECRET)

    with pytest.raises(InvalidTransition):
        service.reactivate(ROOT, "22222222-2")
    service.deactivate(ROOT, "22222222-2")
    with pytest.raises(InvalidTransition):
        service.deactivate(ROOT, "22222222-2")
    service.delete(ROOT, "22222222-2")


def test_update_guards_email_super_flag_and_institution(service):
    service.create(ROOT, _admin_payload("22222222-2", "ana@school1.cl"), SECRET)
    service.create(ROOT, _admin_payload("11111111-1", "root@bus.cl", is_super_admin=True), SECRET)

    updated = service.update(SCHOOL_1, "22222222-2", {"phone": "+56900000000", "email": "ANA@school1.cl"})
    assert updated["phone"] == "+56900000000"
    assert updated["status"] == "ACTIVE"
    assert updated["account_id"]

    with pytest.raises(ImmutableKey):
        service.update(SCHOOL_1, "22222222-2", {"email": "new@school1.cl"})
    with pytest.raises(ImmutableKey):
        service.update(ROOT, "22222222-2", {"rut": "33333333-3"})
    with pytest.raises(ScopeViolation):
        service.update(SCHOOL_1, "22222222-2", {"is_super_admin": True})
    with pytest.raises(ScopeViolation):
        service.update(SCHOOL_1, "22222222-2", {"institution_id": 2})
    with pytest.raises(ScopeViolation):
        service.deactivate(SCHOOL_1, "11111111-1")

    moved = service.update(ROOT, "22222222-2", {"institution_id": 2})
    assert moved["institution_id"] == 2


def test_authenticate_resolves_scope_and_rejects_bad_credentials(service):
    service.create(ROOT, _admin_payload("22222222-2", "ana@school1.cl"), SECRET)

    scope, record = service.authenticate("Ana@School1.cl", SECRET)
    assert scope.institution_id == 1
    assert scope.is_super_admin is False
    assert scope.actor_rut == "22222222-2"
    assert record["rut"] == "22222222-2"

    with pytest.raises(AuthenticationFailed):
        service.authenticate("ana@school1.cl", "wrong-pass")
    with pytest.raises(AuthenticationFailed):
        service.authenticate("nobody@school1.cl", SECRET)

    service.deactivate(ROOT, "22222222-2")
    with pytest.raises(AccountInactive):
        service.authenticate("ana@school1.cl", SECRET)


def test_change_secret_requires_current_secret(service):
    service.create(ROOT, _admin_payload("22222222-2", "ana@school1.cl"), SECRET)
    scope, _ = service.authenticate("ana@school1.cl", SECRET)

    with pytest.raises(AuthenticationFailed):
        service.change_secret(scope, "not-it", "brand-new-pass")
    with pytest.raises(WeakSecret):
        service.change_secret(scope, SECRET, "123")

    service.change_secret(scope, SECRET, "brand-new-pass")
    with pytest.raises(AuthenticationFailed):
        service.authenticate("ana@school1.cl", SECRET)
    service.authenticate("ana@school1.cl", "brand-new-pass")


def test_register_requires_terms_and_never_creates_super_admins(service):
    payload = _admin_payload("22222222-2", "ana@school1.cl", password=SECRET, terms=False)
    with pytest.raises(ValidationError):
        service.register(payload)

    payload.update(terms=True, is_super_admin=True)
    record = service.register(payload)
    assert record["is_super_admin"] is False
    assert record["institution_id"] == 1
    assert "password" not in record


def test_bootstrap_only_while_empty(db_session):
    service = AdministratorService(SqlDocumentStore(db_session), SqlIdentityProvider(db_session))
    payload = _admin_payload(
        "11111111-1",
        "root@bus.cl",
        institution_id=5,
        institution={
            "id": 5,
            "name": "Platform",
            "address": "N/A",
            "email": "root@bus.cl",
            "phone": "+5600",
            "manager_name": "Owner",
        },
    )

    record = service.bootstrap_super_admin(payload, SECRET)
    assert record["is_super_admin"] is True
    assert service.documents.get("institutions", "5")["name"] == "Platform"

    with pytest.raises(ScopeViolation):
        service.bootstrap_super_admin(_admin_payload("33333333-3", "x@bus.cl", institution_id=5), SECRET)
