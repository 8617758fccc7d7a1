# backend/busdb/errors.py

"""
Error taxonomy for the busdb core.

Categories:
- ValidationError: bad input that the caller must correct (never retried).
- IntegrityError: directory integrity violations (duplicate keys, dangling
  references, scope violations, missing records, illegal transitions).
- AuthorizationError: actor resolution / sign-in failures.
- OrphanedProviderAccount: partial failure while creating an administrator.
- TransientError: the store / provider / blob backend was unreachable;
  the only category a caller may retry.

The API layer maps each category to an HTTP status in one place
(see `busdb.main`); services never raise HTTPException themselves.
"""

from __future__ import annotations

from typing import Optional


class BusDBError(Exception):
    """Base class for every error raised by the core."""

    code = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def as_dict(self) -> dict:
        return {"code": self.code, "detail": self.message}


# ---------------------------------------------------------------------------
# VALIDATION
# ---------------------------------------------------------------------------


class ValidationError(BusDBError):
    code = "validation_error"


class MalformedKey(ValidationError):
    """Key is empty or its body contains non-digits."""

    code = "malformed_key"


class KeyTooShort(ValidationError):
    code = "key_too_short"


class CheckDigitMismatch(ValidationError):
    code = "check_digit_mismatch"


class WeakSecret(ValidationError):
    code = "weak_secret"


class InvalidUpload(ValidationError):
    code = "invalid_upload"


# ---------------------------------------------------------------------------
# DIRECTORY INTEGRITY
# ---------------------------------------------------------------------------


class IntegrityError(BusDBError):
    code = "integrity_error"


class DuplicateKey(IntegrityError):
    code = "duplicate_key"

    def __init__(self, collection: str, key: str, message: str = "") -> None:
        super().__init__(message or f"{collection}: a record with key {key!r} already exists.")
        self.collection = collection
        self.key = key


class ImmutableKey(IntegrityError):
    code = "immutable_key"


class DanglingReference(IntegrityError):
    code = "dangling_reference"

    def __init__(self, field: str, target: str, value: object, message: str = "") -> None:
        super().__init__(message or f"{field}={value!r} does not reference an existing {target} record.")
        self.field = field
        self.target = target
        self.value = value


class ScopeViolation(IntegrityError):
    code = "scope_violation"


class NotFound(IntegrityError):
    code = "not_found"

    def __init__(self, collection: str, key: object, message: str = "") -> None:
        super().__init__(message or f"{collection}: no record with key {key!r}.")
        self.collection = collection
        self.key = key


class ReferenceInUse(IntegrityError):
    code = "reference_in_use"


class InvalidTransition(IntegrityError):
    code = "invalid_transition"

    def __init__(self, from_state: str, to_state: str) -> None:
        super().__init__(f"Cannot transition from {from_state} to {to_state}.")
        self.from_state = from_state
        self.to_state = to_state


# ---------------------------------------------------------------------------
# AUTHORIZATION
# ---------------------------------------------------------------------------


class AuthorizationError(BusDBError):
    code = "authorization_error"


class UnknownActor(AuthorizationError):
    """No administrator (or only a deleted one) matches the actor."""

    code = "unknown_actor"


class AccountInactive(AuthorizationError):
    code = "account_inactive"


class AuthenticationFailed(AuthorizationError):
    code = "authentication_failed"


# ---------------------------------------------------------------------------
# PARTIAL FAILURE / TRANSPORT
# ---------------------------------------------------------------------------


class OrphanedProviderAccount(BusDBError):
    """
    The identity-provider account was created but the administrator record
    could not be written. Nothing is rolled back; the attributes carry what
    an operator needs to reconcile by hand.
    """

    code = "orphaned_provider_account"

    def __init__(
        self,
        *,
        account_id: str,
        email: str,
        rut: str,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            f"Provider account {account_id} ({email}) was created but administrator "
            f"{rut} was not stored: {cause or 'unknown error'}"
        )
        self.account_id = account_id
        self.email = email
        self.rut = rut
        self.cause = cause

    def as_dict(self) -> dict:
        data = super().as_dict()
        data.update({"account_id": self.account_id, "email": self.email, "rut": self.rut})
        return data


class TransientError(BusDBError):
    """Backend unreachable; safe for the caller to retry."""

    code = "transient_error"


class OrphanedBlob(TransientError):
    """The record was updated but its previous blob could not be reclaimed."""

    code = "orphaned_blob"

    def __init__(self, reference: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Record saved but previous blob {reference} was not reclaimed: {cause}")
        self.reference = reference
        self.cause = cause

    def as_dict(self) -> dict:
        data = super().as_dict()
        data["reference"] = self.reference
        return data
