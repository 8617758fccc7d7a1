# backend/busdb/apps/accounts/schemas.py

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from busdb.apps.directory.schemas import EMAIL_MAX, NAME_MAX, PHONE_MAX, InstitutionCreate
from .models import AdminStatus

# ---------------------------------------------------------------------------
# ADMINISTRATORS
# ---------------------------------------------------------------------------


class AdministratorBase(BaseModel):
    rut: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=NAME_MAX)
    surname: str = Field(..., min_length=1, max_length=NAME_MAX)
    email: EmailStr = Field(..., max_length=EMAIL_MAX)
    phone: str = Field(..., min_length=1, max_length=PHONE_MAX)
    institution_id: int
    role: str = Field("Admin", max_length=NAME_MAX)
    is_super_admin: bool = False


class AdministratorCreate(AdministratorBase):
    password: str = Field(..., min_length=1)


class AdministratorUpdate(BaseModel):
    """
    Patch for an administrator record.

    `rut` and `email` are accepted only so that a change can be reported as
    ImmutableKey: the email is the link to the identity-provider account.
    Status is changed through the lifecycle endpoints, never here.
    """

    rut: Optional[str] = None
    email: Optional[EmailStr] = None
    name: Optional[str] = Field(None, min_length=1, max_length=NAME_MAX)
    surname: Optional[str] = Field(None, min_length=1, max_length=NAME_MAX)
    phone: Optional[str] = Field(None, min_length=1, max_length=PHONE_MAX)
    institution_id: Optional[int] = None
    role: Optional[str] = Field(None, max_length=NAME_MAX)
    is_super_admin: Optional[bool] = None


class AdministratorRead(AdministratorBase):
    status: AdminStatus
    is_active: bool
    is_deleted: bool
    account_id: Optional[str] = None
    deactivated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AdministratorRegister(BaseModel):
    """Self-registration payload (never creates a super administrator)."""

    rut: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=NAME_MAX)
    surname: str = Field(..., min_length=1, max_length=NAME_MAX)
    email: EmailStr = Field(..., max_length=EMAIL_MAX)
    phone: str = Field(..., min_length=1, max_length=PHONE_MAX)
    institution_id: int
    password: str = Field(..., min_length=1)
    terms: bool = Field(..., description="Terms of use must be accepted.")


class FirstSuperAdminCreate(BaseModel):
    """
    Bootstrap payload. `institution` creates the home institution when the
    directory is still empty.
    """

    rut: str
    name: str = Field(..., min_length=1, max_length=NAME_MAX)
    surname: str = Field(..., min_length=1, max_length=NAME_MAX)
    email: EmailStr = Field(..., max_length=EMAIL_MAX)
    phone: str = Field(..., min_length=1, max_length=PHONE_MAX)
    institution_id: int
    password: str = Field(..., min_length=1)
    institution: Optional[InstitutionCreate] = None


# ---------------------------------------------------------------------------
# AUTH
# ---------------------------------------------------------------------------


class ScopeRead(BaseModel):
    is_super_admin: bool
    institution_id: Optional[int] = None
    is_active: bool
    actor_email: Optional[str] = None
    actor_rut: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    scope: ScopeRead


class SecretChange(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)


class Profile(BaseModel):
    scope: ScopeRead
    administrator: AdministratorRead
