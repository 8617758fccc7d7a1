# backend/busdb/apps/accounts/router_public.py

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm

from busdb.security import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    create_access_token,
    get_active_scope,
    get_current_scope,
)
from . import schemas
from .scope import Scope
from .services import AdministratorService, get_administrator_service

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/login",
    response_model=schemas.Token,
    summary="Login with email and password",
)
def login(
    form: OAuth2PasswordRequestForm = Depends(),
    service: AdministratorService = Depends(get_administrator_service),
):
    """
    OAuth2 password flow: `username` is the administrator's email.

    - Wrong credentials, unknown or deleted administrators: **401**.
    - Deactivated administrators: **403**.
    """
    scope, _ = service.authenticate(form.username, form.password)
    token = create_access_token(subject=scope.actor_email)
    return schemas.Token(
        access_token=token,
        expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        scope=schemas.ScopeRead.model_validate(scope),
    )


@router.post(
    "/register",
    response_model=schemas.AdministratorRead,
    status_code=status.HTTP_201_CREATED,
    summary="Register as an administrator of an existing institution",
)
def register(
    payload: schemas.AdministratorRegister,
    service: AdministratorService = Depends(get_administrator_service),
):
    return service.register(payload, payload.password)


@router.get(
    "/me",
    response_model=schemas.Profile,
    summary="Current administrator and their scope",
)
def read_current_administrator(
    scope: Scope = Depends(get_current_scope),
    service: AdministratorService = Depends(get_administrator_service),
):
    # Deactivated administrators can still see their own profile.
    record = service.current(scope)
    return schemas.Profile(
        scope=schemas.ScopeRead.model_validate(scope),
        administrator=schemas.AdministratorRead.model_validate(record),
    )


@router.post(
    "/me/password",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Change own password (requires the current one)",
)
def change_password(
    payload: schemas.SecretChange,
    scope: Scope = Depends(get_active_scope),
    service: AdministratorService = Depends(get_administrator_service),
):
    service.change_secret(scope, payload.current_password, payload.new_password)


# ---------------------------------------------------------------------------
# BOOTSTRAP: FIRST SUPER ADMINISTRATOR
# ---------------------------------------------------------------------------


@router.post(
    "/first-super-admin",
    response_model=schemas.AdministratorRead,
    status_code=status.HTTP_201_CREATED,
    summary="Bootstrap the first super administrator",
    description=(
        "Bootstrap endpoint used once when the directory is empty.\n\n"
        "- If any administrator already exists, this endpoint returns **403**.\n"
        "- When `institution` is supplied and does not exist yet, it is "
        "created first."
    ),
)
def create_first_super_admin(
    payload: schemas.FirstSuperAdminCreate,
    service: AdministratorService = Depends(get_administrator_service),
):
    return service.bootstrap_super_admin(payload, payload.password)
