# backend/busdb/apps/accounts/router_admin.py

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, status

from busdb.security import get_active_scope
from . import schemas
from .scope import Scope
from .services import AdministratorService, get_administrator_service

router = APIRouter(prefix="/admin/administrators", tags=["administrators"])


@router.post(
    "",
    response_model=schemas.AdministratorRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create an administrator",
)
def create_administrator(
    payload: schemas.AdministratorCreate,
    scope: Scope = Depends(get_active_scope),
    service: AdministratorService = Depends(get_administrator_service),
):
    """
    Create an administrator and its sign-in account.

    - Super administrators may create administrators for any institution,
      including other super administrators.
    - Regular administrators may only create regular administrators for
      their own institution.
    """
    return service.create(scope, payload, payload.password)


@router.get(
    "",
    response_model=List[schemas.AdministratorRead],
    summary="List administrators in scope",
)
def list_administrators(
    include_inactive: bool = False,
    institution_id: Optional[int] = None,
    scope: Scope = Depends(get_active_scope),
    service: AdministratorService = Depends(get_administrator_service),
):
    return service.list(scope, include_inactive=include_inactive, institution_id=institution_id)


@router.get(
    "/{rut}",
    response_model=schemas.AdministratorRead,
)
def get_administrator(
    rut: str,
    scope: Scope = Depends(get_active_scope),
    service: AdministratorService = Depends(get_administrator_service),
):
    return service.get(scope, rut)


@router.put(
    "/{rut}",
    response_model=schemas.AdministratorRead,
)
def update_administrator(
    rut: str,
    payload: schemas.AdministratorUpdate,
    scope: Scope = Depends(get_active_scope),
    service: AdministratorService = Depends(get_administrator_service),
):
    return service.update(scope, rut, payload)


@router.post(
    "/{rut}/deactivate",
    response_model=schemas.AdministratorRead,
)
def deactivate_administrator(
    rut: str,
    scope: Scope = Depends(get_active_scope),
    service: AdministratorService = Depends(get_administrator_service),
):
    return service.deactivate(scope, rut)


@router.post(
    "/{rut}/reactivate",
    response_model=schemas.AdministratorRead,
)
def reactivate_administrator(
    rut: str,
    scope: Scope = Depends(get_active_scope),
    service: AdministratorService = Depends(get_administrator_service),
):
    return service.reactivate(scope, rut)


@router.delete(
    "/{rut}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Soft-delete an administrator",
)
def delete_administrator(
    rut: str,
    scope: Scope = Depends(get_active_scope),
    service: AdministratorService = Depends(get_administrator_service),
):
    service.delete(scope, rut)
