# backend/busdb/apps/directory/router.py
#
# Routes are built per entity type from its EntitySpec. The request and
# response models are the EntitySpec schema classes, so annotations here must
# stay real objects (no postponed evaluation).

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, File, UploadFile, status

from busdb.apps.accounts.scope import Scope
from busdb.apps.assets.services import AssetLifecycleManager, ImageUpload, get_asset_manager
from busdb.security import get_active_scope
from . import schemas
from .entities import DRIVER, GUARDIAN, INSTITUTION, STUDENT, VEHICLE, EntitySpec
from .services import DirectoryStore
from .store import SqlDocumentStore, get_document_store


def _directory_dependency(spec: EntitySpec):
    def get_directory(
        documents: SqlDocumentStore = Depends(get_document_store),
        assets: AssetLifecycleManager = Depends(get_asset_manager),
    ) -> DirectoryStore:
        return DirectoryStore(spec, documents, assets)

    return get_directory


def build_router(spec: EntitySpec) -> APIRouter:
    router = APIRouter(prefix=f"/directory/{spec.collection}", tags=[spec.collection])
    get_directory = _directory_dependency(spec)
    create_schema = spec.create_schema
    update_schema = spec.update_schema
    read_schema = spec.read_schema

    @router.post(
        "",
        response_model=read_schema,
        status_code=status.HTTP_201_CREATED,
        summary=f"Create a {spec.name}",
    )
    def create_record(
        payload: create_schema,
        scope: Scope = Depends(get_active_scope),
        directory: DirectoryStore = Depends(get_directory),
    ):
        return directory.create(scope, payload)

    @router.get(
        "",
        response_model=List[read_schema],
        summary=f"List {spec.collection} in scope",
    )
    def list_records(
        institution_id: Optional[int] = None,
        scope: Scope = Depends(get_active_scope),
        directory: DirectoryStore = Depends(get_directory),
    ):
        return directory.list(scope, institution_id=institution_id)

    if spec is INSTITUTION:

        @router.get(
            "/names",
            response_model=List[schemas.InstitutionName],
            summary="Institution id -> name lookup",
        )
        def institution_names(
            scope: Scope = Depends(get_active_scope),
            directory: DirectoryStore = Depends(get_directory),
        ):
            names: Dict[int, str] = directory.institution_names(scope)
            return [schemas.InstitutionName(id=key, name=name) for key, name in names.items()]

    @router.get("/{key}", response_model=read_schema)
    def get_record(
        key: str,
        scope: Scope = Depends(get_active_scope),
        directory: DirectoryStore = Depends(get_directory),
    ):
        return directory.get(scope, key)

    @router.put("/{key}", response_model=read_schema)
    def update_record(
        key: str,
        payload: update_schema,
        scope: Scope = Depends(get_active_scope),
        directory: DirectoryStore = Depends(get_directory),
    ):
        return directory.update(scope, key, payload)

    @router.delete("/{key}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_record(
        key: str,
        scope: Scope = Depends(get_active_scope),
        directory: DirectoryStore = Depends(get_directory),
    ):
        directory.delete(scope, key)

    if spec.image_field:

        @router.put(
            "/{key}/image",
            response_model=read_schema,
            summary=f"Upload or replace the {spec.name} image",
        )
        def set_image(
            key: str,
            file: UploadFile = File(...),
            scope: Scope = Depends(get_active_scope),
            directory: DirectoryStore = Depends(get_directory),
        ):
            upload = ImageUpload(
                filename=file.filename or "",
                data=file.file.read(),
                content_type=file.content_type,
            )
            return directory.set_image(scope, key, upload)

        @router.delete(
            "/{key}/image",
            response_model=read_schema,
            summary=f"Remove the {spec.name} image",
        )
        def clear_image(
            key: str,
            scope: Scope = Depends(get_active_scope),
            directory: DirectoryStore = Depends(get_directory),
        ):
            return directory.clear_image(scope, key)

    return router


routers = [build_router(spec) for spec in (INSTITUTION, GUARDIAN, STUDENT, DRIVER, VEHICLE)]
