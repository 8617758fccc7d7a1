# backend/busdb/apps/directory/services.py

"""
Directory store: scope-checked CRUD over every entity type.

One `DirectoryStore` instance serves one `EntitySpec`. All operations take
the caller's Scope explicitly; nothing is cached between calls, so a stale
read copy held by a caller is never trusted.

Order of checks on create / update:
    active scope -> key validation -> derived institution -> scope
    -> references -> uniqueness -> write -> dependents

Image references are never taken from payloads; only `set_image` and
`clear_image` write them, and both reclaim the blob they replace.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from busdb.apps.accounts.scope import Scope
from busdb.apps.assets.services import AssetLifecycleManager, ImageUpload
from busdb.errors import (
    DanglingReference,
    DuplicateKey,
    ImmutableKey,
    NotFound,
    ReferenceInUse,
    ValidationError,
)
from .entities import ENTITIES, INSTITUTION, EntitySpec, Reference
from .store import DocumentStore

logger = logging.getLogger(__name__)

Payload = Union[BaseModel, Mapping[str, Any]]


def _as_dict(payload: Payload, *, exclude_unset: bool = False) -> Dict[str, Any]:
    if isinstance(payload, BaseModel):
        return payload.model_dump(exclude_unset=exclude_unset)
    return dict(payload)


class DirectoryStore:
    def __init__(
        self,
        spec: EntitySpec,
        documents: DocumentStore,
        assets: Optional[AssetLifecycleManager] = None,
    ) -> None:
        self.spec = spec
        self.documents = documents
        self.assets = assets

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _validated(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            model = self.spec.create_schema.model_validate(dict(data))
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid {self.spec.name}: {exc}") from exc
        return model.model_dump(mode="json")

    def _load(self, key: str) -> Optional[dict]:
        record = self.documents.get(self.spec.collection, key)
        if record is None or not self.spec.is_live(record):
            return None
        return record

    def _load_visible(self, scope: Scope, raw_key: Any) -> tuple[str, dict]:
        """Key + record, or NotFound when missing or outside the scope."""
        key = self.spec.normalize_key(raw_key)
        record = self._load(key)
        if record is None or not scope.can_see(self.spec.institution_of(record)):
            raise NotFound(self.spec.collection, key)
        return key, record

    def load_for_mutation(self, scope: Scope, raw_key: Any) -> tuple[str, dict]:
        """Key + record for a write; out-of-scope records raise ScopeViolation."""
        key = self.spec.normalize_key(raw_key)
        record = self._load(key)
        if record is None:
            raise NotFound(self.spec.collection, key)
        scope.require_institution(self.spec.institution_of(record))
        return key, record

    def _normalise_references(self, data: Dict[str, Any]) -> None:
        for ref in self.spec.references:
            value = data.get(ref.field)
            if value in (None, ""):
                data[ref.field] = None
                continue
            normalised = ref.normalize(value)
            data[ref.field] = int(normalised) if ref.target == INSTITUTION.name else normalised

    def _target(self, ref: Reference, value: Any) -> dict:
        target_spec = ENTITIES[ref.target]
        key = target_spec.normalize_key(value)
        record = self.documents.get(target_spec.collection, key)
        if record is None or not target_spec.is_live(record):
            raise DanglingReference(ref.field, ref.target, value)
        return record

    def _derive_institution(self, data: Dict[str, Any]) -> None:
        """A referenced target may dictate the record's institution."""
        for ref in self.spec.references:
            if ref.derives_institution and data.get(ref.field):
                target = self._target(ref, data[ref.field])
                target_spec = ENTITIES[ref.target]
                data[self.spec.institution_field] = target_spec.institution_of(target)

    def _check_references(self, data: Dict[str, Any]) -> None:
        institution_id = self.spec.institution_of(data)
        for ref in self.spec.references:
            value = data.get(ref.field)
            if value is None:
                continue
            target = self._target(ref, value)
            if ref.same_institution:
                target_institution = ENTITIES[ref.target].institution_of(target)
                if target_institution != institution_id:
                    raise DanglingReference(
                        ref.field,
                        ref.target,
                        value,
                        f"{ref.field}={value!r} belongs to institution {target_institution}, "
                        f"not {institution_id}.",
                    )

    def _dependents(self, key: str):
        """(spec, reference, records) for every live record pointing at `key`."""
        for spec in ENTITIES.values():
            for ref in spec.references:
                if ref.target != self.spec.name:
                    continue
                value = self.spec.key_value(key)
                records = self.documents.scan(
                    spec.collection,
                    lambda r, f=ref.field, v=value: r.get(f) == v and spec.is_live(r),
                )
                if records:
                    yield spec, ref, records

    def _move_dependents(self, key: str, institution_id: Optional[int], scope: Scope) -> None:
        """
        Keep records pointing at `key` consistent after it moved to
        `institution_id`: derived institutions follow the move, other
        same-institution links are cleared.
        """
        for spec, ref, records in self._dependents(key):
            if not (ref.derives_institution or ref.same_institution):
                continue
            for dependent in records:
                if spec.institution_of(dependent) == institution_id:
                    continue
                dependent_key = spec.normalize_key(dependent[spec.key_field])
                if ref.derives_institution:
                    moved = {**dependent, spec.institution_field: institution_id}
                    self.documents.put(spec.collection, dependent_key, moved)
                    DirectoryStore(spec, self.documents)._move_dependents(dependent_key, institution_id, scope)
                else:
                    self.documents.put(spec.collection, dependent_key, {**dependent, ref.field: None})
                logger.info(
                    "Dependent record adjusted after institution change",
                    extra={
                        "collection": spec.collection,
                        "key": dependent_key,
                        "field": ref.field,
                        "institution_id": institution_id,
                        "actor": scope.actor_email,
                    },
                )

    def _without_image(self, data: Dict[str, Any]) -> Dict[str, Any]:
        # Image references are only written by set_image / clear_image.
        if self.spec.image_field:
            data.pop(self.spec.image_field, None)
        return data

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def prepare(self, scope: Scope, payload: Payload) -> tuple[str, Dict[str, Any]]:
        """
        Run every create-time check without writing.

        Used directly by `create` and by the administrator lifecycle, which
        has to provision an identity account between checks and write.
        """
        scope.require_active()
        data = self._without_image(_as_dict(payload))

        key = self.spec.normalize_key(data.get(self.spec.key_field))
        data[self.spec.key_field] = self.spec.key_value(key)
        self._normalise_references(data)
        self._derive_institution(data)

        if self.spec.super_admin_only:
            scope.require_super_admin(f"create {self.spec.collection}")
        data = self._validated(data)
        if self.spec.image_field:
            data[self.spec.image_field] = None
        scope.require_institution(self.spec.institution_of(data))
        self._check_references(data)

        if self.documents.get(self.spec.collection, key) is not None:
            raise DuplicateKey(self.spec.collection, key)
        return key, data

    def create(self, scope: Scope, payload: Payload) -> dict:
        key, data = self.prepare(scope, payload)
        # Atomic insert-if-absent: a concurrent create of the same key fails here.
        self.documents.create(self.spec.collection, key, data)
        logger.info(
            "Directory record created",
            extra={"collection": self.spec.collection, "key": key, "actor": scope.actor_email},
        )
        return data

    def update(self, scope: Scope, key: Any, patch: Payload) -> dict:
        scope.require_active()
        key, stored = self.load_for_mutation(scope, key)
        changes = self._without_image(_as_dict(patch, exclude_unset=True))

        if self.spec.key_field in changes:
            new_key = changes.pop(self.spec.key_field)
            if new_key is not None and self.spec.normalize_key(new_key) != key:
                raise ImmutableKey(f"{self.spec.key_field} cannot be changed once created.")

        merged = {**stored, **changes}
        self._normalise_references(merged)
        self._derive_institution(merged)
        validated = self._validated(merged)
        # A restricted administrator cannot move a record to another institution.
        scope.require_institution(self.spec.institution_of(validated))
        self._check_references(validated)

        record = {**stored, **validated}
        if self.spec.image_field:
            record[self.spec.image_field] = stored.get(self.spec.image_field)
        self.documents.put(self.spec.collection, key, record)

        institution_id = self.spec.institution_of(record)
        if institution_id != self.spec.institution_of(stored):
            self._move_dependents(key, institution_id, scope)
        logger.info(
            "Directory record updated",
            extra={
                "collection": self.spec.collection,
                "key": key,
                "fields": sorted(changes),
                "actor": scope.actor_email,
            },
        )
        return record

    def get(self, scope: Scope, key: Any) -> dict:
        scope.require_active()
        _, record = self._load_visible(scope, key)
        return record

    def list(self, scope: Scope, institution_id: Optional[int] = None) -> List[dict]:
        scope.require_active()
        records = self.documents.scan(self.spec.collection, self.spec.is_live)
        return scope.filter(records, field=self.spec.institution_field, institution_id=institution_id)

    def delete(self, scope: Scope, key: Any) -> None:
        scope.require_active()
        if self.spec.super_admin_only:
            scope.require_super_admin(f"delete {self.spec.collection}")
        key, record = self.load_for_mutation(scope, key)

        dependents = list(self._dependents(key))
        if self.spec is INSTITUTION and dependents:
            names = ", ".join(sorted({spec.collection for spec, _, _ in dependents}))
            raise ReferenceInUse(f"Institution {key} is still referenced by: {names}.")

        self.documents.delete(self.spec.collection, key)
        for spec, ref, records in dependents:
            for dependent in records:
                dependent_key = spec.normalize_key(dependent[spec.key_field])
                self.documents.put(spec.collection, dependent_key, {**dependent, ref.field: None})
        logger.info(
            "Directory record deleted",
            extra={"collection": self.spec.collection, "key": key, "actor": scope.actor_email},
        )

        if self.spec.image_field and self.assets is not None:
            self.assets.reclaim(record.get(self.spec.image_field))

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def _require_images(self) -> AssetLifecycleManager:
        if not self.spec.image_field:
            raise ValidationError(f"{self.spec.collection} records do not carry images.")
        if self.assets is None:
            raise ValidationError("No asset manager configured.")
        return self.assets

    def set_image(self, scope: Scope, key: Any, upload: ImageUpload) -> dict:
        assets = self._require_images()
        scope.require_active()
        key, record = self.load_for_mutation(scope, key)

        saved: Dict[str, dict] = {}

        def persist(updated: dict) -> None:
            self.documents.put(self.spec.collection, key, updated)
            saved["record"] = updated

        assets.replace_image(
            record,
            upload,
            collection=self.spec.collection,
            key=key,
            persist=persist,
            field=self.spec.image_field,
        )
        return saved["record"]

    def clear_image(self, scope: Scope, key: Any) -> dict:
        assets = self._require_images()
        scope.require_active()
        key, record = self.load_for_mutation(scope, key)

        previous = record.get(self.spec.image_field)
        cleared = {**record, self.spec.image_field: None}
        self.documents.put(self.spec.collection, key, cleared)
        logger.info(
            "Image cleared",
            extra={"collection": self.spec.collection, "key": key, "actor": scope.actor_email},
        )
        assets.reclaim(previous)
        return cleared

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def institution_names(self, scope: Scope) -> Dict[int, str]:
        """
        Fresh `{institution id: name}` map of the institutions in scope.

        Built on every call; callers that want to reuse it across
        operations rebuild it themselves.
        """
        directory = self if self.spec is INSTITUTION else DirectoryStore(INSTITUTION, self.documents)
        return {record["id"]: record["name"] for record in directory.list(scope)}
