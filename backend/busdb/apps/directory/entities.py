# backend/busdb/apps/directory/entities.py

"""
Entity registry for the directory.

Each entity type is described once by an `EntitySpec`: its collection, how
its key is validated, which schemas shape it, which fields reference other
entities and whether it carries an image. `DirectoryStore` is generic over
these specs, so scope filtering, key validation, reference checks and asset
reclamation exist in a single place for every entity type.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Any, Callable, Dict, Optional, Tuple, Type

from pydantic import BaseModel

from busdb.apps.accounts import schemas as account_schemas
from busdb.apps.accounts.models import AdminStatus
from busdb.errors import MalformedKey
from busdb.utils import rut
from . import schemas

INSTITUTIONS = "institutions"
ADMINISTRATORS = "administrators"
GUARDIANS = "guardians"
STUDENTS = "students"
DRIVERS = "drivers"
VEHICLES = "vehicles"

_PLATE_SEPARATORS = re.compile(r"[\s\-\.·]")
_PLATE_FORMAT = re.compile(r"^[A-Z0-9]{5,8}$")


# ---------------------------------------------------------------------------
# KEY NORMALISERS
# ---------------------------------------------------------------------------


def normalize_plate(value: Any) -> str:
    """Upper-case a licence plate and drop separators: 'ab-cd 12' -> 'ABCD12'."""
    plate = _PLATE_SEPARATORS.sub("", str(value or "")).upper()
    if not _PLATE_FORMAT.match(plate):
        raise MalformedKey(f"Invalid licence plate {value!r}.")
    return plate


def normalize_institution_id(value: Any) -> str:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise MalformedKey(f"Invalid institution id {value!r}.")
    if isinstance(value, bool) or number <= 0:
        raise MalformedKey(f"Invalid institution id {value!r}.")
    return str(number)


def normalize_rut(value: Any) -> str:
    return rut.normalize(str(value or ""))


# ---------------------------------------------------------------------------
# SPECS
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Reference:
    """
    A foreign key held in `field` and pointing at entity `target`.

    - same_institution: the target must belong to the record's institution.
    - derives_institution: the record's institution is copied from the
      target (students take their guardian's institution).
    - When the target is deleted, dependents have `field` cleared, except
      for institutions, which cannot be deleted while referenced.
    """

    field: str
    target: str
    normalize: Callable[[Any], str]
    same_institution: bool = True
    derives_institution: bool = False


@dataclass(frozen=True)
class EntitySpec:
    name: str
    collection: str
    key_field: str
    normalize_key: Callable[[Any], str]
    create_schema: Type[BaseModel]
    update_schema: Type[BaseModel]
    read_schema: Type[BaseModel]
    institution_field: str = "institution_id"
    references: Tuple[Reference, ...] = ()
    image_field: Optional[str] = "image_url"
    super_admin_only: bool = False
    is_live: Callable[[dict], bool] = field(default=lambda record: True)

    def key_value(self, key: str) -> Any:
        """Value of the key field inside the record for a stored key."""
        if self.normalize_key is normalize_institution_id:
            return int(key)
        return key

    def institution_of(self, record: dict) -> Optional[int]:
        return record.get(self.institution_field)


_INSTITUTION_REF = Reference(
    field="institution_id",
    target="institution",
    normalize=normalize_institution_id,
    same_institution=False,
)

INSTITUTION = EntitySpec(
    name="institution",
    collection=INSTITUTIONS,
    key_field="id",
    normalize_key=normalize_institution_id,
    create_schema=schemas.InstitutionCreate,
    update_schema=schemas.InstitutionUpdate,
    read_schema=schemas.InstitutionRead,
    institution_field="id",
    image_field=None,
    super_admin_only=True,
)

GUARDIAN = EntitySpec(
    name="guardian",
    collection=GUARDIANS,
    key_field="rut",
    normalize_key=normalize_rut,
    create_schema=schemas.GuardianCreate,
    update_schema=schemas.GuardianUpdate,
    read_schema=schemas.GuardianRead,
    references=(_INSTITUTION_REF,),
)

STUDENT = EntitySpec(
    name="student",
    collection=STUDENTS,
    key_field="rut",
    normalize_key=normalize_rut,
    create_schema=schemas.StudentCreate,
    update_schema=schemas.StudentUpdate,
    read_schema=schemas.StudentRead,
    references=(
        Reference(
            field="guardian_rut",
            target="guardian",
            normalize=normalize_rut,
            derives_institution=True,
        ),
        _INSTITUTION_REF,
    ),
)

DRIVER = EntitySpec(
    name="driver",
    collection=DRIVERS,
    key_field="rut",
    normalize_key=normalize_rut,
    create_schema=schemas.DriverCreate,
    update_schema=schemas.DriverUpdate,
    read_schema=schemas.DriverRead,
    references=(
        _INSTITUTION_REF,
        Reference(field="vehicle_plate", target="vehicle", normalize=normalize_plate),
    ),
)

VEHICLE = EntitySpec(
    name="vehicle",
    collection=VEHICLES,
    key_field="plate",
    normalize_key=normalize_plate,
    create_schema=schemas.VehicleCreate,
    update_schema=schemas.VehicleUpdate,
    read_schema=schemas.VehicleRead,
    references=(
        _INSTITUTION_REF,
        Reference(field="driver_rut", target="driver", normalize=normalize_rut),
    ),
)


ADMINISTRATOR = EntitySpec(
    name="administrator",
    collection=ADMINISTRATORS,
    key_field="rut",
    normalize_key=normalize_rut,
    create_schema=account_schemas.AdministratorBase,
    update_schema=account_schemas.AdministratorUpdate,
    read_schema=account_schemas.AdministratorRead,
    references=(_INSTITUTION_REF,),
    image_field=None,
    is_live=lambda record: record.get("status") != AdminStatus.DELETED.value,
)

ENTITIES: Dict[str, EntitySpec] = {
    spec.name: spec
    for spec in (INSTITUTION, ADMINISTRATOR, GUARDIAN, STUDENT, DRIVER, VEHICLE)
}
