# backend/busdb/apps/directory/schemas.py

from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

# Form limits carried over from the admin panel.
NAME_MAX = 20
PHONE_MAX = 20
EMAIL_MAX = 50


# ---------------------------------------------------------------------------
# INSTITUTIONS
# ---------------------------------------------------------------------------


class InstitutionBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    address: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    phone: str = Field(..., min_length=1, max_length=PHONE_MAX)
    manager_name: str = Field(..., min_length=1, max_length=120)


class InstitutionCreate(InstitutionBase):
    id: int = Field(..., gt=0, description="Institution number, e.g. the ministry school code.")


class InstitutionUpdate(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    address: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=1, max_length=PHONE_MAX)
    manager_name: Optional[str] = Field(None, min_length=1, max_length=120)


class InstitutionRead(InstitutionCreate):
    model_config = ConfigDict(from_attributes=True)


class InstitutionName(BaseModel):
    id: int
    name: str


# ---------------------------------------------------------------------------
# GUARDIANS
# ---------------------------------------------------------------------------


class GuardianBase(BaseModel):
    rut: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=NAME_MAX)
    surname: str = Field(..., min_length=1, max_length=NAME_MAX)
    email: EmailStr = Field(..., max_length=EMAIL_MAX)
    phone: str = Field(..., min_length=1, max_length=PHONE_MAX)
    institution_id: int


class GuardianCreate(GuardianBase):
    pass


class GuardianUpdate(BaseModel):
    rut: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1, max_length=NAME_MAX)
    surname: Optional[str] = Field(None, min_length=1, max_length=NAME_MAX)
    email: Optional[EmailStr] = Field(None, max_length=EMAIL_MAX)
    phone: Optional[str] = Field(None, min_length=1, max_length=PHONE_MAX)
    institution_id: Optional[int] = None


class GuardianRead(GuardianBase):
    image_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# STUDENTS
# ---------------------------------------------------------------------------


class StudentBase(BaseModel):
    rut: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=NAME_MAX)
    surname: str = Field(..., min_length=1, max_length=NAME_MAX)
    age: int = Field(..., ge=0, le=99)
    course: str = Field(..., min_length=1, max_length=NAME_MAX)
    address: str = Field(..., min_length=1, max_length=200)
    gender: str = Field(..., min_length=1, max_length=NAME_MAX)
    # Derived from the guardian whenever guardian_rut is set.
    institution_id: Optional[int] = None
    guardian_rut: Optional[str] = None


class StudentCreate(StudentBase):
    @model_validator(mode="after")
    def _institution_or_guardian(self) -> "StudentCreate":
        if self.institution_id is None and not self.guardian_rut:
            raise ValueError("institution_id is required when no guardian is set")
        return self


class StudentUpdate(BaseModel):
    rut: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1, max_length=NAME_MAX)
    surname: Optional[str] = Field(None, min_length=1, max_length=NAME_MAX)
    age: Optional[int] = Field(None, ge=0, le=99)
    course: Optional[str] = Field(None, min_length=1, max_length=NAME_MAX)
    address: Optional[str] = Field(None, min_length=1, max_length=200)
    gender: Optional[str] = Field(None, min_length=1, max_length=NAME_MAX)
    institution_id: Optional[int] = None
    guardian_rut: Optional[str] = None


class StudentRead(StudentBase):
    institution_id: int
    image_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# DRIVERS
# ---------------------------------------------------------------------------


class DriverBase(BaseModel):
    rut: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=NAME_MAX)
    surname: str = Field(..., min_length=1, max_length=NAME_MAX)
    age: int = Field(..., ge=18, le=65)
    gender: str = Field(..., min_length=1, max_length=NAME_MAX)
    address: str = Field(..., min_length=1, max_length=200)
    email: EmailStr = Field(..., max_length=EMAIL_MAX)
    admission_date: date
    institution_id: int
    vehicle_plate: Optional[str] = None


class DriverCreate(DriverBase):
    pass


class DriverUpdate(BaseModel):
    rut: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1, max_length=NAME_MAX)
    surname: Optional[str] = Field(None, min_length=1, max_length=NAME_MAX)
    age: Optional[int] = Field(None, ge=18, le=65)
    gender: Optional[str] = Field(None, min_length=1, max_length=NAME_MAX)
    address: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[EmailStr] = Field(None, max_length=EMAIL_MAX)
    admission_date: Optional[date] = None
    institution_id: Optional[int] = None
    vehicle_plate: Optional[str] = None


class DriverRead(DriverBase):
    image_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# VEHICLES
# ---------------------------------------------------------------------------


class VehicleBase(BaseModel):
    plate: str = Field(..., min_length=1, max_length=12)
    institution_id: int
    driver_rut: Optional[str] = None
    model: str = Field(..., min_length=1, max_length=60)


class VehicleCreate(VehicleBase):
    pass


class VehicleUpdate(BaseModel):
    plate: Optional[str] = None
    institution_id: Optional[int] = None
    driver_rut: Optional[str] = None
    model: Optional[str] = Field(None, min_length=1, max_length=60)


class VehicleRead(VehicleBase):
    image_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
