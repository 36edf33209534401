from __future__ import annotations
from datetime import datetime
from typing import ClassVar, Literal, Optional, List
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, computed_field, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel

from itam.models import AssetType, AssetState, AssetStatus, AssignmentType, Disposition, UserRole


# ---- Shared base config (Pydantic v2) ----
# Wire format is camelCase; attribute names stay snake_case.
class APIModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


def dump(model_cls: type[APIModel], obj) -> dict:
    return model_cls.model_validate(obj).model_dump(mode="json", by_alias=True)


def dump_list(model_cls: type[APIModel], objs) -> list[dict]:
    return [dump(model_cls, o) for o in objs]


class PatchModel(APIModel):
    """Partial update body. Columns listed in ``not_null`` may be left out but not sent as null."""

    not_null: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def reject_nulls(self):
        nulls = [f for f in self.not_null if f in self.model_fields_set and getattr(self, f) is None]
        if nulls:
            raise ValueError(f"{', '.join(to_camel(f) for f in nulls)} cannot be null")
        return self


# ---- Location ----
class LocationCreate(APIModel):
    name: str = Field(..., min_length=2, max_length=255)
    description: Optional[str] = None
    is_active: bool = True


class LocationUpdate(PatchModel):
    not_null: ClassVar[tuple[str, ...]] = ("name", "is_active")

    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class LocationRead(APIModel):
    id: UUID
    name: str
    description: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


# ---- Department ----
class DepartmentCreate(APIModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    location_id: Optional[UUID] = None


class DepartmentRead(APIModel):
    id: UUID
    name: str
    description: Optional[str] = None
    location_id: Optional[UUID] = None
    is_active: bool


# ---- User ----
class UserCreate(APIModel):
    name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    role: UserRole = UserRole.USER
    employee_id: Optional[str] = Field(default=None, pattern=r"^EMP\d{5}$")
    department: Optional[str] = None
    department_id: Optional[UUID] = None
    location_id: Optional[UUID] = None


class UserUpdate(PatchModel):
    not_null: ClassVar[tuple[str, ...]] = ("name", "email", "role", "is_active")

    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    department: Optional[str] = None
    department_id: Optional[UUID] = None
    location_id: Optional[UUID] = None
    is_active: Optional[bool] = None


class UserRead(APIModel):
    id: UUID
    name: str
    email: EmailStr
    employee_id: str
    role: UserRole
    department: Optional[str] = None
    location_id: Optional[UUID] = None
    is_active: bool
    created_at: datetime

    @computed_field
    @property
    def status(self) -> str:
        return "ACTIVE" if self.is_active else "DEACTIVATED"


# ---- Asset ----
class AssetCreate(APIModel):
    asset_number: str = Field(..., min_length=1, max_length=10)
    type: AssetType
    serial_number: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    purchase_price: float = Field(default=0, ge=0)
    location_id: UUID
    assignment_type: AssignmentType = AssignmentType.INDIVIDUAL
    assigned_to: Optional[str] = None
    employee_id: Optional[str] = None
    department: Optional[str] = None


class AssetUpdate(PatchModel):
    # all optional; state changes go through PUT /assets
    not_null: ClassVar[tuple[str, ...]] = (
        "type", "serial_number", "description", "purchase_price", "location_id", "assignment_type",
    )

    type: Optional[AssetType] = None
    serial_number: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    purchase_price: Optional[float] = Field(default=None, ge=0)
    location_id: Optional[UUID] = None
    assignment_type: Optional[AssignmentType] = None
    assigned_to: Optional[str] = None
    employee_id: Optional[str] = None
    department: Optional[str] = None


class AssetRead(APIModel):
    id: UUID
    asset_number: Optional[str] = None
    type: AssetType
    state: AssetState
    status: AssetStatus
    serial_number: str
    description: str
    purchase_price: float
    location_id: UUID
    assignment_type: AssignmentType
    assigned_to: Optional[str] = None
    employee_id: Optional[str] = None
    department: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class HoldingAssetRead(APIModel):
    id: UUID
    serial_number: str
    description: str
    type: Optional[AssetType] = None
    purchase_price: float
    location_id: Optional[UUID] = None
    assignment_type: AssignmentType
    assigned_to: Optional[str] = None
    employee_id: Optional[str] = None
    department: Optional[str] = None
    status: AssetStatus
    supplier: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class HistoryRead(APIModel):
    id: UUID
    asset_id: UUID
    previous_state: Optional[AssetState] = None
    new_state: AssetState
    changed_by: Optional[UUID] = None
    changed_by_name: str = "System"
    change_reason: Optional[str] = None
    timestamp: datetime
    details: Optional[dict] = None


# ---- Lifecycle requests ----
class AssignHoldingRequest(APIModel):
    holding_asset_id: UUID
    asset_number: str
    user_id: Optional[UUID] = None
    # Checked by the lifecycle engine so the error message is ours
    type: Optional[str] = None


class BulkAssetRequest(APIModel):
    operation: Literal["stateTransition", "bulkUpdate"]
    asset_numbers: List[str] = Field(..., min_length=1)
    new_state: Optional[AssetState] = None
    location_id: Optional[UUID] = None
    reason: Optional[str] = None


class AssignRequest(APIModel):
    user_id: UUID
    assignment_type: AssignmentType = AssignmentType.INDIVIDUAL


class UnassignRequest(APIModel):
    user_id: UUID
    disposition: Disposition = Disposition.RESTOCK


class AssetExportRequest(APIModel):
    format: Literal["csv", "pdf"] = "csv"
    type: Optional[AssetType] = None
    state: Optional[AssetState] = None
    status: Optional[AssetStatus] = None
    location_id: Optional[UUID] = None
    search: Optional[str] = None


class ExportRequest(APIModel):
    format: Literal["csv", "pdf"] = "csv"


# ---- Settings ----
class DepreciationSettingsModel(APIModel):
    method: Literal["straight", "declining"] = "straight"
    years: int = Field(default=4, ge=1)
    declining_percents: List[float] = Field(default_factory=lambda: [50, 25, 12.5, 12.5])

    @field_validator("declining_percents")
    @classmethod
    def percents_in_range(cls, v: List[float]) -> List[float]:
        for p in v:
            if p < 0 or p > 100:
                raise ValueError("declining percents must be between 0 and 100")
        return v


class SettingsUpdate(APIModel):
    report_cache_duration: Optional[int] = Field(default=None, ge=1, le=1440, strict=True)
    depreciation_settings: Optional[DepreciationSettingsModel] = None

