import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum


def utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)

from sqlalchemy import (
    String, Integer, Boolean, DateTime, Text, Numeric, ForeignKey, Index, JSON, Uuid,
    Enum as SAEnum, event, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from itam.db import Base


class AssetType(str, Enum):
    MOBILE_PHONE = "MOBILE_PHONE"
    TABLET = "TABLET"
    DESKTOP = "DESKTOP"
    LAPTOP = "LAPTOP"
    MONITOR = "MONITOR"


# Order used by every report that lists all types
ALL_ASSET_TYPES = [
    AssetType.DESKTOP,
    AssetType.LAPTOP,
    AssetType.MONITOR,
    AssetType.MOBILE_PHONE,
    AssetType.TABLET,
]


class AssetState(str, Enum):
    HOLDING = "HOLDING"
    AVAILABLE = "AVAILABLE"
    SIGNED_OUT = "SIGNED_OUT"
    BUILDING = "BUILDING"
    BUILT = "BUILT"
    READY_TO_GO = "READY_TO_GO"
    ISSUED = "ISSUED"


class AssetStatus(str, Enum):
    HOLDING = "holding"
    STOCK = "stock"
    ACTIVE = "active"
    RECYCLED = "recycled"
    REPAIR = "repair"


class AssignmentType(str, Enum):
    INDIVIDUAL = "INDIVIDUAL"
    SHARED = "SHARED"


class Disposition(str, Enum):
    RESTOCK = "RESTOCK"
    RECYCLE = "RECYCLE"


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"


def _enum(enum_cls, name):
    # Store the enum values, not the member names
    return SAEnum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


class Location(Base):
    __tablename__ = "locations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    assets = relationship("Asset", back_populates="location")


class Department(Base):
    __tablename__ = "departments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    location_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("locations.id"), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    location = relationship("Location")


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    employee_id: Mapped[str] = mapped_column(String(50), unique=True, index=True)

    role: Mapped[UserRole] = mapped_column(_enum(UserRole, "user_role"), default=UserRole.USER, index=True)
    department: Mapped[str | None] = mapped_column(String(255), nullable=True)
    department_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("departments.id"), nullable=True)
    location_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("locations.id"), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Subject claim from the identity provider
    google_sub: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    location = relationship("Location")
    department_ref = relationship("Department")


@dataclass(frozen=True)
class Assignee:
    name: str | None
    employee_id: str | None
    department: str | None


class Asset(Base):
    __tablename__ = "assets"
    __table_args__ = (
        # Uniqueness only applies to live (non-deleted) rows
        Index(
            "uq_assets_asset_number_live", "asset_number", unique=True,
            postgresql_where=text("deleted_at IS NULL"), sqlite_where=text("deleted_at IS NULL"),
        ),
        Index(
            "uq_assets_serial_number_live", "serial_number", unique=True,
            postgresql_where=text("deleted_at IS NULL"), sqlite_where=text("deleted_at IS NULL"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    asset_number: Mapped[str | None] = mapped_column(String(10), nullable=True)
    type: Mapped[AssetType] = mapped_column(_enum(AssetType, "asset_type"), index=True)
    state: Mapped[AssetState] = mapped_column(_enum(AssetState, "asset_state"), default=AssetState.AVAILABLE, index=True)
    status: Mapped[AssetStatus] = mapped_column(_enum(AssetStatus, "asset_status"), default=AssetStatus.HOLDING, index=True)

    serial_number: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text)
    purchase_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))

    location_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("locations.id"))
    assignment_type: Mapped[AssignmentType] = mapped_column(
        _enum(AssignmentType, "assignment_type"), default=AssignmentType.INDIVIDUAL
    )

    # Denormalized assignee info; go through the accessors below
    assigned_to: Mapped[str | None] = mapped_column(String(255), nullable=True)
    employee_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    department: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    location = relationship("Location", back_populates="assets")
    history = relationship("AssetHistory", back_populates="asset", order_by="AssetHistory.timestamp.desc()")

    @property
    def assignee(self) -> Assignee | None:
        if not self.assigned_to:
            return None
        return Assignee(self.assigned_to, self.employee_id, self.department)

    def set_assignee(self, name: str, employee_id: str | None = None, department: str | None = None) -> None:
        self.assigned_to = name
        self.employee_id = employee_id
        self.department = department

    def clear_assignee(self) -> None:
        self.assigned_to = None
        self.employee_id = None
        self.department = None

    def is_assigned_to(self, user: "User") -> bool:
        a = self.assignee
        if a is None:
            return False
        if a.employee_id and a.employee_id == user.employee_id:
            return True
        return a.name == user.name or a.name == str(user.id)


class HoldingAsset(Base):
    """An imported asset waiting for its asset number."""

    __tablename__ = "holding_assets"

    # Becomes the asset's id when promoted
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    serial_number: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    description: Mapped[str] = mapped_column(Text)
    type: Mapped[AssetType | None] = mapped_column(_enum(AssetType, "asset_type"), nullable=True)
    purchase_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))

    location_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("locations.id"), nullable=True)
    assignment_type: Mapped[AssignmentType] = mapped_column(
        _enum(AssignmentType, "assignment_type"), default=AssignmentType.INDIVIDUAL
    )
    assigned_to: Mapped[str | None] = mapped_column(String(255), nullable=True)
    employee_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    department: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[AssetStatus] = mapped_column(_enum(AssetStatus, "asset_status"), default=AssetStatus.HOLDING)
    supplier: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    imported_by: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    location = relationship("Location")


class AssetHistory(Base):
    """Audit log for asset state changes. Rows are never modified."""

    __tablename__ = "asset_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    asset_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("assets.id"), index=True)

    previous_state: Mapped[AssetState | None] = mapped_column(_enum(AssetState, "asset_state"), nullable=True)
    new_state: Mapped[AssetState] = mapped_column(_enum(AssetState, "asset_state"))

    # NULL means the system made the change
    changed_by: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    change_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    asset = relationship("Asset", back_populates="history")
    changed_by_user = relationship("User")


class Setting(Base):
    """Single-row system configuration."""

    __tablename__ = "settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    report_cache_duration: Mapped[int] = mapped_column(Integer, default=30)  # minutes
    depreciation_settings: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class ImmutableRowError(Exception):
    pass


@event.listens_for(AssetHistory, "before_update")
def _history_no_update(mapper, connection, target):
    raise ImmutableRowError(f"asset_history row {target.id} cannot be modified")


@event.listens_for(AssetHistory, "before_delete")
def _history_no_delete(mapper, connection, target):
    raise ImmutableRowError(f"asset_history row {target.id} cannot be deleted")
