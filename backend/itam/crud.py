import re
import uuid

from sqlalchemy.orm import Session
from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError

from itam import config, models, schemas
from itam.errors import ConflictError, NotFoundError, ValidationError
from itam.logging_config import get_logger
from itam.models import Asset, AssetHistory, Department, HoldingAsset, Location, Setting, User, UserRole

logger = get_logger(__name__)

SETTINGS_ROW_ID = 1
EMPLOYEE_ID_RE = re.compile(r"^EMP(\d{5})$")


def paginate(db: Session, stmt, page: int, limit: int) -> tuple[list, dict]:
    total = db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    items = list(db.scalars(stmt.offset((page - 1) * limit).limit(limit)))
    pagination = {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": (total + limit - 1) // limit if total else 0,
    }
    return items, pagination


def _like(term: str) -> str:
    return f"%{term.strip()}%"


# ---------- Locations ----------
def create_location(db: Session, data: schemas.LocationCreate) -> Location:
    if db.scalar(select(Location).where(func.lower(Location.name) == data.name.strip().lower())):
        raise ConflictError("A location with this name already exists", field="name")
    loc = Location(name=data.name.strip(), description=data.description, is_active=data.is_active)
    db.add(loc)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("A location with this name already exists", field="name")
    db.refresh(loc)
    return loc


def list_locations(
    db: Session, name: str | None = None, is_active: bool | None = None, page: int = 1, limit: int = 50
) -> tuple[list[Location], dict]:
    stmt = select(Location).order_by(Location.name)
    if name:
        stmt = stmt.where(Location.name.ilike(_like(name)))
    if is_active is not None:
        stmt = stmt.where(Location.is_active == is_active)
    return paginate(db, stmt, page, limit)


def get_location(db: Session, location_id: uuid.UUID) -> Location:
    loc = db.get(Location, location_id)
    if not loc:
        raise NotFoundError("Location not found")
    return loc


def get_location_by_name(db: Session, name: str) -> Location | None:
    return db.scalar(select(Location).where(Location.name == name))


def ensure_fallback_location(db: Session) -> Location:
    loc = get_location_by_name(db, config.IMPORT_FALLBACK_LOCATION)
    if loc is None:
        loc = Location(name=config.IMPORT_FALLBACK_LOCATION, description="Default location for imported assets")
        db.add(loc)
        db.commit()
        db.refresh(loc)
        logger.info("Created fallback location", extra={"location": loc.name})
    return loc


def update_location(db: Session, location_id: uuid.UUID, data: schemas.LocationUpdate) -> Location:
    loc = get_location(db, location_id)
    updates = data.model_dump(exclude_unset=True)
    if "name" in updates and updates["name"] != loc.name:
        clash = db.scalar(select(Location).where(Location.name == updates["name"], Location.id != loc.id))
        if clash:
            raise ConflictError("A location with this name already exists", field="name")
    for k, v in updates.items():
        setattr(loc, k, v)
    db.commit()
    db.refresh(loc)
    return loc


def location_reference_counts(db: Session, location_id: uuid.UUID) -> dict:
    return {
        "assets": db.scalar(
            select(func.count()).select_from(Asset).where(Asset.location_id == location_id, Asset.deleted_at.is_(None))
        ) or 0,
        "holdingAssets": db.scalar(
            select(func.count()).select_from(HoldingAsset).where(HoldingAsset.location_id == location_id)
        ) or 0,
        "users": db.scalar(select(func.count()).select_from(User).where(User.location_id == location_id)) or 0,
        "departments": db.scalar(
            select(func.count()).select_from(Department).where(Department.location_id == location_id)
        ) or 0,
    }


def delete_location(db: Session, location_id: uuid.UUID) -> None:
    loc = get_location(db, location_id)
    refs = location_reference_counts(db, location_id)
    # soft-deleted assets still hold the foreign key
    refs["assets"] = db.scalar(select(func.count()).select_from(Asset).where(Asset.location_id == location_id)) or 0
    if any(refs.values()):
        raise ConflictError("Location is in use and cannot be deleted; deactivate it instead", details=str(refs))
    db.delete(loc)
    db.commit()


def list_location_assets(db: Session, location_id: uuid.UUID) -> list[Asset]:
    get_location(db, location_id)
    stmt = (
        select(Asset)
        .where(Asset.location_id == location_id, Asset.deleted_at.is_(None))
        .order_by(Asset.asset_number)
    )
    return list(db.scalars(stmt))


# ---------- Departments ----------
def list_department_names(db: Session) -> list[str]:
    """Distinct upper-cased names from the departments table and user records."""
    names = set()
    for name in db.scalars(select(Department.name).where(Department.is_active.is_(True))):
        if name and name.strip():
            names.add(name.strip().upper())
    for name in db.scalars(select(User.department).where(User.department.is_not(None))):
        if name and name.strip():
            names.add(name.strip().upper())
    return sorted(names)


def create_department(db: Session, data: schemas.DepartmentCreate) -> Department:
    name = data.name.strip()
    clash = db.scalar(select(Department).where(func.upper(Department.name) == name.upper()))
    if clash:
        raise ConflictError("A department with this name already exists", field="name")
    if data.location_id:
        get_location(db, data.location_id)
    dept = Department(name=name, description=data.description, location_id=data.location_id)
    db.add(dept)
    db.commit()
    db.refresh(dept)
    return dept


# ---------- Users ----------
def generate_next_employee_id(db: Session) -> str:
    highest = 0
    for emp_id in db.scalars(select(User.employee_id).where(User.employee_id.like("EMP%"))):
        m = EMPLOYEE_ID_RE.match(emp_id or "")
        if m:
            highest = max(highest, int(m.group(1)))
    return f"EMP{highest + 1:05d}"


def create_user(db: Session, data: schemas.UserCreate) -> User:
    if get_user_by_email(db, data.email):
        raise ConflictError("A user with this email already exists", field="email")
    employee_id = data.employee_id or generate_next_employee_id(db)
    if get_user_by_employee_id(db, employee_id):
        raise ConflictError("A user with this employee ID already exists", field="employeeId")
    if data.location_id:
        get_location(db, data.location_id)

    user = User(
        name=data.name,
        email=data.email,
        employee_id=employee_id,
        role=data.role,
        department=data.department,
        department_id=data.department_id,
        location_id=data.location_id,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("A user with this email or employee ID already exists")
    db.refresh(user)
    return user


def list_users(
    db: Session,
    department: str | None = None,
    role: UserRole | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[User], dict]:
    stmt = select(User).order_by(User.name)
    if department:
        stmt = stmt.where(func.upper(User.department) == department.strip().upper())
    if role:
        stmt = stmt.where(User.role == role)
    if search:
        pattern = _like(search)
        stmt = stmt.where(or_(User.name.ilike(pattern), User.email.ilike(pattern), User.employee_id.ilike(pattern)))
    return paginate(db, stmt, page, limit)


def get_user(db: Session, user_id: uuid.UUID) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.scalar(select(User).where(func.lower(User.email) == email.strip().lower()))


def get_user_by_employee_id(db: Session, employee_id: str) -> User | None:
    return db.scalar(select(User).where(User.employee_id == employee_id))


def update_user(db: Session, user_id: uuid.UUID, data: schemas.UserUpdate) -> User:
    user = get_user(db, user_id)
    updates = data.model_dump(exclude_unset=True)
    if "email" in updates and updates["email"] != user.email:
        other = get_user_by_email(db, updates["email"])
        if other and other.id != user.id:
            raise ConflictError("A user with this email already exists", field="email")
    if updates.get("location_id"):
        get_location(db, updates["location_id"])
    for k, v in updates.items():
        setattr(user, k, v)
    db.commit()
    db.refresh(user)
    return user


def deactivate_user(db: Session, user_id: uuid.UUID, actor: User) -> User:
    user = get_user(db, user_id)
    if user.id == actor.id:
        raise ValidationError("You cannot deactivate your own account")
    user.is_active = False
    db.commit()
    db.refresh(user)
    return user


def list_user_assets(db: Session, user_id: uuid.UUID) -> list[Asset]:
    user = get_user(db, user_id)
    stmt = (
        select(Asset)
        .where(
            Asset.deleted_at.is_(None),
            or_(Asset.employee_id == user.employee_id, Asset.assigned_to == user.name),
        )
        .order_by(Asset.asset_number)
    )
    return list(db.scalars(stmt))


# ---------- Settings ----------
def get_settings(db: Session) -> Setting:
    row = db.get(Setting, SETTINGS_ROW_ID)
    if row is None:
        row = Setting(id=SETTINGS_ROW_ID, report_cache_duration=config.DEFAULT_REPORT_CACHE_MINUTES)
        db.add(row)
        db.commit()
        db.refresh(row)
    return row


def update_settings(db: Session, data: schemas.SettingsUpdate) -> Setting:
    row = get_settings(db)
    if data.report_cache_duration is not None:
        row.report_cache_duration = data.report_cache_duration
    if data.depreciation_settings is not None:
        row.depreciation_settings = data.depreciation_settings.model_dump(mode="json", by_alias=True)
    db.commit()
    db.refresh(row)
    return row


# ---------- Assets (read side) ----------
def live_assets():
    return select(Asset).where(Asset.deleted_at.is_(None))


def get_asset_by_number(db: Session, asset_number: str) -> Asset:
    asset = db.scalar(live_assets().where(Asset.asset_number == asset_number))
    if not asset:
        raise NotFoundError("Asset not found")
    return asset


def filtered_assets(
    type: models.AssetType | None = None,
    state: models.AssetState | None = None,
    status: models.AssetStatus | None = None,
    location_id: uuid.UUID | None = None,
    assigned_to: str | None = None,
    search: str | None = None,
    sort_order: str = "desc",
):
    stmt = live_assets()
    if type:
        stmt = stmt.where(Asset.type == type)
    if state:
        stmt = stmt.where(Asset.state == state)
    if status:
        stmt = stmt.where(Asset.status == status)
    if location_id:
        stmt = stmt.where(Asset.location_id == location_id)
    if assigned_to:
        stmt = stmt.where(Asset.assigned_to.ilike(_like(assigned_to)))
    if search:
        pattern = _like(search)
        stmt = stmt.where(
            or_(
                Asset.asset_number.ilike(pattern),
                Asset.serial_number.ilike(pattern),
                Asset.description.ilike(pattern),
                Asset.assigned_to.ilike(pattern),
            )
        )
    order = Asset.updated_at.asc() if sort_order == "asc" else Asset.updated_at.desc()
    return stmt.order_by(order, Asset.asset_number)


def list_assets(db: Session, page: int = 1, limit: int = 50, **filters) -> tuple[list[Asset], dict]:
    return paginate(db, filtered_assets(**filters), page, limit)


def list_available_assets(db: Session) -> list[Asset]:
    stmt = (
        live_assets()
        .where(Asset.state == models.AssetState.READY_TO_GO, Asset.assigned_to.is_(None))
        .order_by(Asset.type, Asset.asset_number)
    )
    return list(db.scalars(stmt))


def list_holding_assets(db: Session, page: int = 1, limit: int = 50) -> tuple[list[HoldingAsset], dict]:
    stmt = select(HoldingAsset).order_by(HoldingAsset.created_at.desc(), HoldingAsset.serial_number)
    return paginate(db, stmt, page, limit)


def asset_detail(db: Session, asset: Asset) -> dict:
    """Asset fields plus location name and who touched it last ("System" if nobody)."""
    last = db.execute(
        select(AssetHistory, User.name)
        .outerjoin(User, AssetHistory.changed_by == User.id)
        .where(AssetHistory.asset_id == asset.id)
        .order_by(AssetHistory.timestamp.desc())
        .limit(1)
    ).first()
    data = schemas.dump(schemas.AssetRead, asset)
    data["locationName"] = asset.location.name if asset.location else None
    data["updatedByName"] = (last[1] if last and last[1] else None) or "System"
    return data


def list_asset_history(db: Session, asset_id: uuid.UUID) -> list[dict]:
    stmt = (
        select(AssetHistory, User.name.label("changed_by_name"))
        .outerjoin(User, AssetHistory.changed_by == User.id)
        .where(AssetHistory.asset_id == asset_id)
        .order_by(AssetHistory.timestamp.desc())
    )
    out: list[dict] = []
    for ev, changed_by_name in db.execute(stmt).all():
        out.append(
            {
                "id": ev.id,
                "asset_id": ev.asset_id,
                "previous_state": ev.previous_state,
                "new_state": ev.new_state,
                "changed_by": ev.changed_by,
                "changed_by_name": changed_by_name or "System",
                "change_reason": ev.change_reason,
                "timestamp": ev.timestamp,
                "details": ev.details,
            }
        )
    return out


# ---------- Search ----------
def search(db: Session, q: str, limit: int = 20) -> dict:
    pattern = _like(q)
    assets = db.scalars(
        live_assets()
        .where(
            or_(
                Asset.asset_number.ilike(pattern),
                Asset.serial_number.ilike(pattern),
                Asset.description.ilike(pattern),
                Asset.assigned_to.ilike(pattern),
            )
        )
        .order_by(Asset.asset_number)
        .limit(limit)
    )
    users = db.scalars(
        select(User)
        .where(or_(User.name.ilike(pattern), User.email.ilike(pattern), User.employee_id.ilike(pattern)))
        .order_by(User.name)
        .limit(limit)
    )
    locations = db.scalars(
        select(Location).where(Location.name.ilike(pattern)).order_by(Location.name).limit(limit)
    )
    return {
        "assets": schemas.dump_list(schemas.AssetRead, assets),
        "users": schemas.dump_list(schemas.UserRead, users),
        "locations": schemas.dump_list(schemas.LocationRead, locations),
    }
