"""Asset lifecycle operations.

Every public function here is one unit of work: it validates first, then writes
the entity change and its ``asset_history`` row in a single transaction. Checks
that can be done up front (types, lengths, existence, duplicates) run before
anything is added to the session, so a rejected call leaves the database
untouched. The partial unique indexes on ``assets`` catch the races the
pre-checks cannot see; those surface as ``ConflictError`` and are not retried.
"""

import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from itam import config, crud, schemas
from itam.errors import ConflictError, NotFoundError, ValidationError
from itam.logging_config import get_logger
from itam.models import (
    Asset, AssetHistory, AssetState, AssetStatus, AssetType, AssignmentType, Disposition,
    HoldingAsset, User, utcnow,
)

logger = get_logger(__name__)

MAX_ASSET_NUMBER_LENGTH = 10

ALLOWED_TRANSITIONS: dict[AssetState, set[AssetState]] = {
    AssetState.HOLDING: {AssetState.AVAILABLE},
    AssetState.AVAILABLE: {AssetState.SIGNED_OUT, AssetState.BUILDING, AssetState.READY_TO_GO, AssetState.ISSUED},
    AssetState.SIGNED_OUT: {AssetState.BUILDING, AssetState.AVAILABLE},
    AssetState.BUILDING: {AssetState.BUILT, AssetState.READY_TO_GO, AssetState.AVAILABLE},
    AssetState.BUILT: {AssetState.READY_TO_GO, AssetState.AVAILABLE},
    AssetState.READY_TO_GO: {AssetState.ISSUED, AssetState.AVAILABLE},
    AssetState.ISSUED: {AssetState.AVAILABLE},
}

# Monitors are never built or signed out for a build
MONITOR_FORBIDDEN_STATES = {AssetState.SIGNED_OUT, AssetState.BUILDING, AssetState.BUILT}

STATE_ALIASES = {
    "stock": AssetState.AVAILABLE,
    "available": AssetState.AVAILABLE,
    "signed-out": AssetState.SIGNED_OUT,
    "signed_out": AssetState.SIGNED_OUT,
    "building": AssetState.BUILDING,
    "built": AssetState.BUILT,
    "ready-to-go": AssetState.READY_TO_GO,
    "ready_to_go": AssetState.READY_TO_GO,
    "ready to go": AssetState.READY_TO_GO,
    "active": AssetState.ISSUED,
    "issued": AssetState.ISSUED,
    "imported": AssetState.HOLDING,
    "holding": AssetState.HOLDING,
}

# Normalised header -> row field
IMPORT_FIELDS = {
    "serialnumber": "serial_number",
    "serial": "serial_number",
    "description": "description",
    "type": "type",
    "assettype": "type",
    "purchaseprice": "purchase_price",
    "price": "purchase_price",
    "state": "state",
    "assignmenttype": "assignment_type",
    "assignedto": "assigned_to",
    "employeeid": "employee_id",
    "department": "department",
    "createdat": "created_at",
    "updatedat": "updated_at",
    "supplier": "supplier",
    "notes": "notes",
}

IMPORT_TARGETS = ("holding_assets", "assets")


def add_history(
    db: Session,
    asset_id: uuid.UUID,
    previous_state: AssetState | None,
    new_state: AssetState,
    changed_by: uuid.UUID | None = None,
    reason: str | None = None,
    details: dict | None = None,
) -> AssetHistory:
    entry = AssetHistory(
        asset_id=asset_id,
        previous_state=previous_state,
        new_state=new_state,
        changed_by=changed_by,
        change_reason=reason,
        details=details,
        timestamp=utcnow(),
    )
    db.add(entry)
    return entry


def parse_asset_type(value) -> AssetType | None:
    if isinstance(value, AssetType):
        return value
    if value is None:
        return None
    key = str(value).strip().upper().replace(" ", "_").replace("-", "_")
    try:
        return AssetType(key)
    except ValueError:
        return None


def canonical_state(value) -> AssetState:
    """Map a free-form state to an AssetState; unknown or blank -> AVAILABLE."""
    if isinstance(value, AssetState):
        return value
    raw = str(value or "").strip()
    if not raw:
        return AssetState.AVAILABLE
    try:
        return AssetState(raw.upper())
    except ValueError:
        return STATE_ALIASES.get(raw.lower(), AssetState.AVAILABLE)


def can_transition(asset_type: AssetType, current: AssetState, new: AssetState) -> bool:
    if asset_type == AssetType.MONITOR and new in MONITOR_FORBIDDEN_STATES:
        return False
    return new in ALLOWED_TRANSITIONS.get(current, set())


def _number_taken(db: Session, asset_number: str) -> bool:
    return db.scalar(crud.live_assets().where(Asset.asset_number == asset_number)) is not None


def _serial_taken(db: Session, serial_number: str) -> bool:
    return db.scalar(crud.live_assets().where(Asset.serial_number == serial_number)) is not None


@contextmanager
def _conflict_on_integrity(db: Session, what: str):
    """Roll back and raise ``ConflictError`` when a write inside trips a unique index."""
    try:
        yield
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Uniqueness race on %s", what, extra={"error": str(exc.orig)})
        raise ConflictError("Asset number or serial number already exists.", details=str(exc.orig))
    except Exception:
        db.rollback()
        raise


def _commit_or_conflict(db: Session, what: str):
    with _conflict_on_integrity(db, what):
        db.commit()


# ---------- Holding -> Asset ----------
def assign_holding_asset(
    db: Session,
    holding_asset_id: uuid.UUID,
    asset_number: str,
    user_id: uuid.UUID | None,
    type,
) -> Asset:
    """Give a holding asset its number and move it into ``assets``."""
    asset_type = parse_asset_type(type)
    if asset_type is None:
        raise ValidationError("Invalid or missing asset type.")

    number = (asset_number or "").strip()
    if not number:
        raise ValidationError("Asset number is required.")
    if len(number) > MAX_ASSET_NUMBER_LENGTH:
        raise ValidationError(f"Asset number must be at most {MAX_ASSET_NUMBER_LENGTH} characters.")

    holding = db.get(HoldingAsset, holding_asset_id)
    if holding is None:
        raise NotFoundError("Holding asset not found or already assigned.")

    if _number_taken(db, number):
        raise ConflictError(f"Asset number {number} is already in use.", field="assetNumber")
    if _serial_taken(db, holding.serial_number):
        raise ConflictError(
            f"An asset with serial number {holding.serial_number} already exists.", field="serialNumber"
        )

    location_id = holding.location_id
    if location_id is None:
        location_id = crud.ensure_fallback_location(db).id

    now = utcnow()
    asset = Asset(
        id=holding.id,
        asset_number=number,
        type=asset_type,
        state=AssetState.AVAILABLE,
        status=AssetStatus.STOCK,
        serial_number=holding.serial_number,
        description=holding.description,
        purchase_price=holding.purchase_price or Decimal("0"),
        location_id=location_id,
        assignment_type=holding.assignment_type or AssignmentType.INDIVIDUAL,
        assigned_to=holding.assigned_to,
        employee_id=holding.employee_id,
        department=holding.department,
        created_at=now,
        updated_at=now,
    )
    db.add(asset)
    add_history(
        db,
        asset_id=holding.id,
        previous_state=None,
        new_state=AssetState.AVAILABLE,
        changed_by=user_id,
        reason="assigned number and moved from holding",
        details={
            "assetNumber": number,
            "description": holding.description,
            "serialNumber": holding.serial_number,
            "type": asset_type.value,
        },
    )
    db.delete(holding)
    _commit_or_conflict(db, "holding assignment")

    # The delete was committed above; this only reports a surprise.
    if db.get(HoldingAsset, holding_asset_id) is not None:
        logger.warning("Holding asset still present after assignment", extra={"holding_asset_id": holding_asset_id})

    db.refresh(asset)
    logger.info("Holding asset assigned", extra={"asset_number": number, "asset_id": asset.id})
    return asset


# ---------- Bulk import ----------
@dataclass
class ImportResult:
    inserted: int = 0
    skipped: int = 0
    rows: list[dict] = field(default_factory=list)
    skipped_rows: list[dict] = field(default_factory=list)

    def skip(self, index: int, reason: str):
        self.skipped += 1
        self.skipped_rows.append({"row": index, "reason": reason})
        logger.info("Import row skipped", extra={"row": index, "reason": reason})


def normalize_row(row: dict) -> dict:
    out = {}
    for key, value in row.items():
        if key is None:
            continue
        norm = "".join(ch for ch in str(key).lower() if ch.isalnum())
        target = IMPORT_FIELDS.get(norm)
        if target and target not in out:
            out[target] = value.strip() if isinstance(value, str) else value
    return out


def parse_price(value) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        price = Decimal(str(value).replace(",", "").replace("$", "").strip())
    except InvalidOperation:
        return Decimal("0")
    if not price.is_finite() or price < 0:
        return Decimal("0")
    return price.quantize(Decimal("0.01"))


def parse_timestamp(value, default: datetime) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        raw = str(value or "").strip()
        if not raw:
            return default
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return default
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _assignment_type(value) -> AssignmentType:
    try:
        return AssignmentType(str(value or "").strip().upper())
    except ValueError:
        return AssignmentType.INDIVIDUAL


def known_serials(db: Session, target_type: str) -> set[str]:
    """Serials an import must not reuse: live assets, plus pending holding rows for holding imports."""
    serials = set(db.scalars(select(Asset.serial_number).where(Asset.deleted_at.is_(None))))
    if target_type == "holding_assets":
        serials.update(db.scalars(select(HoldingAsset.serial_number)))
    return serials


def bulk_import(
    db: Session,
    rows: list[dict],
    target_type: str = "holding_assets",
    imported_by: uuid.UUID | None = None,
) -> ImportResult:
    """Import parsed rows. Bad rows are skipped; accepted rows go in as one batch."""
    if target_type not in IMPORT_TARGETS:
        raise ValidationError(f"Unsupported import type: {target_type}")

    location = crud.get_location_by_name(db, config.IMPORT_FALLBACK_LOCATION)
    if location is None:
        raise NotFoundError(f"Fallback location '{config.IMPORT_FALLBACK_LOCATION}' not found.")

    result = ImportResult(rows=rows)
    now = utcnow()
    seen_serials = known_serials(db, target_type)

    payload: list[dict] = []
    for index, raw in enumerate(rows, start=1):
        row = normalize_row(raw)

        asset_type = parse_asset_type(row.get("type"))
        if asset_type is None:
            result.skip(index, f"invalid asset type {row.get('type')!r}")
            continue
        serial = str(row.get("serial_number") or "").strip()
        description = str(row.get("description") or "").strip()
        if not serial or not description:
            result.skip(index, "missing serial number or description")
            continue
        if serial in seen_serials:
            result.skip(index, f"duplicate serial number {serial}")
            continue
        seen_serials.add(serial)

        state = canonical_state(row.get("state"))
        common = {
            "id": uuid.uuid4(),
            "serial_number": serial,
            "description": description,
            "type": asset_type,
            "purchase_price": parse_price(row.get("purchase_price")),
            "location_id": location.id,
            "assignment_type": _assignment_type(row.get("assignment_type")),
            "assigned_to": row.get("assigned_to") or None,
            "employee_id": row.get("employee_id") or None,
            "department": row.get("department") or None,
            "status": AssetStatus.HOLDING,
            "created_at": parse_timestamp(row.get("created_at"), now),
            "updated_at": parse_timestamp(row.get("updated_at"), now),
        }
        if target_type == "holding_assets":
            common.update(
                supplier=row.get("supplier") or None,
                notes=row.get("notes") or None,
                raw_data={**{str(k): _jsonable(v) for k, v in raw.items() if k is not None}, "state": state.value},
                imported_by=imported_by,
            )
        else:
            common.update(asset_number=None, state=state)
        payload.append(common)

    if payload:
        model = HoldingAsset if target_type == "holding_assets" else Asset
        with _conflict_on_integrity(db, "bulk import"):
            db.execute(insert(model), payload)
            db.commit()

    result.inserted = len(payload)
    logger.info(
        "Bulk import finished",
        extra={"target": target_type, "inserted": result.inserted, "skipped": result.skipped},
    )
    return result


def _jsonable(value):
    if isinstance(value, datetime):
        return value.isoformat()
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def jsonable_rows(rows: list[dict]) -> list[dict]:
    return [{str(k): _jsonable(v) for k, v in row.items() if k is not None} for row in rows]


# ---------- State transitions ----------
def _live_assets_by_number(db: Session, asset_numbers: list[str]) -> list[Asset]:
    wanted = list(dict.fromkeys(n.strip() for n in asset_numbers if n and n.strip()))
    if not wanted:
        raise ValidationError("No asset numbers given")
    assets = list(db.scalars(crud.live_assets().where(Asset.asset_number.in_(wanted))))
    if len(assets) != len(wanted):
        found = {a.asset_number for a in assets}
        missing = [n for n in wanted if n not in found]
        raise ValidationError("Some assets do not exist", details=", ".join(missing))
    return assets


def transition_state(
    db: Session,
    asset_numbers: list[str],
    new_state: AssetState,
    changed_by: uuid.UUID | None,
    reason: str | None = None,
) -> list[Asset]:
    assets = _live_assets_by_number(db, asset_numbers)
    for asset in assets:
        if not can_transition(asset.type, asset.state, new_state):
            raise ValidationError(
                f"Asset {asset.asset_number} ({asset.type.value}) cannot move from "
                f"{asset.state.value} to {new_state.value}"
            )

    now = utcnow()
    for asset in assets:
        previous = asset.state
        asset.state = new_state
        asset.updated_at = now
        add_history(db, asset.id, previous, new_state, changed_by, reason or "state transition")
    db.commit()
    for asset in assets:
        db.refresh(asset)
    logger.info("State transition applied", extra={"count": len(assets), "new_state": new_state.value})
    return assets


def bulk_update_location(
    db: Session, asset_numbers: list[str], location_id: uuid.UUID, changed_by: uuid.UUID | None
) -> list[Asset]:
    location = crud.get_location(db, location_id)
    assets = _live_assets_by_number(db, asset_numbers)
    now = utcnow()
    for asset in assets:
        previous_location = asset.location_id
        asset.location_id = location.id
        asset.updated_at = now
        add_history(
            db, asset.id, asset.state, asset.state, changed_by, "location changed",
            details={"fromLocationId": str(previous_location), "toLocationId": str(location.id)},
        )
    db.commit()
    for asset in assets:
        db.refresh(asset)
    return assets


# ---------- Assign / Unassign ----------
def assign_to_user(
    db: Session,
    asset_number: str,
    user_id: uuid.UUID,
    actor_id: uuid.UUID | None,
    assignment_type: AssignmentType = AssignmentType.INDIVIDUAL,
) -> Asset:
    asset = db.scalar(crud.live_assets().where(Asset.asset_number == asset_number))
    if asset is None or asset.assignee is not None or asset.state != AssetState.READY_TO_GO:
        raise NotFoundError("Asset not found or not available for assignment")
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    previous = asset.state
    asset.set_assignee(user.name, user.employee_id, user.department)
    asset.assignment_type = assignment_type
    asset.state = AssetState.ISSUED
    asset.status = AssetStatus.ACTIVE
    asset.updated_at = utcnow()
    add_history(
        db, asset.id, previous, AssetState.ISSUED, actor_id, "assigned to user",
        details={"assignedTo": user.name, "employeeId": user.employee_id, "assignmentType": assignment_type.value},
    )
    db.commit()
    db.refresh(asset)
    logger.info("Asset assigned", extra={"asset_number": asset_number, "user_id": user.id})
    return asset


def unassign(
    db: Session,
    asset_number: str,
    user_id: uuid.UUID,
    disposition: Disposition,
    actor_id: uuid.UUID | None,
) -> Asset:
    asset = crud.get_asset_by_number(db, asset_number)
    user = crud.get_user(db, user_id)
    if not asset.is_assigned_to(user):
        raise ValidationError(f"Asset {asset_number} is not assigned to {user.name}")

    previous_state, previous_status = asset.state, asset.status
    previous_assignee = asset.assignee
    new_status = AssetStatus.RECYCLED if disposition == Disposition.RECYCLE else AssetStatus.STOCK

    asset.clear_assignee()
    asset.state = AssetState.AVAILABLE
    asset.status = new_status
    asset.updated_at = utcnow()
    add_history(
        db, asset.id, previous_state, AssetState.AVAILABLE, actor_id, f"unassigned ({disposition.value.lower()})",
        details={
            "previousAssignee": previous_assignee.name if previous_assignee else None,
            "previousEmployeeId": previous_assignee.employee_id if previous_assignee else None,
            "disposition": disposition.value,
            "previousStatus": previous_status.value,
            "newStatus": new_status.value,
        },
    )
    db.commit()
    db.refresh(asset)
    logger.info("Asset unassigned", extra={"asset_number": asset_number, "disposition": disposition.value})
    return asset


# ---------- Direct CRUD ----------
def create_asset(db: Session, payload: schemas.AssetCreate, actor_id: uuid.UUID | None = None) -> Asset:
    number = payload.asset_number.strip()
    crud.get_location(db, payload.location_id)
    if _number_taken(db, number):
        raise ConflictError(f"Asset number {number} is already in use.", field="assetNumber")
    if _serial_taken(db, payload.serial_number):
        raise ConflictError(
            f"An asset with serial number {payload.serial_number} already exists.", field="serialNumber"
        )

    now = utcnow()
    asset = Asset(
        id=uuid.uuid4(),
        asset_number=number,
        type=payload.type,
        state=AssetState.AVAILABLE,
        status=AssetStatus.STOCK,
        serial_number=payload.serial_number,
        description=payload.description,
        purchase_price=parse_price(payload.purchase_price),
        location_id=payload.location_id,
        assignment_type=payload.assignment_type,
        created_at=now,
        updated_at=now,
    )
    if payload.assigned_to:
        asset.set_assignee(payload.assigned_to, payload.employee_id, payload.department)
    db.add(asset)
    add_history(db, asset.id, None, AssetState.AVAILABLE, actor_id, "Asset created")
    _commit_or_conflict(db, "asset create")
    db.refresh(asset)
    return asset


def update_asset(
    db: Session, asset_number: str, changes: schemas.AssetUpdate, actor_id: uuid.UUID | None = None
) -> Asset:
    asset = crud.get_asset_by_number(db, asset_number)
    updates = changes.model_dump(exclude_unset=True)

    if "serial_number" in updates and updates["serial_number"] != asset.serial_number:
        if _serial_taken(db, updates["serial_number"]):
            raise ConflictError(
                f"An asset with serial number {updates['serial_number']} already exists.", field="serialNumber"
            )
    if updates.get("location_id"):
        crud.get_location(db, updates["location_id"])
    if updates.get("type") == AssetType.MONITOR and asset.state in MONITOR_FORBIDDEN_STATES:
        raise ValidationError(f"A monitor cannot be in state {asset.state.value}")

    assignee_keys = {"assigned_to", "employee_id", "department"}
    if assignee_keys & updates.keys():
        current = asset.assignee
        name = updates.get("assigned_to", current.name if current else None)
        if name:
            asset.set_assignee(
                name,
                updates.get("employee_id", current.employee_id if current else None),
                updates.get("department", current.department if current else None),
            )
        else:
            asset.clear_assignee()

    for k, v in updates.items():
        if k in assignee_keys:
            continue
        if k == "purchase_price":
            v = parse_price(v)
        setattr(asset, k, v)
    asset.updated_at = utcnow()

    add_history(
        db, asset.id, asset.state, asset.state, actor_id, "Asset updated",
        details={"fields": sorted(to_camel_key(k) for k in updates)},
    )
    _commit_or_conflict(db, "asset update")
    db.refresh(asset)
    return asset


def to_camel_key(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p.title() for p in rest)


def soft_delete_asset(
    db: Session, asset_number: str, actor_id: uuid.UUID | None, reason: str | None = None
) -> Asset:
    asset = crud.get_asset_by_number(db, asset_number)
    now = utcnow()
    asset.deleted_at = now
    asset.updated_at = now
    asset.status = AssetStatus.RECYCLED
    add_history(
        db, asset.id, asset.state, asset.state, actor_id, reason or "Asset deleted",
        details={"disposition": reason or "deleted", "assetNumber": asset_number},
    )
    db.commit()
    db.refresh(asset)
    logger.info("Asset soft-deleted", extra={"asset_number": asset_number})
    return asset
