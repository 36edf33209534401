from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from itam.db import get_db
from itam import schemas, crud, exporter, lifecycle, reports
from itam.auth import get_current_user, require_roles
from itam.errors import ForbiddenError, ValidationError, ok
from itam.logging_config import get_logger
from itam.models import AssetState, AssetStatus, AssetType, UserRole, User

logger = get_logger(__name__)

router = APIRouter(prefix="/assets", tags=["assets"])


@router.get("")
def list_assets(
    db: Session = Depends(get_db),
    type: AssetType | None = Query(default=None),
    state: AssetState | None = Query(default=None),
    status: AssetStatus | None = Query(default=None),
    location_id: UUID | None = Query(default=None, alias="locationId"),
    assigned_to: str | None = Query(default=None, alias="assignedTo"),
    search: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=1000),
    sort_order: str = Query(default="desc", alias="sortOrder", pattern="^(asc|desc)$"),
    current_user: User = Depends(get_current_user),
):
    assets, pagination = crud.list_assets(
        db,
        page=page,
        limit=limit,
        type=type,
        state=state,
        status=status,
        location_id=location_id,
        assigned_to=assigned_to,
        search=search,
        sort_order=sort_order,
    )
    return ok({"assets": schemas.dump_list(schemas.AssetRead, assets), "pagination": pagination})


@router.post("", status_code=201)
def create_asset(
    payload: schemas.AssetCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    logger.info("Creating asset", extra={"asset_number": payload.asset_number})
    asset = lifecycle.create_asset(db, payload, actor_id=current_user.id)
    return ok(schemas.dump(schemas.AssetRead, asset))


@router.put("")
def bulk_update_assets(
    payload: schemas.BulkAssetRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if payload.operation == "stateTransition":
        if payload.new_state is None:
            raise ValidationError("newState is required for stateTransition")
        assets = lifecycle.transition_state(
            db, payload.asset_numbers, payload.new_state, changed_by=current_user.id, reason=payload.reason
        )
    else:
        if current_user.role != UserRole.ADMIN:
            raise ForbiddenError("Not authorized")
        if payload.location_id is None:
            raise ValidationError("locationId is required for bulkUpdate")
        assets = lifecycle.bulk_update_location(db, payload.asset_numbers, payload.location_id, current_user.id)
    return ok({"updated": len(assets), "assets": schemas.dump_list(schemas.AssetRead, assets)})


@router.get("/available")
def available_assets(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return ok(schemas.dump_list(schemas.AssetRead, crud.list_available_assets(db)))


@router.get("/building-by-type")
def building_by_type(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return ok(reports.type_breakdown_for_state(db, AssetState.BUILDING))


@router.get("/ready-to-go-by-type")
def ready_to_go_by_type(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return ok(reports.type_breakdown_for_state(db, AssetState.READY_TO_GO))


@router.post("/export")
def export_assets(
    payload: schemas.AssetExportRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    stmt = crud.filtered_assets(
        type=payload.type,
        state=payload.state,
        status=payload.status,
        location_id=payload.location_id,
        search=payload.search,
    )
    rows = [exporter.asset_export_row(a) for a in db.scalars(stmt)]
    filters = {
        "Type": payload.type.value if payload.type else None,
        "State": payload.state.value if payload.state else None,
        "Status": payload.status.value if payload.status else None,
        "Location": str(payload.location_id) if payload.location_id else None,
        "Search": payload.search,
    }
    logger.info("Exporting assets", extra={"format": payload.format, "count": len(rows)})
    if payload.format == "pdf":
        content = exporter.rows_to_pdf("Asset Report", exporter.ASSET_COLUMNS, rows, filters)
        return Response(
            content,
            media_type="application/pdf",
            headers={"Content-Disposition": 'attachment; filename="assets.pdf"'},
        )
    content = exporter.rows_to_csv(exporter.ASSET_COLUMNS, rows)
    return Response(
        content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="assets.csv"'},
    )


@router.get("/{asset_number}")
def get_asset(asset_number: str, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    asset = crud.get_asset_by_number(db, asset_number)
    return ok(crud.asset_detail(db, asset))


@router.patch("/{asset_number}")
def update_asset(
    asset_number: str,
    payload: schemas.AssetUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    asset = lifecycle.update_asset(db, asset_number, payload, actor_id=current_user.id)
    return ok(schemas.dump(schemas.AssetRead, asset))


@router.delete("/{asset_number}")
def delete_asset(
    asset_number: str,
    reason: str | None = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    lifecycle.soft_delete_asset(db, asset_number, actor_id=current_user.id, reason=reason)
    return ok({"assetNumber": asset_number, "deleted": True})


@router.get("/{asset_number}/history")
def get_asset_history(
    asset_number: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    asset = crud.get_asset_by_number(db, asset_number)
    return ok(schemas.dump_list(schemas.HistoryRead, crud.list_asset_history(db, asset.id)))


@router.post("/{asset_number}/assign")
def assign_asset(
    asset_number: str,
    payload: schemas.AssignRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    asset = lifecycle.assign_to_user(
        db, asset_number, payload.user_id, actor_id=current_user.id, assignment_type=payload.assignment_type
    )
    return ok(schemas.dump(schemas.AssetRead, asset))


@router.post("/{asset_number}/unassign")
def unassign_asset(
    asset_number: str,
    payload: schemas.UnassignRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    asset = lifecycle.unassign(db, asset_number, payload.user_id, payload.disposition, actor_id=current_user.id)
    return ok(schemas.dump(schemas.AssetRead, asset))
