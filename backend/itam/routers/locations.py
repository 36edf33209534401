from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from itam.db import get_db
from itam import schemas, crud, exporter
from itam.auth import require_roles, get_current_user
from itam.errors import ok
from itam.models import UserRole

router = APIRouter(prefix="/locations", tags=["locations"])


@router.get("", dependencies=[Depends(get_current_user)])
def list_locations(
    name: str | None = Query(default=None),
    is_active: bool | None = Query(default=None, alias="isActive"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    locations, pagination = crud.list_locations(db, name=name, is_active=is_active, page=page, limit=limit)
    return ok({"locations": schemas.dump_list(schemas.LocationRead, locations), "pagination": pagination})


@router.post("", status_code=201, dependencies=[Depends(require_roles(UserRole.ADMIN))])
def create_location(payload: schemas.LocationCreate, db: Session = Depends(get_db)):
    return ok(schemas.dump(schemas.LocationRead, crud.create_location(db, payload)))


@router.post("/export", dependencies=[Depends(get_current_user)])
def export_locations(payload: schemas.ExportRequest, db: Session = Depends(get_db)):
    locations, _ = crud.list_locations(db, page=1, limit=100_000)
    rows = []
    for loc in locations:
        row = schemas.dump(schemas.LocationRead, loc)
        row["assetCount"] = crud.location_reference_counts(db, loc.id)["assets"]
        rows.append(row)
    if payload.format == "pdf":
        return Response(
            exporter.rows_to_pdf("Location Report", exporter.LOCATION_COLUMNS, rows),
            media_type="application/pdf",
            headers={"Content-Disposition": 'attachment; filename="locations.pdf"'},
        )
    return Response(
        exporter.rows_to_csv(exporter.LOCATION_COLUMNS, rows),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="locations.csv"'},
    )


@router.get("/{location_id}", dependencies=[Depends(get_current_user)])
def get_location(location_id: UUID, db: Session = Depends(get_db)):
    loc = crud.get_location(db, location_id)
    data = schemas.dump(schemas.LocationRead, loc)
    data["references"] = crud.location_reference_counts(db, loc.id)
    return ok(data)


@router.patch("/{location_id}", dependencies=[Depends(require_roles(UserRole.ADMIN))])
def update_location(location_id: UUID, payload: schemas.LocationUpdate, db: Session = Depends(get_db)):
    return ok(schemas.dump(schemas.LocationRead, crud.update_location(db, location_id, payload)))


@router.delete("/{location_id}", dependencies=[Depends(require_roles(UserRole.ADMIN))])
def delete_location(location_id: UUID, db: Session = Depends(get_db)):
    crud.delete_location(db, location_id)
    return ok({"id": str(location_id), "deleted": True})


@router.get("/{location_id}/assignments", dependencies=[Depends(get_current_user)])
def location_assignments(location_id: UUID, db: Session = Depends(get_db)):
    """Assets currently stored at, or issued from, this location."""
    return ok(schemas.dump_list(schemas.AssetRead, crud.list_location_assets(db, location_id)))
