from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from itam.db import get_db
from itam import schemas, crud, exporter
from itam.auth import require_roles, get_current_user
from itam.errors import NotFoundError, ok
from itam.logging_config import get_logger
from itam.models import UserRole, User

logger = get_logger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.get("")
def list_users(
    department: str | None = Query(default=None),
    role: UserRole | None = Query(default=None),
    search: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    users, pagination = crud.list_users(db, department=department, role=role, search=search, page=page, limit=limit)
    return ok({"users": schemas.dump_list(schemas.UserRead, users), "pagination": pagination})


@router.post("", status_code=201)
def create_user(
    payload: schemas.UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    user = crud.create_user(db, payload)
    logger.info("User created", extra={"user_id": user.id, "employee_id": user.employee_id})
    return ok(schemas.dump(schemas.UserRead, user))


@router.get("/next-employee-id", dependencies=[Depends(get_current_user)])
def next_employee_id(db: Session = Depends(get_db)):
    return ok({"employeeId": crud.generate_next_employee_id(db)})


@router.get("/by-email", dependencies=[Depends(get_current_user)])
def get_user_by_email(email: str = Query(..., min_length=3), db: Session = Depends(get_db)):
    user = crud.get_user_by_email(db, email)
    if not user:
        raise NotFoundError("User not found")
    return ok(schemas.dump(schemas.UserRead, user))


@router.get("/by-employee-id/{employee_id}", dependencies=[Depends(get_current_user)])
def get_user_by_employee_id(employee_id: str, db: Session = Depends(get_db)):
    user = crud.get_user_by_employee_id(db, employee_id)
    if not user:
        raise NotFoundError("User not found")
    return ok(schemas.dump(schemas.UserRead, user))


@router.post("/export", dependencies=[Depends(get_current_user)])
def export_users(payload: schemas.ExportRequest, db: Session = Depends(get_db)):
    users, _ = crud.list_users(db, page=1, limit=100_000)
    rows = [schemas.dump(schemas.UserRead, u) for u in users]
    if payload.format == "pdf":
        return Response(
            exporter.rows_to_pdf("User Report", exporter.USER_COLUMNS, rows),
            media_type="application/pdf",
            headers={"Content-Disposition": 'attachment; filename="users.pdf"'},
        )
    return Response(
        exporter.rows_to_csv(exporter.USER_COLUMNS, rows),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="users.csv"'},
    )


@router.get("/{user_id}", dependencies=[Depends(get_current_user)])
def get_user(user_id: UUID, db: Session = Depends(get_db)):
    return ok(schemas.dump(schemas.UserRead, crud.get_user(db, user_id)))


@router.patch("/{user_id}", dependencies=[Depends(require_roles(UserRole.ADMIN))])
def update_user(user_id: UUID, payload: schemas.UserUpdate, db: Session = Depends(get_db)):
    return ok(schemas.dump(schemas.UserRead, crud.update_user(db, user_id, payload)))


@router.delete("/{user_id}")
def deactivate_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    user = crud.deactivate_user(db, user_id, actor=current_user)
    logger.info("User deactivated", extra={"user_id": user.id})
    return ok(schemas.dump(schemas.UserRead, user))


@router.get("/{user_id}/assets", dependencies=[Depends(get_current_user)])
def get_user_assets(user_id: UUID, db: Session = Depends(get_db)):
    """Assets currently assigned to the user, matched by employee ID or name."""
    return ok(schemas.dump_list(schemas.AssetRead, crud.list_user_assets(db, user_id)))
