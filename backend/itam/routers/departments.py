from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from itam.db import get_db
from itam import schemas, crud
from itam.auth import require_roles, get_current_user
from itam.errors import ok
from itam.models import UserRole

router = APIRouter(prefix="/departments", tags=["departments"])


@router.get("", dependencies=[Depends(get_current_user)])
def list_departments(db: Session = Depends(get_db)):
    return ok(crud.list_department_names(db))


@router.post("", status_code=201, dependencies=[Depends(require_roles(UserRole.ADMIN))])
def create_department(payload: schemas.DepartmentCreate, db: Session = Depends(get_db)):
    return ok(schemas.dump(schemas.DepartmentRead, crud.create_department(db, payload)))
