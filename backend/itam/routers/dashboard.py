from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from itam.db import get_db
from itam import reports
from itam.auth import get_current_user
from itam.errors import ok

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("", dependencies=[Depends(get_current_user)])
def dashboard(db: Session = Depends(get_db)):
    return ok(reports.dashboard(db))
