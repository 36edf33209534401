from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from itam.db import get_db
from itam import crud
from itam.auth import get_current_user
from itam.errors import ValidationError, ok

router = APIRouter(prefix="/search", tags=["search"])


@router.get("", dependencies=[Depends(get_current_user)])
def search(q: str | None = Query(default=None), db: Session = Depends(get_db)):
    if not q or not q.strip():
        raise ValidationError("Search query is required")
    return ok(crud.search(db, q))
