from pathlib import PurePath

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from itam.db import get_db
from itam import importer, lifecycle
from itam.auth import require_roles
from itam.errors import ValidationError, ok
from itam.logging_config import get_logger
from itam.models import UserRole, User

logger = get_logger(__name__)

router = APIRouter(prefix="/import", tags=["import"])

# Upload type -> default import target
UPLOAD_TYPES = {"assets": "holding_assets"}


@router.post("")
def import_file(
    file: UploadFile = File(...),
    type: str = Form("assets"),
    format: str | None = Form(None),
    target: str | None = Form(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    if type not in UPLOAD_TYPES:
        raise ValidationError(f"Unsupported import type: {type}")
    fmt = format or PurePath(file.filename or "").suffix.lstrip(".")
    content = file.file.read()
    if not content:
        raise ValidationError("Uploaded file is empty.")

    rows = importer.parse_upload(content, fmt)
    logger.info("Import received", extra={"upload_name": file.filename, "format": fmt, "rows": len(rows)})

    result = lifecycle.bulk_import(db, rows, target or UPLOAD_TYPES[type], imported_by=current_user.id)
    return ok(
        {
            "inserted": result.inserted,
            "skipped": result.skipped,
            "skippedRows": result.skipped_rows,
            "rows": lifecycle.jsonable_rows(result.rows),
        }
    )
