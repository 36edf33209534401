from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from itam.db import get_db
from itam import schemas, crud
from itam.auth import require_roles, get_current_user
from itam.depreciation import DepreciationSettings
from itam.errors import ok
from itam.logging_config import get_logger
from itam.models import Setting, UserRole

logger = get_logger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"])


def settings_payload(row: Setting) -> dict:
    return {
        "reportCacheDuration": row.report_cache_duration,
        "depreciationSettings": DepreciationSettings.from_json(row.depreciation_settings).to_json(),
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }


@router.get("", dependencies=[Depends(get_current_user)])
def get_settings(db: Session = Depends(get_db)):
    return ok(settings_payload(crud.get_settings(db)))


@router.put("", dependencies=[Depends(require_roles(UserRole.ADMIN))])
def update_settings(payload: schemas.SettingsUpdate, db: Session = Depends(get_db)):
    row = crud.update_settings(db, payload)
    logger.info("Settings updated", extra={"report_cache_duration": row.report_cache_duration})
    return ok(settings_payload(row))
