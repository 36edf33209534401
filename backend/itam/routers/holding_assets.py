from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from itam.db import get_db
from itam import schemas, crud, lifecycle
from itam.auth import require_roles
from itam.errors import ok
from itam.logging_config import get_logger
from itam.models import UserRole, User

logger = get_logger(__name__)

router = APIRouter(prefix="/holding-assets", tags=["holding-assets"])


@router.get("")
def list_holding_assets(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    items, pagination = crud.list_holding_assets(db, page=page, limit=limit)
    return ok({"holdingAssets": schemas.dump_list(schemas.HoldingAssetRead, items), "pagination": pagination})


@router.post("/assign")
def assign_holding_asset(
    payload: schemas.AssignHoldingRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
):
    logger.info(
        "Assigning holding asset",
        extra={"holding_asset_id": payload.holding_asset_id, "asset_number": payload.asset_number},
    )
    asset = lifecycle.assign_holding_asset(
        db,
        holding_asset_id=payload.holding_asset_id,
        asset_number=payload.asset_number,
        user_id=payload.user_id or current_user.id,
        type=payload.type,
    )
    return ok(schemas.dump(schemas.AssetRead, asset))
