from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from itam.db import get_db
from itam import charts, config, crud, reports
from itam.auth import get_current_user
from itam.cache import TTLCache
from itam.errors import ok
from itam.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"], dependencies=[Depends(get_current_user)])

inventory_chart_cache: TTLCache[bytes] = TTLCache()


def render_inventory_chart(db: Session) -> bytes:
    logger.info("Rendering inventory chart")
    counts = reports.counts_by_type(db)
    return charts.render_bar_chart("Asset inventory by type", [(t.value, n) for t, n in counts.items()])


def chart_ttl_seconds(db: Session) -> int:
    minutes = crud.get_settings(db).report_cache_duration or config.DEFAULT_REPORT_CACHE_MINUTES
    return minutes * 60


@router.get("/asset-inventory/summary")
def inventory_summary(db: Session = Depends(get_db)):
    return ok(reports.inventory_summary(db))


@router.get("/asset-inventory/chart.png")
def inventory_chart(db: Session = Depends(get_db)):
    ttl = chart_ttl_seconds(db)
    png = inventory_chart_cache.get_or_set(ttl, lambda: render_inventory_chart(db))
    return Response(png, media_type="image/png", headers={"Cache-Control": f"public, max-age={ttl}"})


@router.get("/financial/summary")
def financial_summary(
    year: int | None = Query(default=None, ge=1900, le=3000),
    db: Session = Depends(get_db),
):
    return ok(reports.financial_summary(db, current_year=year))
