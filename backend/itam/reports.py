"""Read-only aggregations for the dashboard and reports.

Soft-deleted assets are excluded everywhere. Per-type breakdowns always list
the five asset types in display order, with zero counts kept.
"""

from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from itam import crud
from itam.depreciation import DepreciationSettings
from itam.models import (
    ALL_ASSET_TYPES, Asset, AssetHistory, AssetState, AssetType, HoldingAsset, Location, User,
)

DASHBOARD_STATES = [
    AssetState.HOLDING,
    AssetState.AVAILABLE,
    AssetState.BUILDING,
    AssetState.READY_TO_GO,
    AssetState.ISSUED,
]

RECENT_ACTIVITY_LIMIT = 5


def _live():
    return Asset.deleted_at.is_(None)


def counts_by_type(db: Session) -> dict[AssetType, int]:
    rows = db.execute(select(Asset.type, func.count()).where(_live()).group_by(Asset.type)).all()
    found = {t: n for t, n in rows}
    return {t: found.get(t, 0) for t in ALL_ASSET_TYPES}


def counts_by_state(db: Session, states: list[AssetState] | None = None) -> dict[AssetState, int]:
    rows = db.execute(select(Asset.state, func.count()).where(_live()).group_by(Asset.state)).all()
    found = {s: n for s, n in rows}
    return {s: found.get(s, 0) for s in (states or list(AssetState))}


def counts_by_year(db: Session) -> dict[int, int]:
    out: dict[int, int] = {}
    for created_at in db.scalars(select(Asset.created_at).where(_live())):
        out[created_at.year] = out.get(created_at.year, 0) + 1
    return dict(sorted(out.items()))


def type_breakdown_for_state(db: Session, state: AssetState) -> list[dict]:
    rows = db.execute(
        select(Asset.type, func.count()).where(_live(), Asset.state == state).group_by(Asset.type)
    ).all()
    found = {t: n for t, n in rows}
    return [{"type": t.value, "count": found.get(t, 0)} for t in ALL_ASSET_TYPES]


def inventory_summary(db: Session) -> dict:
    return {
        "byType": [{"type": t.value, "count": n} for t, n in counts_by_type(db).items()],
        "byState": [{"state": s.value, "count": n} for s, n in counts_by_state(db).items()],
        "byTypeInBuilding": type_breakdown_for_state(db, AssetState.BUILDING),
        "byTypeInReadyToGo": type_breakdown_for_state(db, AssetState.READY_TO_GO),
    }


def financial_summary(db: Session, current_year: int | None = None) -> dict:
    """Current depreciated value per type, and total value at the end of each year."""
    current_year = current_year or datetime.now(timezone.utc).year
    settings = DepreciationSettings.from_json(crud.get_settings(db).depreciation_settings)

    assets = db.execute(select(Asset.type, Asset.purchase_price, Asset.created_at).where(_live())).all()

    by_type = {t: {"count": 0, "purchaseValue": 0.0, "currentValue": 0.0} for t in ALL_ASSET_TYPES}
    for asset_type, price, created_at in assets:
        entry = by_type[asset_type]
        entry["count"] += 1
        entry["purchaseValue"] += float(price or 0)
        entry["currentValue"] += settings.value(price or 0, created_at.year, current_year)

    by_year = []
    if assets:
        first_year = min(created_at.year for _, _, created_at in assets)
        for year in range(first_year, current_year + 1):
            total = sum(
                settings.value(price or 0, created_at.year, year)
                for _, price, created_at in assets
                if created_at.year <= year
            )
            by_year.append({"year": year, "value": round(total, 2)})

    return {
        "method": settings.method,
        "years": settings.years,
        "byType": [
            {
                "type": t.value,
                "count": v["count"],
                "purchaseValue": round(v["purchaseValue"], 2),
                "currentValue": round(v["currentValue"], 2),
            }
            for t, v in by_type.items()
        ],
        "byYear": by_year,
    }


def recent_activity(db: Session, limit: int = RECENT_ACTIVITY_LIMIT) -> list[dict]:
    stmt = (
        select(AssetHistory, User.name, Asset.asset_number, Asset.type, Asset.description)
        .join(Asset, AssetHistory.asset_id == Asset.id)
        .outerjoin(User, AssetHistory.changed_by == User.id)
        .order_by(AssetHistory.timestamp.desc())
        .limit(limit)
    )
    out = []
    for ev, user_name, asset_number, asset_type, description in db.execute(stmt).all():
        out.append(
            {
                "id": str(ev.id),
                "assetId": str(ev.asset_id),
                "assetNumber": asset_number,
                "assetType": asset_type.value,
                "description": description,
                "previousState": ev.previous_state.value if ev.previous_state else None,
                "newState": ev.new_state.value,
                "changeReason": ev.change_reason,
                "timestamp": ev.timestamp.isoformat(),
                "userName": user_name or "System",
            }
        )
    return out


def dashboard(db: Session) -> dict:
    total_value = db.scalar(select(func.coalesce(func.sum(Asset.purchase_price), 0)).where(_live())) or 0
    return {
        "totals": {
            "assets": db.scalar(select(func.count()).select_from(Asset).where(_live())) or 0,
            "value": round(float(total_value), 2),
            "users": db.scalar(select(func.count()).select_from(User).where(User.is_active.is_(True))) or 0,
            "locations": db.scalar(select(func.count()).select_from(Location)) or 0,
        },
        "assetsByState": [
            {"state": s.value, "count": n} for s, n in counts_by_state(db, DASHBOARD_STATES).items()
        ],
        "assetsByType": [{"type": t.value, "count": n} for t, n in counts_by_type(db).items()],
        "recentActivity": recent_activity(db),
        "pendingHoldingCount": db.scalar(select(func.count()).select_from(HoldingAsset)) or 0,
        "buildingByType": type_breakdown_for_state(db, AssetState.BUILDING),
        "readyToGoByType": type_breakdown_for_state(db, AssetState.READY_TO_GO),
    }
