from datetime import datetime, timezone

import pytest

from itam import lifecycle, reports
from itam.models import AssetState, AssetType

TYPE_ORDER = ["DESKTOP", "LAPTOP", "MONITOR", "MOBILE_PHONE", "TABLET"]


def test_empty_breakdown_lists_every_type(db):
    breakdown = reports.type_breakdown_for_state(db, AssetState.BUILDING)
    assert breakdown == [{"type": t, "count": 0} for t in TYPE_ORDER]


def test_breakdown_counts_only_that_state(db, make_asset):
    make_asset("A1", type=AssetType.LAPTOP, state=AssetState.BUILDING)
    make_asset("A2", type=AssetType.LAPTOP, state=AssetState.BUILDING)
    make_asset("A3", type=AssetType.DESKTOP, state=AssetState.READY_TO_GO)

    building = {row["type"]: row["count"] for row in reports.type_breakdown_for_state(db, AssetState.BUILDING)}
    ready = {row["type"]: row["count"] for row in reports.type_breakdown_for_state(db, AssetState.READY_TO_GO)}

    assert building == {"DESKTOP": 0, "LAPTOP": 2, "MONITOR": 0, "MOBILE_PHONE": 0, "TABLET": 0}
    assert ready["DESKTOP"] == 1


def test_deleted_assets_are_not_counted(db, make_asset, admin):
    make_asset("A1", type=AssetType.TABLET)
    make_asset("A2", type=AssetType.TABLET)
    lifecycle.soft_delete_asset(db, "A2", admin.id)

    assert reports.counts_by_type(db)[AssetType.TABLET] == 1


def test_counts_by_year(db, make_asset):
    make_asset("A1", created_at=datetime(2022, 5, 1, tzinfo=timezone.utc))
    make_asset("A2", created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    make_asset("A3", created_at=datetime(2024, 6, 1, tzinfo=timezone.utc))

    assert reports.counts_by_year(db) == {2022: 1, 2024: 2}


def test_inventory_summary_shape(db, make_asset):
    make_asset("A1", state=AssetState.READY_TO_GO)
    summary = reports.inventory_summary(db)

    assert [row["type"] for row in summary["byType"]] == TYPE_ORDER
    assert {row["state"] for row in summary["byState"]} == {s.value for s in AssetState}
    assert len(summary["byTypeInBuilding"]) == 5
    assert sum(row["count"] for row in summary["byTypeInReadyToGo"]) == 1


def test_dashboard_recent_activity_defaults_to_system(db, make_holding):
    holding = make_holding("SN-1")
    lifecycle.assign_holding_asset(db, holding.id, "A1", None, "DESKTOP")

    data = reports.dashboard(db)

    assert data["totals"]["assets"] == 1
    assert data["pendingHoldingCount"] == 0
    assert [row["state"] for row in data["assetsByState"]] == [
        "HOLDING", "AVAILABLE", "BUILDING", "READY_TO_GO", "ISSUED",
    ]
    assert data["recentActivity"][0]["userName"] == "System"
    assert data["recentActivity"][0]["assetNumber"] == "A1"
    assert [row["type"] for row in data["buildingByType"]] == TYPE_ORDER


def test_dashboard_recent_activity_is_capped(db, make_asset, admin):
    for i in range(4):
        make_asset(f"A{i}")
    lifecycle.transition_state(db, [f"A{i}" for i in range(4)], AssetState.BUILDING, admin.id)
    lifecycle.transition_state(db, [f"A{i}" for i in range(4)], AssetState.BUILT, admin.id)

    activity = reports.dashboard(db)["recentActivity"]
    assert len(activity) == 5
    assert {row["userName"] for row in activity} == {"Ada Admin"}


def test_financial_summary_straight_line(db, make_asset):
    make_asset("A1", type=AssetType.LAPTOP, created_at=datetime(2022, 3, 1, tzinfo=timezone.utc))

    summary = reports.financial_summary(db, current_year=2024)

    laptop = next(row for row in summary["byType"] if row["type"] == "LAPTOP")
    assert laptop["purchaseValue"] == pytest.approx(1000)
    assert laptop["currentValue"] == pytest.approx(500)
    assert summary["byYear"] == [
        {"year": 2022, "value": 1000.0},
        {"year": 2023, "value": 750.0},
        {"year": 2024, "value": 500.0},
    ]
