from io import BytesIO

import pytest
from openpyxl import Workbook
from sqlalchemy import func, select

from itam import importer, lifecycle
from itam.errors import NotFoundError, ValidationError
from itam.models import Asset, AssetState, AssetStatus, AssetType, HoldingAsset


def _rows():
    return [
        {"serialNumber": "SN-1", "description": "ThinkPad T14", "type": "LAPTOP", "purchasePrice": "1299.99"},
        {"serialNumber": "SN-2", "description": "Label printer", "type": "PRINTER"},
        {"serialNumber": "SN-3", "description": "iPhone 15", "type": "MOBILE_PHONE", "state": "ready-to-go"},
    ]


def test_invalid_type_rows_are_skipped(db, fallback_location):
    result = lifecycle.bulk_import(db, _rows())

    assert result.inserted == 2
    assert result.skipped == 1
    assert result.skipped_rows[0]["row"] == 2
    assert db.scalar(select(func.count()).select_from(HoldingAsset)) == 2


def test_holding_rows_are_pinned_to_fallback_location(db, fallback_location, admin):
    lifecycle.bulk_import(db, _rows(), imported_by=admin.id)

    holdings = list(db.scalars(select(HoldingAsset).order_by(HoldingAsset.serial_number)))
    assert {h.location_id for h in holdings} == {fallback_location.id}
    assert {h.status for h in holdings} == {AssetStatus.HOLDING}
    assert holdings[0].type == AssetType.LAPTOP
    assert float(holdings[0].purchase_price) == pytest.approx(1299.99)
    assert holdings[1].raw_data["state"] == AssetState.READY_TO_GO.value
    assert holdings[0].imported_by == admin.id


def test_defaults_for_bad_price_and_blank_state(db, fallback_location):
    rows = [{"Serial Number": "SN-9", "Description": "Dell U2723QE", "Type": "Monitor", "Purchase Price": "n/a"}]
    lifecycle.bulk_import(db, rows)

    holding = db.scalar(select(HoldingAsset))
    assert holding.type == AssetType.MONITOR
    assert float(holding.purchase_price) == 0
    assert holding.raw_data["state"] == "AVAILABLE"


def test_rows_missing_serial_or_description_are_skipped(db, fallback_location):
    rows = [
        {"serialNumber": "", "description": "No serial", "type": "LAPTOP"},
        {"serialNumber": "SN-5", "description": "", "type": "LAPTOP"},
    ]
    result = lifecycle.bulk_import(db, rows)
    assert result.inserted == 0
    assert result.skipped == 2


def test_serials_already_known_are_skipped(db, fallback_location, make_asset):
    make_asset("A1", serial="SN-1")
    rows = _rows() + [{"serialNumber": "SN-3", "description": "Repeat", "type": "TABLET"}]

    result = lifecycle.bulk_import(db, rows)

    assert result.inserted == 1
    assert result.skipped == 3


def test_direct_asset_target(db, fallback_location):
    result = lifecycle.bulk_import(db, _rows(), target_type="assets")

    assert result.inserted == 2
    assets = list(db.scalars(select(Asset).order_by(Asset.serial_number)))
    assert [a.asset_number for a in assets] == [None, None]
    assert assets[1].state == AssetState.READY_TO_GO
    assert {a.status for a in assets} == {AssetStatus.HOLDING}


def test_unknown_target(db, fallback_location):
    with pytest.raises(ValidationError):
        lifecycle.bulk_import(db, _rows(), target_type="users")


def test_missing_fallback_location(db):
    with pytest.raises(NotFoundError):
        lifecycle.bulk_import(db, _rows())


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("stock", AssetState.AVAILABLE),
        ("built", AssetState.BUILT),
        ("ready-to-go", AssetState.READY_TO_GO),
        ("active", AssetState.ISSUED),
        ("imported", AssetState.HOLDING),
        ("SIGNED_OUT", AssetState.SIGNED_OUT),
        ("", AssetState.AVAILABLE),
        ("lost", AssetState.AVAILABLE),
    ],
)
def test_canonical_state(raw, expected):
    assert lifecycle.canonical_state(raw) == expected


class TestParseUpload:
    def test_csv_with_bom_and_blank_lines(self):
        content = "\ufeffserialNumber,description,type\nSN-1, Laptop ,LAPTOP\n,,\nSN-2,Tablet,TABLET\n".encode("utf-8")
        rows = importer.parse_upload(content, "csv")
        assert rows == [
            {"serialNumber": "SN-1", "description": "Laptop", "type": "LAPTOP"},
            {"serialNumber": "SN-2", "description": "Tablet", "type": "TABLET"},
        ]

    def test_xlsx_first_sheet(self):
        wb = Workbook()
        ws = wb.active
        ws.append(["serialNumber", "description", "type", "purchasePrice"])
        ws.append(["SN-1", "OptiPlex 7010", "DESKTOP", 899])
        ws.append(["SN-2", "Galaxy Tab", "TABLET", None])
        buf = BytesIO()
        wb.save(buf)

        rows = importer.parse_upload(buf.getvalue(), "xlsx")

        assert len(rows) == 2
        assert rows[0]["purchasePrice"] == 899
        assert rows[1]["purchasePrice"] == ""

    def test_unsupported_format(self):
        with pytest.raises(ValidationError, match="Unsupported file format."):
            importer.parse_upload(b"{}", "json")


def test_import_endpoint(client, auth_headers, admin, fallback_location):
    content = (
        "serialNumber,description,type\n"
        "SN-1,ThinkPad,LAPTOP\n"
        "SN-2,Mystery box,TOASTER\n"
        "SN-3,Surface Pro,TABLET\n"
    ).encode("utf-8")

    resp = client.post(
        "/import",
        headers=auth_headers(admin),
        files={"file": ("assets.csv", content, "text/csv")},
        data={"type": "assets"},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["inserted"] == 2
    assert body["data"]["skipped"] == 1
    assert len(body["data"]["rows"]) == 3


def test_import_endpoint_requires_admin(client, auth_headers, make_user, fallback_location):
    user = make_user()
    resp = client.post(
        "/import",
        headers=auth_headers(user),
        files={"file": ("assets.csv", b"serialNumber\nSN-1\n", "text/csv")},
        data={"type": "assets"},
    )
    assert resp.status_code == 403
    assert resp.json()["success"] is False
