from itam import config, main
from itam.models import AssetState, AssetType


class TestEnvelope:
    def test_missing_token_is_401(self, client):
        resp = client.get("/assets")
        assert resp.status_code == 401
        assert resp.json()["success"] is False
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_user_cannot_reach_admin_routes(self, client, auth_headers, make_user):
        user = make_user()
        resp = client.get("/holding-assets", headers=auth_headers(user))
        assert resp.status_code == 403
        assert resp.json() == {"success": False, "error": "Not authorized", "code": "FORBIDDEN"}

    def test_details_only_in_debug(self, client, auth_headers, admin, monkeypatch):
        resp = client.put("/settings", headers=auth_headers(admin), json={"reportCacheDuration": 0})
        assert "details" not in resp.json()

        monkeypatch.setattr(config, "DEBUG", True)
        resp = client.put("/settings", headers=auth_headers(admin), json={"reportCacheDuration": 0})
        assert "details" in resp.json()

    def test_request_id_is_echoed(self, client):
        resp = client.get("/health", headers={"X-Request-ID": "abc123"})
        assert resp.headers["x-request-id"] == "abc123"


class TestAssets:
    def test_detail_with_location_and_system_editor(self, client, auth_headers, admin, make_asset, fallback_location):
        make_asset("A1")
        resp = client.get("/assets/A1", headers=auth_headers(admin))

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["assetNumber"] == "A1"
        assert data["locationName"] == fallback_location.name
        assert data["updatedByName"] == "System"

    def test_unknown_asset_is_404(self, client, auth_headers, admin):
        resp = client.get("/assets/NOPE", headers=auth_headers(admin))
        assert resp.status_code == 404
        assert resp.json()["success"] is False

    def test_list_filters_and_paginates(self, client, auth_headers, admin, make_asset):
        make_asset("A1", type=AssetType.LAPTOP)
        make_asset("A2", type=AssetType.LAPTOP)
        make_asset("D1", type=AssetType.DESKTOP)

        resp = client.get("/assets?type=LAPTOP&limit=1", headers=auth_headers(admin))

        body = resp.json()["data"]
        assert len(body["assets"]) == 1
        assert body["pagination"]["total"] == 2
        assert body["pagination"]["totalPages"] == 2

    def test_state_transition_records_editor(self, client, auth_headers, admin, make_asset):
        make_asset("A1")
        resp = client.put(
            "/assets",
            headers=auth_headers(admin),
            json={"operation": "stateTransition", "assetNumbers": ["A1"], "newState": "BUILDING"},
        )
        assert resp.status_code == 200

        detail = client.get("/assets/A1", headers=auth_headers(admin)).json()["data"]
        assert detail["state"] == "BUILDING"
        assert detail["updatedByName"] == "Ada Admin"

        history = client.get("/assets/A1/history", headers=auth_headers(admin)).json()["data"]
        assert history[0]["previousState"] == "AVAILABLE"
        assert history[0]["changedByName"] == "Ada Admin"

    def test_invalid_transition_is_400(self, client, auth_headers, admin, make_asset):
        make_asset("M1", type=AssetType.MONITOR)
        resp = client.put(
            "/assets",
            headers=auth_headers(admin),
            json={"operation": "stateTransition", "assetNumbers": ["M1"], "newState": "BUILDING"},
        )
        assert resp.status_code == 400

    def test_ready_to_go_by_type(self, client, auth_headers, admin, make_asset):
        make_asset("T1", type=AssetType.TABLET, state=AssetState.READY_TO_GO)
        resp = client.get("/assets/ready-to-go-by-type", headers=auth_headers(admin))
        data = resp.json()["data"]
        assert len(data) == 5
        assert {"type": "TABLET", "count": 1} in data

    def test_export_csv(self, client, auth_headers, admin, make_asset):
        make_asset("A1")
        resp = client.post("/assets/export", headers=auth_headers(admin), json={"format": "csv"})

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert "attachment" in resp.headers["content-disposition"]
        lines = resp.text.strip().splitlines()
        assert lines[0] == "Asset Number,Type,Description,State,Location,Assigned To,Purchase Price,Updated"
        assert "Unassigned" in lines[1]

    def test_export_pdf(self, client, auth_headers, admin, make_asset):
        make_asset("A1")
        resp = client.post("/assets/export", headers=auth_headers(admin), json={"format": "pdf", "type": "LAPTOP"})

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert resp.content.startswith(b"%PDF")


class TestHoldingAssign:
    def test_assign_defaults_user_to_caller(self, client, auth_headers, admin, make_holding):
        holding = make_holding("SN-1")
        resp = client.post(
            "/holding-assets/assign",
            headers=auth_headers(admin),
            json={"holdingAssetId": str(holding.id), "assetNumber": "A1", "type": "LAPTOP"},
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["state"] == "AVAILABLE"

        detail = client.get("/assets/A1", headers=auth_headers(admin)).json()["data"]
        assert detail["updatedByName"] == "Ada Admin"

    def test_duplicate_number_is_409_with_field(self, client, auth_headers, admin, make_holding, make_asset):
        make_asset("A1")
        holding = make_holding("SN-2")
        resp = client.post(
            "/holding-assets/assign",
            headers=auth_headers(admin),
            json={"holdingAssetId": str(holding.id), "assetNumber": "A1", "type": "LAPTOP"},
        )
        assert resp.status_code == 409
        assert resp.json()["field"] == "assetNumber"


class TestSearch:
    def test_matches_across_entities(self, client, auth_headers, admin, make_asset, make_location):
        make_asset("LAP42", description="Latitude 7420")
        make_location("Lab 42")

        data = client.get("/search?q=42", headers=auth_headers(admin)).json()["data"]

        assert [a["assetNumber"] for a in data["assets"]] == ["LAP42"]
        assert [loc["name"] for loc in data["locations"]] == ["Lab 42"]

    def test_case_insensitive(self, client, auth_headers, admin):
        data = client.get("/search?q=ADA", headers=auth_headers(admin)).json()["data"]
        assert [u["email"] for u in data["users"]] == ["admin@example.com"]

    def test_empty_query_is_400(self, client, auth_headers, admin):
        resp = client.get("/search?q=%20", headers=auth_headers(admin))
        assert resp.status_code == 400


class TestSettings:
    def test_defaults(self, client, auth_headers, admin):
        data = client.get("/settings", headers=auth_headers(admin)).json()["data"]
        assert data["reportCacheDuration"] == 30
        assert data["depreciationSettings"]["method"] == "straight"

    def test_update(self, client, auth_headers, admin):
        resp = client.put(
            "/settings",
            headers=auth_headers(admin),
            json={
                "reportCacheDuration": 120,
                "depreciationSettings": {"method": "declining", "years": 3, "decliningPercents": [50, 30, 20]},
            },
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["reportCacheDuration"] == 120
        assert data["depreciationSettings"]["decliningPercents"] == [50, 30, 20]

    def test_rejects_out_of_range_duration(self, client, auth_headers, admin):
        for bad in (0, 1441, 30.5, "soon"):
            resp = client.put("/settings", headers=auth_headers(admin), json={"reportCacheDuration": bad})
            assert resp.status_code == 400, bad

    def test_rejects_bad_percents(self, client, auth_headers, admin):
        resp = client.put(
            "/settings",
            headers=auth_headers(admin),
            json={"depreciationSettings": {"method": "declining", "years": 2, "decliningPercents": [150]}},
        )
        assert resp.status_code == 400


class TestUsersAndLocations:
    def test_next_employee_id(self, client, auth_headers, admin, make_user):
        make_user(employee_id="EMP00041")
        data = client.get("/users/next-employee-id", headers=auth_headers(admin)).json()["data"]
        assert data["employeeId"] == "EMP00042"

    def test_create_user_assigns_employee_id(self, client, auth_headers, admin):
        resp = client.post(
            "/users",
            headers=auth_headers(admin),
            json={"name": "Linus Torvalds", "email": "linus@example.com"},
        )
        assert resp.status_code == 201
        assert resp.json()["data"]["employeeId"] == "EMP00002"

    def test_duplicate_email_is_409(self, client, auth_headers, admin):
        resp = client.post(
            "/users",
            headers=auth_headers(admin),
            json={"name": "Someone Else", "email": "admin@example.com"},
        )
        assert resp.status_code == 409

    def test_location_in_use_cannot_be_deleted(self, client, auth_headers, admin, make_asset, fallback_location):
        make_asset("A1")
        resp = client.delete(f"/locations/{fallback_location.id}", headers=auth_headers(admin))
        assert resp.status_code == 409

    def test_unused_location_can_be_deleted(self, client, auth_headers, admin, make_location):
        loc = make_location("Annex")
        resp = client.delete(f"/locations/{loc.id}", headers=auth_headers(admin))
        assert resp.status_code == 200

    def test_departments_are_deduplicated(self, client, auth_headers, admin, make_user):
        make_user(department="Finance")
        make_user(department="finance ")
        client.post("/departments", headers=auth_headers(admin), json={"name": "Engineering"})

        data = client.get("/departments", headers=auth_headers(admin)).json()["data"]
        assert data == ["ENGINEERING", "FINANCE"]


class TestPartialUpdates:
    def test_asset_null_description_is_rejected(self, client, auth_headers, admin, make_asset):
        make_asset("A1", description="ThinkPad T14")
        resp = client.patch("/assets/A1", headers=auth_headers(admin), json={"description": None})

        assert resp.status_code == 400
        detail = client.get("/assets/A1", headers=auth_headers(admin)).json()["data"]
        assert detail["description"] == "ThinkPad T14"

    def test_asset_null_assignee_is_allowed(self, client, auth_headers, admin, make_asset):
        make_asset("A1", assigned_to="Grace Hopper")
        resp = client.patch("/assets/A1", headers=auth_headers(admin), json={"assignedTo": None})

        assert resp.status_code == 200
        assert resp.json()["data"]["assignedTo"] is None

    def test_location_null_name_is_rejected(self, client, auth_headers, admin, make_location):
        loc = make_location("Annex")
        resp = client.patch(f"/locations/{loc.id}", headers=auth_headers(admin), json={"name": None})

        assert resp.status_code == 400
        assert client.get(f"/locations/{loc.id}", headers=auth_headers(admin)).json()["data"]["name"] == "Annex"

    def test_user_null_email_is_rejected(self, client, auth_headers, admin, make_user):
        user = make_user("Grace Hopper", email="grace@example.com")
        resp = client.patch(f"/users/{user.id}", headers=auth_headers(admin), json={"email": None})

        assert resp.status_code == 400
        assert resp.json()["success"] is False
        data = client.get(f"/users/{user.id}", headers=auth_headers(admin)).json()["data"]
        assert data["email"] == "grace@example.com"

    def test_user_rename(self, client, auth_headers, admin, make_user):
        user = make_user("Grace Hopper")
        resp = client.patch(f"/users/{user.id}", headers=auth_headers(admin), json={"name": "Grace B. Hopper"})
        assert resp.json()["data"]["name"] == "Grace B. Hopper"


def test_import_logs_upload_name(client, auth_headers, admin, fallback_location, captured_logs):
    resp = client.post(
        "/import",
        headers=auth_headers(admin),
        files={"file": ("q3-laptops.csv", b"serialNumber,description,type\nSN-1,ThinkPad,LAPTOP\n", "text/csv")},
        data={"type": "assets"},
    )

    assert resp.status_code == 200
    received = next(r for r in captured_logs() if r["message"] == "Import received")
    assert received["upload_name"] == "q3-laptops.csv"
    assert received["rows"] == 1


def test_rate_limit_store_drops_closed_windows(monkeypatch):
    now = 10_000.0
    store = {
        "10.0.0.1": (3, now - config.RATE_LIMIT_WINDOW_SECONDS - 1),
        "10.0.0.2": (1, now - 1),
    }
    monkeypatch.setattr(main, "_rate_limit_store", store)

    main.prune_rate_limit_store(now)

    assert list(store) == ["10.0.0.2"]
