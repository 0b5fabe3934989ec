"""
test_capacity_routes.py — API tests for department capacities and the load heatmap.

The scheduled product is the same one the unit tests use:
    400 production hours, Mon 2025-01-06 → Mon 2025-02-03 ⇒ 100 h/week for 4 weeks.
"""

import pytest


@pytest.fixture
def project(client, customer):
    resp = client.post("/api/projects", json={"name": "Quayside Mezzanine", "customer_id": customer["id"]})
    assert resp.status_code == 201
    return resp.json()


@pytest.fixture
def scheduled_product(client, project):
    product = client.post(f"/api/projects/{project['id']}/products",
                          json={"part_code": "BEAM-01", "description": "Primary beams"}).json()
    resp = client.patch(f"/api/products/{product['id']}/schedule", json={
        "production_estimated_hours": 400,
        "production_planned_start": "2025-01-06",
        "production_target_date": "2025-02-03",
    })
    assert resp.status_code == 200
    return resp.json()


def _set_capacity(client, department="PRODUCTION", hours=80, **extra):
    body = {"department": department, "display_name": department.title(), "hours_per_week": hours}
    body.update(extra)
    return client.post("/api/capacity", json=body)


def _load(client, **params):
    params.setdefault("start", "2025-01-08")
    params.setdefault("weeks", 5)
    resp = client.get("/api/capacity/load", params=params)
    assert resp.status_code == 200
    return resp.json()


def _department(report, key):
    return next(d for d in report["departments"] if d["department"] == key)


# ===========================================================================
# Class 1: Capacity upsert
# ===========================================================================

class TestCapacityUpsert:

    @pytest.mark.parametrize("body", [
        {"display_name": "Production", "hours_per_week": 200},
        {"department": "PRODUCTION", "hours_per_week": 200},
        {"department": "PRODUCTION", "display_name": "Production"},
        {"department": "PRODUCTION", "display_name": "Production", "hours_per_week": ""},
    ])
    def test_missing_fields_rejected(self, client, body):
        resp = client.post("/api/capacity", json=body)
        assert resp.status_code == 400
        assert resp.json()["error"] == "VALIDATION_MISSING"

    def test_unknown_department_rejected(self, client):
        resp = _set_capacity(client, department="PAINT")
        assert resp.status_code == 400
        assert resp.json()["error"] == "VALIDATION_INVALID"

    @pytest.mark.parametrize("extra, field", [
        ({"hours": "1e7"}, "hours_per_week"),
        ({"headcount": "1e12"}, "headcount"),
    ])
    def test_values_too_large_to_store_rejected(self, client, extra, field):
        resp = _set_capacity(client, **extra)
        assert resp.status_code == 400
        assert resp.json()["field"] == field
        assert client.get("/api/capacity").json() == []

    def test_create_then_update_in_place(self, client):
        created = _set_capacity(client, hours=200, headcount=5).json()
        assert created["hours_per_week"] == 200
        assert created["headcount"] == 5

        updated = _set_capacity(client, hours="240").json()
        assert updated["id"] == created["id"]
        assert updated["hours_per_week"] == 240

        rows = client.get("/api/capacity").json()
        assert [r["department"] for r in rows] == ["PRODUCTION"]

    def test_update_is_audited(self, client):
        cap = _set_capacity(client, hours=200).json()
        _set_capacity(client, hours=240)
        entries = client.get("/api/audit", params={"entity": "DepartmentCapacity",
                                                   "entity_id": cap["id"]}).json()
        change = next(e for e in entries if e["field"] == "hours_per_week")
        assert (change["old_value"], change["new_value"]) == ("200", "240")

    def test_requires_settings_permission(self, client, act_as):
        act_as("PRODUCTION_MANAGER")
        resp = _set_capacity(client)
        assert resp.status_code == 403
        # Reading capacities only needs reports:read
        assert client.get("/api/capacity").status_code == 200


# ===========================================================================
# Class 2: Load heatmap
# ===========================================================================

class TestCapacityLoad:

    def test_spread_and_utilisation(self, client, scheduled_product):
        _set_capacity(client, hours=80)
        report = _load(client)

        assert report["start"] == "2025-01-06"
        assert len(report["weeks"]) == 5
        production = _department(report, "PRODUCTION")
        assert [w["hours"] for w in production["weeks"]] == [100, 100, 100, 100, 0]
        assert production["weeks"][0]["utilisation"] == 125.0
        assert production["weeks"][0]["overloaded"] is True
        assert production["weeks"][0]["products"] == ["100001/BEAM-01"]
        assert production["weeks"][0]["product_ids"] == [scheduled_product["id"]]
        assert production["weeks"][4]["products"] == []
        assert production["summary"]["load_hours"] == 400
        assert production["summary"]["capacity_hours"] == 320
        assert report["total_estimated_hours"] == 400

    def test_no_capacity_row_reads_zero_utilisation(self, client, scheduled_product):
        production = _department(_load(client), "PRODUCTION")
        assert production["hours_per_week"] == 0
        assert all(w["utilisation"] == 0 for w in production["weeks"])
        assert production["weeks"][0]["hours"] == 100

    def test_completed_work_drops_out(self, client, scheduled_product):
        client.patch(f"/api/products/{scheduled_product['id']}/schedule",
                     json={"production_completion_date": "2025-01-17"})
        production = _department(_load(client), "PRODUCTION")
        assert all(w["hours"] == 0 for w in production["weeks"])

    def test_dated_product_without_hours_is_unestimated(self, client, project, scheduled_product):
        stair = client.post(f"/api/projects/{project['id']}/products",
                            json={"part_code": "STAIR-02", "description": "Feature stair"}).json()
        client.patch(f"/api/products/{stair['id']}/schedule",
                     json={"design_planned_start": "2025-01-06", "design_target_date": "2025-01-20"})

        report = _load(client)
        assert [u["label"] for u in report["unestimated"]] == ["100001/STAIR-02"]
        assert report["estimated_product_count"] == 1
        assert all(w["hours"] == 0 for w in _department(report, "DESIGN")["weeks"])

    @pytest.mark.parametrize("weeks, expected", [("500", 52), ("0", 1), ("abc", 12), ("3", 3)])
    def test_week_count_is_clamped(self, client, weeks, expected):
        assert len(_load(client, weeks=weeks)["weeks"]) == expected

    def test_bad_start_date_rejected(self, client):
        resp = client.get("/api/capacity/load", params={"start": "next tuesday"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "VALIDATION_INVALID"

    def test_empty_plant(self, client):
        report = _load(client)
        assert report["unestimated"] == []
        assert [d["department"] for d in report["departments"]] == [
            "DESIGN", "OPS", "PRODUCTION", "INSTALLATION",
        ]
