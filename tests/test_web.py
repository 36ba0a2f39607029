import pytest
from fastapi.testclient import TestClient

from line_planner import sample_usage
from line_planner.config import PlannerSettings
from line_planner.services import PlannerService
from line_planner.web.app import create_app, ensure_demo_data, parse_ramp_points, split_csv


@pytest.fixture
def client(tmp_path):
    settings = PlannerSettings(database_path=str(tmp_path / "web.sqlite3"))
    with TestClient(create_app(settings=settings)) as client:
        yield client


def create_line(client, capacity=100):
    response = client.post("/lines", data={"name": "Line A", "capacity": capacity})
    assert response.status_code == 201
    return response.json()


def create_order(client, po_number="PO-1", quantity=250):
    response = client.post(
        "/orders",
        data={"po_number": po_number, "style_id": "TEE-01", "order_quantity": quantity},
    )
    assert response.status_code == 201
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"ok": True, "service": "line-planner"}


def test_place_order_over_http(client):
    line = create_line(client)
    order = create_order(client)
    client.post("/holidays", data={"day": "2024-01-02", "name": "Bank holiday"})

    response = client.post(
        f"/orders/{order['id']}/place",
        data={"line_id": line["id"], "start_date": "2024-01-01"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["plan"] == {"2024-01-01": 100, "2024-01-03": 100, "2024-01-04": 50}
    assert body["order"]["status"] == "scheduled"
    assert body["order"]["plan_end_date"] == "2024-01-04"

    detail = client.get(f"/orders/{order['id']}").json()
    assert [entry["planned_date"] for entry in detail["plan"]] == [
        "2024-01-01",
        "2024-01-03",
        "2024-01-04",
    ]


def test_split_and_family_over_http(client):
    order = create_order(client, quantity=300)

    response = client.post(f"/orders/{order['id']}/split", data={"quantity": 120})

    assert response.status_code == 200
    assert response.json()["fragment"]["po_number"] == "PO-1-S1"
    family = client.get("/splits/PO-1").json()
    assert family["total_quantity"] == family["original_quantity"] == 300
    assert [member["order_quantity"] for member in family["members"]] == [180, 120]


def test_errors_map_to_status_codes(client):
    line = create_line(client)
    order = create_order(client)

    missing = client.post("/orders/nope/drop")
    assert missing.status_code == 404
    assert missing.json()["error"] == "not_found"

    not_placed = client.post(f"/orders/{order['id']}/drop")
    assert not_placed.status_code == 409
    assert not_placed.json()["error"] == "invalid_transition"

    too_big = client.post(f"/orders/{order['id']}/split", data={"quantity": 250})
    assert too_big.status_code == 422
    assert too_big.json()["maximum"] == 249

    bad_date = client.post(
        f"/orders/{order['id']}/place", data={"line_id": line["id"], "start_date": "01/01/2024"}
    )
    assert bad_date.status_code == 422

    duplicate = client.post(
        "/orders", data={"po_number": "PO-1", "style_id": "TEE-01", "order_quantity": 5}
    )
    assert duplicate.status_code == 409


def test_overlap_and_utilization_reports(client):
    line = create_line(client)
    first = create_order(client, "PO-1", 250)
    second = create_order(client, "PO-2", 150)
    client.post(
        f"/orders/{first['id']}/place", data={"line_id": line["id"], "start_date": "2024-01-01"}
    )

    overlap = client.get(
        f"/orders/{second['id']}/overlap",
        params={"line_id": line["id"], "start_date": "2024-01-01"},
    ).json()
    assert overlap["overlaps"] is True
    assert overlap["conflicting_order_ids"] == [first["id"]]

    report = client.get(
        "/reports/utilization", params={"start": "2024-01-01", "end": "2024-01-03"}
    ).json()
    assert [cell["utilization"] for cell in report[0]["cells"]] == [100.0, 100.0, 50.0]


def test_ramp_up_plan_endpoint(client):
    response = client.post(
        "/ramp-up-plans", data={"name": "New style", "points": "1:70, 0:50", "final_efficiency": 95}
    )

    assert response.status_code == 201
    assert response.json()["points"] == [
        {"day": 0, "efficiency": 50.0},
        {"day": 1, "efficiency": 70.0},
    ]


def test_form_helpers():
    assert split_csv(" a, ,b ") == ["a", "b"]
    assert parse_ramp_points("0:50,2:85") == [(0, 50.0), (2, 85.0)]
    with pytest.raises(ValueError):
        parse_ramp_points("0-50")


def test_demo_data_is_seeded_once():
    planner = PlannerService()

    ensure_demo_data(planner)
    ensure_demo_data(planner)

    assert len(planner.lines) == 3
    assert len(planner.orders) == 3
    assert len(planner.holidays) == 2


def test_sample_usage_runs(capsys):
    sample_usage.main()

    output = capsys.readouterr().out
    assert "Plan for PO-1002" in output
    assert "Split family PO-1001: 300/300 pcs in 2 orders" in output


def test_planning_options_and_cut_issue(client):
    order = create_order(client)

    options = client.post(
        "/planning-options", data={"horizon_days": 30, "allow_overbooking": "true"}
    ).json()
    assert options == {
        "horizon_days": 30,
        "allow_overbooking": True,
        "default_ramp_up_plan_id": None,
        "capacity_basis": "line",
    }

    updated = client.post(f"/orders/{order['id']}/cut-issue", data={"cut_quantity": 240})
    assert updated.json()["cut_quantity"] == 240
    assert updated.json()["issue_quantity"] == 0

    rejected = client.post(f"/orders/{order['id']}/cut-issue", data={"issue_quantity": -1})
    assert rejected.status_code == 422


def test_place_before_over_http(client):
    line = create_line(client)
    first = create_order(client, "PO-1", 250)
    rush = create_order(client, "PO-2", 150)
    client.post(
        f"/orders/{first['id']}/place", data={"line_id": line["id"], "start_date": "2024-01-01"}
    )

    response = client.post(
        f"/orders/{rush['id']}/place",
        data={"line_id": line["id"], "start_date": "2024-01-01", "position": "before"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["plan"] == {"2024-01-01": 100, "2024-01-02": 50}
    assert [order["po_number"] for order in body["replaced_orders"]] == ["PO-1"]
    assert body["replaced_orders"][0]["plan_start_date"] == "2024-01-03"

    bad_position = client.post(
        f"/orders/{rush['id']}/place",
        data={"line_id": line["id"], "start_date": "2024-01-01", "position": "middle"},
    )
    assert bad_position.status_code == 422


def test_planning_options_reject_zero_horizon(client):
    response = client.post("/planning-options", data={"horizon_days": 0})

    assert response.status_code == 422
    assert client.get("/planning-options").json()["horizon_days"] == 365
