from datetime import timedelta

import pytest
from conftest import auth_headers, days_ahead

from ascready.utils.timezone import utcnow


@pytest.fixture
def world(db, make, facility, admin):
    tomorrow = (utcnow() + timedelta(days=1)).date()
    kit = make.catalog_item(facility, name="Hip Screw Kit", criticality="CRITICAL",
                            requires_sterility=True, requires_lot_tracking=True)
    unit = make.instance(kit, lot_number="LOT-A", sterility_expires_at=days_ahead(300))
    flagged = make.instance(kit, lot_number=None, sterility_expires_at=days_ahead(300))
    case = make.case(facility, make.card(facility, [{"catalog_id": kit.id, "quantity": 1}]),
                     scheduled_date=tomorrow)
    surgeon = make.user(facility, roles=("SURGEON",), name="Dr. Reyes")
    db.commit()
    return {"kit": kit, "unit": unit, "flagged": flagged, "case": case,
            "date": tomorrow, "surgeon": surgeon}


def test_requires_token(client, world):
    r = client.get(f"/api/readiness/cases/{world['case'].id}")
    assert r.status_code == 401
    assert r.json()["ok"] is False


def test_case_readiness_and_not_found(client, admin, world):
    h = auth_headers(admin)
    r = client.get(f"/api/readiness/cases/{world['case'].id}", headers=h)
    body = r.json()
    assert r.status_code == 200
    assert body["data"]["readinessState"] == "ORANGE"
    assert body["data"]["totalRequiredItems"] == 1

    r = client.get("/api/readiness/cases/9999", headers=h)
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "NOT_FOUND"


def test_verify_attest_void_flow(client, admin, world):
    h = auth_headers(admin)
    case_id, kit_id = world["case"].id, world["kit"].id

    r = client.post(f"/api/readiness/cases/{case_id}/verify", headers=h,
                    json={"requirement_catalog_id": kit_id,
                          "inventory_instance_id": world["flagged"].id})
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "INSTANCE_NOT_ELIGIBLE"

    r = client.post(f"/api/readiness/cases/{case_id}/verify", headers=h,
                    json={"requirement_catalog_id": kit_id,
                          "inventory_instance_id": world["unit"].id})
    assert r.status_code == 200
    assert r.json()["data"]["reservedForCaseId"] == case_id

    r = client.post("/api/readiness/attestations", headers=h,
                    json={"case_id": case_id, "type": "CASE_READINESS"})
    assert r.status_code == 201
    att = r.json()["data"]
    assert att["readinessStateAtTime"] == "GREEN"

    r = client.post("/api/readiness/attestations", headers=h,
                    json={"case_id": case_id, "type": "CASE_READINESS"})
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "ALREADY_ATTESTED"

    r = client.post(f"/api/readiness/attestations/{att['id']}/void", headers=h, json={})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VOID_REASON_REQUIRED"

    r = client.post(f"/api/readiness/attestations/{att['id']}/void", headers=h,
                    json={"reason": "tray swapped"})
    assert r.status_code == 200
    assert r.json()["data"]["success"] is True

    r = client.get(f"/api/readiness/cases/{case_id}/attestations", headers=h)
    rows = r.json()["data"]
    assert [a["isActive"] for a in rows] == [False]


def test_day_before_and_calendar(client, admin, world):
    h = auth_headers(admin)
    d = world["date"].isoformat()

    r = client.get("/api/readiness/day-before", params={"date": d}, headers=h)
    data = r.json()["data"]
    assert r.status_code == 200
    assert data["summary"]["total"] == 1
    assert data["cases"][0]["caseId"] == world["case"].id

    r = client.post("/api/readiness/refresh", json={"target_date": d}, headers=h)
    assert r.status_code == 200

    r = client.get("/api/readiness/calendar-summary",
                   params={"start_date": d, "end_date": d}, headers=h)
    assert r.json()["data"]["days"][0]["caseCount"] == 1

    r = client.get("/api/readiness/day-before", params={"date": "not-a-date"}, headers=h)
    assert r.status_code == 422


def test_risk_queue(client, admin, world):
    r = client.get("/api/inventory/risk-queue", headers=auth_headers(admin))
    items = r.json()["data"]["riskItems"]
    assert [(i["rule"], i["inventoryInstanceId"]) for i in items] == [
        ("MISSING_LOT", world["flagged"].id)]
    assert items[0]["missingFields"] == ["lotNumber"]


def test_inventory_event_endpoint(client, admin, world):
    h = auth_headers(admin)
    r = client.post("/api/inventory/events", headers=h,
                    json={"inventory_instance_id": world["unit"].id, "event_type": "MISSING"})
    assert r.status_code == 201
    assert r.json()["data"]["eventType"] == "MISSING"

    r = client.get(f"/api/readiness/cases/{world['case'].id}", headers=h)
    assert r.json()["data"]["readinessState"] == "RED"


def test_capabilities_enforced(client, world):
    h = auth_headers(world["surgeon"])
    r = client.post(f"/api/readiness/cases/{world['case'].id}/verify", headers=h,
                    json={"requirement_catalog_id": world["kit"].id,
                          "inventory_instance_id": world["unit"].id})
    assert r.status_code == 403

    # surgeons may acknowledge, but only while the case is RED
    r = client.post("/api/readiness/attestations", headers=h,
                    json={"case_id": world["case"].id, "type": "SURGEON_ACKNOWLEDGMENT"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "ACKNOWLEDGMENT_NOT_REQUIRED"


def test_cancel_case(client, admin, world):
    h = auth_headers(admin)
    r = client.post(f"/api/cases/{world['case'].id}/cancel", headers=h, json={"reason": "moved"})
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "CANCELLED"

    r = client.get("/api/readiness/day-before",
                   params={"date": world["date"].isoformat()}, headers=h)
    assert r.json()["data"]["summary"]["total"] == 0


def test_envelope_shapes():
    import json

    from ascready.api.response import ok, readiness_err
    from ascready.schemas.inventory import RiskQueueOut
    from ascready.services.errors import AlreadyVoided

    body = json.loads(ok(RiskQueueOut(risk_items=[]), meta={"n": 0}).body)
    assert body == {"ok": True, "data": {"riskItems": []}, "meta": {"n": 0}}

    resp = readiness_err(AlreadyVoided("gone", details={"attestationId": 7}))
    assert resp.status_code == 409
    assert json.loads(resp.body) == {"ok": False, "error": {
        "msg": "gone", "code": "ALREADY_VOIDED", "details": {"attestationId": 7}}}
