# Overview: Pytest coverage for the HTTP API surface.

"""
API Tests

Exercises the blueprints end to end through the Flask test client:
operator headers, error translation, and the stock opname workflow.
"""

import pytest
from sqlalchemy.exc import OperationalError

from stockledger.services import concurrency, history_service


def _create_item(client, headers, **body):
    payload = {"name": "Teh", "category": "Minuman", "price_cents": 1000}
    payload.update(body)
    response = client.post("/api/items", json=payload, headers=headers)
    assert response.status_code == 201, response.json
    return response.json["item"]


class TestOperatorContext:
    def test_writes_require_actor(self, client, db_session):
        response = client.post("/api/items", json={"name": "Teh", "category": "Minuman"})
        assert response.status_code == 400
        assert response.json["code"] == "ACTOR_REQUIRED"

    def test_reads_do_not_require_actor(self, client, db_session):
        response = client.get("/api/items")
        assert response.status_code == 200
        assert response.json["items"] == []

    def test_health(self, client, db_session):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json["status"] == "healthy"


class TestItemRoutes:
    def test_create_allocates_code_and_posts_opening_stock(self, client, db_session, headers, category):
        category("Minuman", "MN")
        item = _create_item(client, headers, opening_quantity=12)
        assert item["code"] == "MN01"
        assert item["quantity"] == 12

        response = client.get("/api/ledger/items/MN01/movements")
        assert [m["reason"] for m in response.json["movements"]] == ["Opening stock"]

    def test_allocate_code(self, client, db_session, headers, category):
        category("Minuman", "MN")
        _create_item(client, headers)
        response = client.get("/api/items/allocate-code?category=Minuman")
        assert response.json["code"] == "MN02"

        response = client.get("/api/items/allocate-code?category_code=ABCD")
        assert response.status_code == 400
        assert response.json["code"] == "INVALID_CATEGORY"

    def test_explicit_duplicate_code(self, client, db_session, headers):
        _create_item(client, headers, code="MN01")
        response = client.post("/api/items", json={"name": "Kopi", "category": "Minuman", "code": "MN01"},
                               headers=headers)
        assert response.status_code == 409
        assert response.json["code"] == "DUPLICATE_CODE"
        assert response.json["retryable"] is True

    def test_quantity_is_not_editable(self, client, db_session, headers):
        item = _create_item(client, headers)
        response = client.patch(f"/api/items/{item['code']}", json={"quantity": 5}, headers=headers)
        assert response.status_code == 400

    def test_update_and_lookup_by_sku(self, client, db_session, headers):
        item = _create_item(client, headers)
        response = client.patch(f"/api/items/{item['code']}", json={"sku": "899100"}, headers=headers)
        assert response.status_code == 200

        response = client.get("/api/items/lookup?value=899100")
        assert response.json["item"]["code"] == item["code"]

        response = client.get("/api/items/lookup?value=nope")
        assert response.status_code == 404
        assert response.json["code"] == "ITEM_NOT_FOUND"

    @pytest.mark.parametrize("body", [
        {"name": "Teh"},
        {"name": "Teh", "category": "Minuman", "price_cents": 1.5},
        {"name": "Teh", "category": "Minuman", "price_cents": -1},
        {"name": "Teh", "category": "Minuman", "quantity": 3},
    ])
    def test_invalid_create(self, client, db_session, headers, body):
        response = client.post("/api/items", json=body, headers=headers)
        assert response.status_code == 400


class TestLedgerRoutes:
    def test_movement_and_on_hand(self, client, db_session, headers):
        item = _create_item(client, headers, opening_quantity=5)
        response = client.post("/api/ledger/movements", json={
            "item_code": item["code"], "type": "out", "quantity": 2, "reason": "Sale",
        }, headers=headers)
        assert response.status_code == 201
        assert response.json["item"]["quantity"] == 3

        response = client.get(f"/api/ledger/items/{item['code']}/on-hand")
        assert response.json["quantity_on_hand"] == 3

    def test_insufficient_stock(self, client, db_session, headers):
        item = _create_item(client, headers, opening_quantity=1)
        response = client.post("/api/ledger/movements", json={
            "item_code": item["code"], "type": "out", "quantity": 2,
        }, headers=headers)
        assert response.status_code == 409
        assert response.json["code"] == "INSUFFICIENT_STOCK"

    def test_verify(self, client, db_session, headers):
        _create_item(client, headers, opening_quantity=4)
        response = client.get("/api/ledger/verify")
        assert response.json == {"ok": True, "drift": []}


class TestOpnameRoutes:
    def test_full_workflow(self, client, db_session, headers):
        item = _create_item(client, headers, opening_quantity=50)
        code = item["code"]

        response = client.post("/api/opname/sessions", json={"mode": "partial"}, headers=headers)
        assert response.status_code == 201
        session_id = response.json["session"]["id"]

        response = client.post("/api/opname/sessions", json={"mode": "partial"}, headers=headers)
        assert response.status_code == 409
        assert response.json["code"] == "ACTIVE_SESSION_EXISTS"

        lines_url = f"/api/opname/sessions/{session_id}/lines"
        response = client.post(lines_url, json={"value": code, "counted_quantity": 40}, headers=headers)
        assert response.status_code == 201

        response = client.post(lines_url, json={"value": code, "counted_quantity": 42}, headers=headers)
        assert response.status_code == 409
        assert response.json["code"] == "DUPLICATE_LINE"

        response = client.post(lines_url, json={"value": code, "counted_quantity": 42, "replace": True},
                               headers=headers)
        assert response.status_code == 201
        assert response.json["line"]["difference"] == -8

        response = client.get("/api/opname/sessions/active", headers=headers)
        assert response.json["session"]["id"] == session_id
        assert response.json["session"]["lines"][0]["counted_quantity"] == 42

        response = client.get(f"/api/opname/sessions/{session_id}/summary", headers=headers)
        assert response.json["summary"]["mismatching_count"] == 1
        assert [line["code"] for line in response.json["mismatched"]] == [code]

        response = client.get(f"/api/opname/sessions/{session_id}/report", headers=headers)
        assert response.mimetype == "text/plain"
        assert "STOCK OPNAME REPORT" in response.get_data(as_text=True)

        response = client.post(f"/api/opname/sessions/{session_id}/commit", headers=headers)
        assert response.status_code == 200
        result = response.json["result"]
        assert result["status"] == "committed"
        assert [m["quantity"] for m in result["movements"]] == [-8]

        response = client.get(f"/api/items/{code}")
        assert response.json["item"]["quantity"] == 42

        response = client.get("/api/opname/sessions/active", headers=headers)
        assert response.json["session"] is None

        response = client.get("/api/monitoring/history")
        assert len(response.json["history"]) == 1
        history_id = response.json["history"][0]["id"]
        response = client.get(f"/api/monitoring/history/{history_id}")
        assert response.json["history"]["lines"][0]["difference"] == -8

        response = client.get(f"/api/monitoring/items/{code}")
        assert response.json["records"][0]["consecutive_so_count"] == 1

    def test_save_draft_ignores_client_snapshot_fields(self, client, db_session, headers):
        item = _create_item(client, headers, opening_quantity=50)
        code = item["code"]
        response = client.post("/api/opname/sessions", json={"mode": "partial"}, headers=headers)
        session_id = response.json["session"]["id"]
        client.post(f"/api/opname/sessions/{session_id}/lines",
                    json={"value": code, "counted_quantity": 0}, headers=headers)

        response = client.put(f"/api/opname/sessions/{session_id}", json={
            "last_view": "edit_so",
            "lines": [{"code": code, "system_quantity": 10, "counted_quantity": 42,
                       "applied_movement_id": 999, "unit_price_cents": 1}],
        }, headers=headers)
        assert response.status_code == 200
        line = response.json["session"]["lines"][0]
        assert (line["system_quantity"], line["counted_quantity"], line["applied_movement_id"]) == (50, 42, None)
        assert line["unit_price_cents"] == 1000

        response = client.get("/api/opname/sessions/active", headers=headers)
        assert response.json["session"]["last_view"] == "edit_so"

        response = client.post(f"/api/opname/sessions/{session_id}/commit", headers=headers)
        assert response.status_code == 200
        assert [m["quantity"] for m in response.json["result"]["movements"]] == [-8]

        response = client.get(f"/api/items/{code}")
        assert response.json["item"]["quantity"] == 42

    def test_save_draft_snapshots_new_codes_on_server(self, client, db_session, headers):
        item = _create_item(client, headers, opening_quantity=7)
        response = client.post("/api/opname/sessions", json={"mode": "partial"}, headers=headers)
        session_id = response.json["session"]["id"]
        url = f"/api/opname/sessions/{session_id}"

        response = client.put(url, json={"lines": [
            {"code": item["code"], "name": "Forged", "system_quantity": 0, "counted_quantity": 3},
        ]}, headers=headers)
        assert response.status_code == 200
        line = response.json["session"]["lines"][0]
        assert (line["name"], line["system_quantity"], line["counted_quantity"]) == ("Teh", 7, 3)

        response = client.put(url, json={"lines": [{"code": "X01", "counted_quantity": 1}]}, headers=headers)
        assert response.status_code == 404
        assert response.json["code"] == "ITEM_NOT_FOUND"

        response = client.put(url, json={"mode": "grand"}, headers=headers)
        assert response.status_code == 400

        response = client.get("/api/opname/sessions/active", headers=headers)
        assert [line["code"] for line in response.json["session"]["lines"]] == [item["code"]]

    def test_session_belongs_to_its_device(self, client, db_session, headers):
        response = client.post("/api/opname/sessions", json={"mode": "partial"}, headers=headers)
        session_id = response.json["session"]["id"]

        other = dict(headers, **{"X-Device-Id": "dev-2"})
        response = client.get(f"/api/opname/sessions/{session_id}/summary", headers=other)
        assert response.status_code == 404
        assert response.json["code"] == "SESSION_NOT_FOUND"

    def test_partial_commit_failure_is_409(self, client, db_session, headers):
        item = _create_item(client, headers, opening_quantity=10)
        response = client.post("/api/opname/sessions", json={"mode": "partial"}, headers=headers)
        session_id = response.json["session"]["id"]
        client.post(f"/api/opname/sessions/{session_id}/lines",
                    json={"value": item["code"], "counted_quantity": 2}, headers=headers)
        client.post("/api/ledger/movements", json={
            "item_code": item["code"], "type": "out", "quantity": 9,
        }, headers=headers)

        response = client.post(f"/api/opname/sessions/{session_id}/commit", headers=headers)
        assert response.status_code == 409
        assert response.json["code"] == "PARTIAL_COMMIT_FAILURE"
        assert response.json["result"]["status"] == "not_committed"
        assert response.json["result"]["failures"][0]["error_code"] == "INSUFFICIENT_STOCK"

    def test_finalize_failure_is_503_with_result(self, client, db_session, headers, monkeypatch):
        item = _create_item(client, headers, opening_quantity=10)
        response = client.post("/api/opname/sessions", json={"mode": "partial"}, headers=headers)
        session_id = response.json["session"]["id"]
        client.post(f"/api/opname/sessions/{session_id}/lines",
                    json={"value": item["code"], "counted_quantity": 6}, headers=headers)

        def unavailable(*args, **kwargs):
            raise OperationalError("INSERT INTO opname_history", {}, Exception("database is locked"))

        monkeypatch.setattr(concurrency.time, "sleep", lambda seconds: None)
        monkeypatch.setattr(history_service, "create_history", unavailable)

        response = client.post(f"/api/opname/sessions/{session_id}/commit", headers=headers)
        assert response.status_code == 503
        assert response.json["code"] == "FINALIZE_PENDING"
        assert response.json["retryable"] is True
        assert response.json["result"]["status"] == "finalize_pending"
        assert [m["quantity"] for m in response.json["result"]["movements"]] == [-4]

        monkeypatch.undo()
        response = client.post(f"/api/opname/sessions/{session_id}/commit", headers=headers)
        assert response.status_code == 200
        assert response.json["result"]["movements"] == []
        assert client.get(f"/api/items/{item['code']}").json["item"]["quantity"] == 6

    def test_cancel(self, client, db_session, headers):
        response = client.post("/api/opname/sessions", json={"mode": "grand"}, headers=headers)
        session_id = response.json["session"]["id"]

        response = client.delete(f"/api/opname/sessions/{session_id}", headers=headers)
        assert response.status_code == 200
        response = client.get("/api/opname/sessions/active", headers=headers)
        assert response.json["session"] is None


class TestMonitoringRoutes:
    def test_invalid_status_filter(self, client, db_session):
        response = client.get("/api/monitoring/items?status=bogus")
        assert response.status_code == 400

    def test_delete_history_requires_list(self, client, db_session, headers):
        response = client.post("/api/monitoring/history/delete", json={"ids": "SO-1"}, headers=headers)
        assert response.status_code == 400
