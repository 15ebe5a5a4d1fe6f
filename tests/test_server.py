"""
Tests for stitchfloor.server
============================

HTTP surface over an isolated engine: lot intake, the action endpoint
and the error-to-status mapping.
"""

import pytest
from fastapi.testclient import TestClient

from stitchfloor.errors import (
    ConcurrentModification,
    CycleDetected,
    DependencyUnsatisfied,
    MachineTypeMismatch,
    NotFound,
    PersistenceFailure,
    WorkflowError,
    WorkUnavailable,
)
from stitchfloor.server import create_app, status_for


LOT_PAYLOAD = {
    "lotNumber": "L1",
    "fabricName": "Jersey",
    "parsedStyles": [{"articleNumber": "A1", "styleName": "Test Garment"}],
    "articleSizes": {"A1": {"sizes": "S:M", "ratios": "1:1"}},
    "articleProcedures": {"A1": "chain"},
    "rolls": [{"rollNumber": 1, "colorName": "Blue", "layerCount": 10}],
}


@pytest.fixture
def client(engine, operators):
    return TestClient(create_app(engine))


@pytest.fixture
def items(client):
    response = client.post("/lots", json=LOT_PAYLOAD)
    assert response.status_code == 201
    return {f"{i['size']}:{i['operation']}": i["id"] for i in response.json()["work_items"]}


def act(client, item_id, action, **body):
    return client.post(f"/work-items/{item_id}/{action}", json=body)


class TestStatusMapping:

    @pytest.mark.parametrize("error,status", [
        (NotFound("Lot", "x"), 404),
        (WorkUnavailable("w", "busy"), 409),
        (DependencyUnsatisfied("w", ["a"]), 409),
        (MachineTypeMismatch("w", "overlock", ["sn"]), 422),
        (CycleDetected(["a", "b"]), 422),
        (PersistenceFailure("down"), 503),
        (ConcurrentModification("w", 1, 2), 503),
        (WorkflowError("other"), 400),
    ])
    def test_status_for(self, error, status):
        assert status_for(error) == status


class TestLots:

    def test_create_lot(self, client):
        response = client.post("/lots", json=LOT_PAYLOAD)
        body = response.json()
        assert response.status_code == 201
        assert body["total_pieces"] == 20
        assert len(body["work_items"]) == 4
        assert body["lot"]["rolls"][0]["pieces"] == 20

    def test_create_lot_twice_conflicts(self, client, items):
        response = client.post("/lots", json=LOT_PAYLOAD)
        assert response.status_code == 409
        assert response.json()["code"] == "WORK_UNAVAILABLE"

    def test_invalid_payload(self, client):
        response = client.post("/lots", json={"rolls": []})
        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_PAYLOAD"

    def test_items_ready_and_progress(self, client, items):
        listed = client.get("/lots/L1/items").json()
        assert [i["sequence_position"] for i in listed] == [1.0, 2.0, 3.0, 4.0]

        ready = client.get("/lots/L1/ready").json()
        assert {i["operation"] for i in ready} == {"side_seam"}

        progress = client.get("/lots/L1/progress").json()
        assert progress["total_items"] == 4
        assert progress["percent_complete"] == 0.0

    def test_unknown_lot(self, client):
        response = client.get("/lots/nope")
        assert response.status_code == 404
        assert response.json()["details"] == {"kind": "Lot", "id": "nope"}

    def test_close_and_delete(self, client, items):
        assert client.post("/lots/L1/close").json()["status"] == "closed"
        response = client.delete("/lots/L1")
        assert response.json() == {"deleted": "L1", "work_items_removed": 4}
        assert client.get("/lots/L1/items").status_code == 404


class TestWorkItemActions:

    def test_self_assign_approve_start_complete(self, client, items):
        seam = items["S:side_seam"]
        assert act(client, seam, "self-assign", actor_id="op-ol").json()["status"] == "self_assigned"
        assert [i["id"] for i in client.get("/approvals").json()] == [seam]
        assert act(client, seam, "approve", actor_id="sup-1").json()["status"] == "assigned"
        assert act(client, seam, "start", actor_id="op-ol").json()["status"] == "in_progress"

        done = act(client, seam, "complete", actor_id="op-ol",
                   completion_data={"completed_pieces": 9})
        assert done.json()["completed_pieces"] == 9
        assert client.get(f"/work-items/{items['S:label_attach']}").json()["status"] == "ready"

    def test_reject(self, client, items):
        seam = items["S:side_seam"]
        act(client, seam, "self-assign", actor_id="op-ol")
        body = act(client, seam, "reject", actor_id="sup-1", reason="busy").json()
        assert body["status"] == "ready"
        assert body["rejection_reason"] == "busy"

    def test_assign_machine_mismatch(self, client, items):
        response = act(client, items["S:side_seam"], "assign", actor_id="sup-1", operator_id="op-sn")
        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "MACHINE_TYPE_MISMATCH"
        assert body["details"]["required_machine"] == "overlock"

    def test_assign_requires_operator(self, client, items):
        response = act(client, items["S:side_seam"], "assign", actor_id="sup-1")
        assert response.status_code == 422

    def test_assign_pending_item(self, client, items):
        response = act(client, items["S:label_attach"], "assign", actor_id="sup-1", operator_id="op-sn")
        assert response.status_code == 409
        assert response.json()["code"] == "DEPENDENCY_UNSATISFIED"

    def test_reassign(self, client, items):
        seam = items["S:side_seam"]
        act(client, seam, "assign", actor_id="sup-1", operator_id="op-ol")
        body = act(client, seam, "reassign", actor_id="sup-1", operator_id="op-both").json()
        assert body["assigned_operator"] == "op-both"
        assert client.get("/operators/op-both/queue").json()[0]["id"] == seam
        assert client.get("/operators/op-ol/queue").json() == []

    def test_unknown_action(self, client, items):
        response = act(client, items["S:side_seam"], "teleport", actor_id="sup-1")
        assert response.status_code == 404

    def test_unknown_item(self, client):
        assert client.get("/work-items/nope").status_code == 404
        assert act(client, "nope", "start", actor_id="op-ol").status_code == 404

    def test_compatible_operators(self, client, items):
        ops = client.get(f"/work-items/{items['S:side_seam']}/operators").json()
        assert [o["id"] for o in ops] == ["op-ol", "op-both", "op-multi"]

    def test_available_work(self, client, items):
        available = client.get("/operators/op-ol/available").json()
        assert {i["operation"] for i in available} == {"side_seam"}


class TestEmergency:

    def test_insert_recalculate_resume(self, client, items):
        seam = items["S:side_seam"]
        act(client, seam, "assign", actor_id="sup-1", operator_id="op-ol")
        act(client, seam, "start", actor_id="op-ol")

        response = client.post("/lots/L1/emergency", json={
            "operation": "rework", "machine_type": "overlock",
            "insertion_point": "after_current", "reason": "open seam",
        })
        assert response.status_code == 201
        em = response.json()
        assert em["sequence_position"] == 2.0
        assert em["is_emergency_insertion"] is True

        paused = client.get(f"/work-items/{items['M:side_seam']}").json()
        assert paused["status"] == "paused_for_insertion"

        assert client.post("/lots/L1/recalculate", json={"emergency_id": em["id"]}).status_code == 200

        resumed = act(client, em["id"], "resume", actor_id="sup-1").json()
        assert [i["id"] for i in resumed] == [items["M:side_seam"]]

    def test_bad_insertion_point(self, client, items):
        response = client.post("/lots/L1/emergency", json={
            "operation": "rework", "machine_type": "overlock", "insertion_point": "sideways",
        })
        assert response.status_code == 422


class TestOperatorsAndHealth:

    def test_register_operator(self, client):
        response = client.post("/operators", json={"id": "op-9", "machines": ["flatlock"]})
        assert response.status_code == 201
        assert response.json()["role"] == "operator"

    def test_health(self, client):
        body = client.get("/health").json()
        assert body == {
            "status": "healthy",
            "store": "InMemoryWorkItemStore",
            "notifications": "recording",
            "lots": 0,
        }
