"""Integration tests for the Custody FastAPI endpoints."""

import base64
import json

import pytest
from custody.api import (
    anchor_router,
    container_router,
    note_router,
    register_custody_exception_handlers,
    scan_router,
    shipment_router,
)
from custody.container.container import Container
from custody.shipment.shipment import Shipment
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean.integrations.fastapi import register_exception_handlers
from protean.utils.globals import current_domain

SUPPLIER = "0x1111111111111111111111111111111111111111"
TRANSPORTER = "0x2222222222222222222222222222222222222222"
WAREHOUSE = "0x3333333333333333333333333333333333333333"
RETAILER = "0x4444444444444444444444444444444444444444"
SECOND_TRANSPORTER = "0x5555555555555555555555555555555555555555"
ADMIN = "0x7777777777777777777777777777777777777777"
OUTSIDER = "0x8888888888888888888888888888888888888888"

SUPPLIER_HEADERS = {"X-Actor-Wallet": SUPPLIER, "X-Actor-Role": "supplier"}
TRANSPORTER_HEADERS = {"X-Actor-Wallet": TRANSPORTER, "X-Actor-Role": "transporter"}
WAREHOUSE_HEADERS = {"X-Actor-Wallet": WAREHOUSE, "X-Actor-Role": "warehouse"}
RETAILER_HEADERS = {"X-Actor-Wallet": RETAILER, "X-Actor-Role": "retailer"}
SECOND_TRANSPORTER_HEADERS = {"X-Actor-Wallet": SECOND_TRANSPORTER, "X-Actor-Role": "transporter"}

SHIPMENT_BODY = {
    "batch_id": "BATCH-API-001",
    "product_name": "Insulin pens",
    "number_of_containers": 2,
    "quantity_per_container": 5,
    "assigned_transporter": TRANSPORTER,
    "assigned_warehouse": WAREHOUSE,
}


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(shipment_router)
    app.include_router(container_router)
    app.include_router(note_router)
    app.include_router(scan_router)
    app.include_router(anchor_router)
    register_exception_handlers(app)
    register_custody_exception_handlers(app)
    return TestClient(app)


def _create(client, **overrides):
    response = client.post("/shipments", json={**SHIPMENT_BODY, **overrides}, headers=SUPPLIER_HEADERS)
    assert response.status_code == 201
    return response.json()["shipment_id"]


def _anchor(client, chain, shipment_id):
    shipment = current_domain.repository_for(Shipment).get(shipment_id)
    record = chain.lock_shipment(
        shipment_id,
        shipment.supplier_wallet,
        shipment.batch_id,
        shipment.number_of_containers,
        shipment.quantity_per_container,
    )
    response = client.post(
        "/anchors",
        json={
            "shipment_id": record.shipment_id,
            "supplier_wallet": record.supplier_wallet,
            "batch_id": record.batch_id,
            "number_of_containers": record.number_of_containers,
            "quantity_per_container": record.quantity_per_container,
            "tx_ref": record.tx_ref,
            "block_ref": record.block_ref,
        },
    )
    assert response.status_code == 200
    return response.json()


def _tokens(client, shipment_id):
    detail = client.get(f"/shipments/{shipment_id}").json()
    return [c["qr_token"] for c in detail["containers"]]


def _scan_all(client, shipment_id, action, headers):
    return [
        client.post("/scans", json={"qr_data": token, "action": action}, headers=headers)
        for token in _tokens(client, shipment_id)
    ]


class TestCreateShipmentEndpoint:
    def test_create_shipment(self, client):
        shipment_id = _create(client)

        shipment = current_domain.repository_for(Shipment).get(shipment_id)
        assert shipment.status == "CREATED"
        assert shipment.supplier_wallet == SUPPLIER
        assert shipment.total_quantity == 10

    def test_missing_actor_headers(self, client):
        response = client.post("/shipments", json=SHIPMENT_BODY)
        assert response.status_code == 422

    def test_non_supplier_is_forbidden(self, client):
        response = client.post("/shipments", json=SHIPMENT_BODY, headers=TRANSPORTER_HEADERS)
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN_ACTOR"

    def test_duplicate_shipment_conflicts(self, client):
        _create(client)
        response = client.post("/shipments", json=SHIPMENT_BODY, headers=SUPPLIER_HEADERS)
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"

    def test_unregistered_transporter_is_rejected(self, client):
        response = client.post(
            "/shipments",
            json={**SHIPMENT_BODY, "assigned_transporter": OUTSIDER},
            headers=SUPPLIER_HEADERS,
        )
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN_ASSIGNMENT"

    def test_invalid_container_count_is_rejected(self, client):
        response = client.post(
            "/shipments",
            json={**SHIPMENT_BODY, "number_of_containers": 0},
            headers=SUPPLIER_HEADERS,
        )
        assert response.status_code == 422


class TestShipmentQueriesEndpoints:
    def test_get_shipment_detail(self, client):
        shipment_id = _create(client)

        response = client.get(f"/shipments/{shipment_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "CREATED"
        assert data["source"] == "ledger"
        assert len(data["containers"]) == 2
        assert all(c["qr_token"] for c in data["containers"])

    def test_unknown_shipment_returns_404(self, client):
        response = client.get("/shipments/0x" + "0" * 64)
        assert response.status_code == 404

    def test_chain_fallback_serves_chain_record(self, client, chain):
        shipment_id = "0x" + "ab" * 32
        chain.lock_shipment(shipment_id, SUPPLIER, "BATCH-CHAIN", 4, 25)

        response = client.get(f"/shipments/{shipment_id}", params={"chain_fallback": True})
        assert response.status_code == 200
        data = response.json()
        assert data["source"] == "chain"
        assert data["total_quantity"] == 100

    def test_list_requires_a_filter(self, client):
        response = client.get("/shipments")
        assert response.status_code == 400

    def test_list_defaults_to_caller_wallet(self, client):
        shipment_id = _create(client)

        response = client.get("/shipments", headers=TRANSPORTER_HEADERS)
        assert response.status_code == 200
        assert [s["shipment_id"] for s in response.json()["items"]] == [shipment_id]

    def test_list_by_status(self, client, chain):
        anchored = _create(client)
        _create(client, batch_id="BATCH-API-002")
        _anchor(client, chain, anchored)

        response = client.get("/shipments", params={"status": "READY_FOR_DISPATCH"})
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["shipment_id"] == anchored

    def test_list_by_unknown_status(self, client):
        response = client.get("/shipments", params={"status": "LOST"})
        assert response.status_code == 400

    def test_status_summary(self, client, chain):
        shipment_id = _create(client)
        _create(client, batch_id="BATCH-API-002")
        _anchor(client, chain, shipment_id)

        summary = client.get("/shipments/summary").json()
        assert summary["CREATED"] == 1
        assert summary["READY_FOR_DISPATCH"] == 1
        assert summary["DELIVERED"] == 0


class TestAnchorEndpoints:
    def test_anchor_readies_shipment(self, client, chain):
        shipment_id = _create(client)

        result = _anchor(client, chain, shipment_id)
        assert result == {"shipment_id": shipment_id, "outcome": "ANCHORED"}

        detail = client.get(f"/shipments/{shipment_id}").json()
        assert detail["status"] == "READY_FOR_DISPATCH"
        assert detail["anchor"]["block_ref"] == 1
        assert {c["status"] for c in detail["containers"]} == {"READY_FOR_PICKUP"}

    def test_reconcile_single_shipment_from_chain(self, client, chain):
        shipment_id = _create(client)
        chain.lock_shipment(shipment_id, SUPPLIER, "BATCH-API-001", 2, 5)

        response = client.post(f"/anchors/{shipment_id}/reconcile")
        assert response.status_code == 200
        assert response.json()["outcome"] == "ANCHORED"

    def test_reconcile_shipment_missing_on_chain(self, client):
        shipment_id = _create(client)

        response = client.post(f"/anchors/{shipment_id}/reconcile")
        assert response.status_code == 404

    def test_sync_pass_and_state(self, client, chain):
        shipment_id = _create(client)
        chain.lock_shipment(shipment_id, SUPPLIER, "BATCH-API-001", 2, 5)
        chain.lock_shipment("0x" + "cd" * 32, SUPPLIER, "BATCH-CHAIN-ONLY", 1, 1)

        report = client.post("/anchors/sync").json()
        assert report["processed"] == 2
        assert report["outcomes"] == {"ANCHORED": 1, "CREATED": 1}
        assert report["error"] is None

        state = client.get("/anchors/sync").json()
        assert state["status"] == "IDLE"
        assert state["last_synced_block"] == 2
        assert state["events_processed"] == 2

    def test_sync_reports_chain_outage(self, client, chain):
        chain.lock_shipment("0x" + "cd" * 32, SUPPLIER, "BATCH-CHAIN-ONLY", 1, 1)
        chain.configure(available=False)

        report = client.post("/anchors/sync").json()
        assert report["error"] is not None
        assert client.get("/anchors/sync").json()["status"] == "ERROR"

    def test_stop_and_resume(self, client, chain):
        assert client.post("/anchors/sync/stop").status_code == 200
        assert client.get("/anchors/sync").json()["status"] == "STOPPED"

        chain.lock_shipment("0x" + "cd" * 32, SUPPLIER, "BATCH-CHAIN-ONLY", 1, 1)
        assert client.post("/anchors/sync").json()["processed"] == 0

        assert client.post("/anchors/sync/resume").status_code == 200
        assert client.post("/anchors/sync").json()["processed"] == 1


class TestScanEndpoints:
    def test_accepted_scan_returns_201(self, client, chain):
        shipment_id = _create(client)
        _anchor(client, chain, shipment_id)
        token = _tokens(client, shipment_id)[0]

        response = client.post(
            "/scans",
            json={"qr_data": token, "action": "pickup", "location": "Dock 4"},
            headers=TRANSPORTER_HEADERS,
        )
        assert response.status_code == 201
        data = response.json()
        assert data["result"] == "ACCEPTED"
        assert data["status_before"] == "READY_FOR_PICKUP"
        assert data["status_after"] == "PICKED_UP"
        assert data["replayed"] is False

    def test_wrong_actor_scan_is_recorded_and_forbidden(self, client, chain):
        shipment_id = _create(client)
        _anchor(client, chain, shipment_id)
        token = _tokens(client, shipment_id)[0]

        response = client.post(
            "/scans",
            json={"qr_data": token, "action": "PICKUP"},
            headers=SECOND_TRANSPORTER_HEADERS,
        )
        assert response.status_code == 403
        data = response.json()
        assert data["result"] == "REJECTED"
        assert data["code"] == "FORBIDDEN_ACTOR"

        history = client.get("/scans", params={"actor_wallet": SECOND_TRANSPORTER}).json()
        assert history["total"] == 1
        assert history["items"][0]["result"] == "REJECTED"

    def test_out_of_order_scan_conflicts(self, client, chain):
        shipment_id = _create(client)
        _anchor(client, chain, shipment_id)
        token = _tokens(client, shipment_id)[0]

        response = client.post("/scans", json={"qr_data": token, "action": "RECEIVE"}, headers=WAREHOUSE_HEADERS)
        assert response.status_code == 409
        assert response.json()["code"] == "STALE_OR_OUT_OF_ORDER_SCAN"

    def test_garbage_token_is_rejected(self, client):
        response = client.post(
            "/scans",
            json={"qr_data": "not-a-token", "action": "PICKUP"},
            headers=TRANSPORTER_HEADERS,
        )
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_TOKEN"

    def test_idempotent_retry_replays_outcome(self, client, chain):
        shipment_id = _create(client)
        _anchor(client, chain, shipment_id)
        token = _tokens(client, shipment_id)[0]
        body = {"qr_data": token, "action": "PICKUP", "idempotency_key": "retry-1"}

        first = client.post("/scans", json=body, headers=TRANSPORTER_HEADERS)
        second = client.post("/scans", json=body, headers=TRANSPORTER_HEADERS)
        assert first.status_code == second.status_code == 201
        assert second.json()["scan_id"] == first.json()["scan_id"]
        assert second.json()["replayed"] is True

    def test_list_scans_requires_a_filter(self, client):
        assert client.get("/scans").status_code == 400


class TestCustodyFlowEndpoints:
    def test_two_leg_journey(self, client, chain):
        shipment_id = _create(client)
        _anchor(client, chain, shipment_id)

        assert all(r.status_code == 201 for r in _scan_all(client, shipment_id, "PICKUP", TRANSPORTER_HEADERS))
        assert client.get(f"/shipments/{shipment_id}").json()["status"] == "IN_TRANSIT"

        _scan_all(client, shipment_id, "RECEIVE", WAREHOUSE_HEADERS)
        assert client.get(f"/shipments/{shipment_id}").json()["status"] == "AT_WAREHOUSE"

        response = client.put(
            f"/shipments/{shipment_id}/next-leg",
            json={"next_transporter": SECOND_TRANSPORTER, "retailer": RETAILER},
            headers=WAREHOUSE_HEADERS,
        )
        assert response.status_code == 200
        assert client.post(f"/shipments/{shipment_id}/dispatch", headers=WAREHOUSE_HEADERS).status_code == 200

        detail = client.get(f"/shipments/{shipment_id}").json()
        assert detail["status"] == "READY_FOR_DISPATCH"
        assert detail["leg"] == 2

        _scan_all(client, shipment_id, "PICKUP", SECOND_TRANSPORTER_HEADERS)
        _scan_all(client, shipment_id, "DELIVER", RETAILER_HEADERS)

        detail = client.get(f"/shipments/{shipment_id}").json()
        assert detail["status"] == "DELIVERED"
        assert {c["status"] for c in detail["containers"]} == {"DELIVERED"}

        scans = client.get(f"/shipments/{shipment_id}/scans", params={"per_page": 100}).json()
        assert scans["total"] == 8

    def test_container_stats(self, client, chain):
        shipment_id = _create(client)
        _anchor(client, chain, shipment_id)
        token = _tokens(client, shipment_id)[0]
        client.post("/scans", json={"qr_data": token, "action": "PICKUP"}, headers=TRANSPORTER_HEADERS)

        stats = client.get(f"/shipments/{shipment_id}/containers/stats").json()
        assert stats["counts"]["PICKED_UP"] == 1
        assert stats["counts"]["READY_FOR_PICKUP"] == 1
        assert stats["awaiting"] == "PICKED_UP"
        assert stats["reached"] == 1

    def test_progress_view(self, client, chain):
        shipment_id = _create(client)
        _anchor(client, chain, shipment_id)
        _scan_all(client, shipment_id, "PICKUP", TRANSPORTER_HEADERS)

        progress = client.get(f"/shipments/{shipment_id}/progress").json()
        assert progress["status"] == "IN_TRANSIT"
        assert progress["anchored"] is True
        assert progress["picked_up_count"] == 2
        assert progress["ready_count"] == 0

    def test_manual_transition_before_quorum_conflicts(self, client, chain):
        shipment_id = _create(client)
        _anchor(client, chain, shipment_id)

        response = client.post(
            f"/shipments/{shipment_id}/transitions",
            json={"target_status": "IN_TRANSIT"},
            headers=TRANSPORTER_HEADERS,
        )
        assert response.status_code == 409

    def test_forbidden_transition(self, client, chain):
        shipment_id = _create(client)
        _anchor(client, chain, shipment_id)

        response = client.post(
            f"/shipments/{shipment_id}/transitions",
            json={"target_status": "DELIVERED"},
            headers=RETAILER_HEADERS,
        )
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN_TRANSITION"

    def test_reassign_transporter(self, client):
        shipment_id = _create(client)

        response = client.put(
            f"/shipments/{shipment_id}/assignments",
            json={"slot": "assigned_transporter", "wallet": SECOND_TRANSPORTER},
            headers=SUPPLIER_HEADERS,
        )
        assert response.status_code == 200
        shipment = current_domain.repository_for(Shipment).get(shipment_id)
        assert shipment.assigned_transporter == SECOND_TRANSPORTER

    def test_amend_details(self, client):
        shipment_id = _create(client)

        response = client.patch(
            f"/shipments/{shipment_id}",
            json={"product_name": "Insulin pens (cold chain)"},
            headers=SUPPLIER_HEADERS,
        )
        assert response.status_code == 200
        shipment = current_domain.repository_for(Shipment).get(shipment_id)
        assert shipment.product_name == "Insulin pens (cold chain)"


class TestDocumentAndNoteEndpoints:
    def test_attach_and_remove_document(self, client, document_store):
        shipment_id = _create(client)
        content = base64.b64encode(json.dumps({"temperature": "2-8C"}).encode()).decode()

        response = client.post(
            f"/shipments/{shipment_id}/documents",
            json={"filename": "coa.json", "content": content, "content_type": "application/json"},
            headers=SUPPLIER_HEADERS,
        )
        assert response.status_code == 201
        reference = response.json()["reference"]
        assert reference in document_store.files

        response = client.delete(
            f"/shipments/{shipment_id}/documents",
            params={"reference": reference},
            headers=SUPPLIER_HEADERS,
        )
        assert response.status_code == 200
        assert client.get(f"/shipments/{shipment_id}").json()["documents"] == []

    def test_document_store_outage_is_retryable(self, client, document_store):
        shipment_id = _create(client)
        document_store.configure(available=False)

        response = client.post(
            f"/shipments/{shipment_id}/documents",
            json={"filename": "coa.json", "content": base64.b64encode(b"{}").decode()},
            headers=SUPPLIER_HEADERS,
        )
        assert response.status_code == 503

    def test_add_custody_note(self, client, chain):
        shipment_id = _create(client)
        _anchor(client, chain, shipment_id)
        container = current_domain.repository_for(Container).get(_container_id(client, shipment_id))

        response = client.post(
            f"/shipments/{shipment_id}/notes",
            json={
                "note": "Seal broken on arrival",
                "note_type": "DAMAGE",
                "severity": "HIGH",
                "container_id": container.container_id,
            },
            headers=TRANSPORTER_HEADERS,
        )
        assert response.status_code == 201

        notes = client.get(f"/shipments/{shipment_id}").json()["notes"]
        assert notes[0]["note_type"] == "DAMAGE"
        assert notes[0]["raised_by"] == TRANSPORTER
        assert notes[0]["note_id"] == response.json()["note_id"]
        assert notes[0]["status"] == "OPEN"

    def test_admin_may_add_note(self, client):
        shipment_id = _create(client)

        response = client.post(
            f"/shipments/{shipment_id}/notes",
            json={"note": "Audit hold lifted"},
            headers={"X-Actor-Wallet": ADMIN, "X-Actor-Role": "admin"},
        )
        assert response.status_code == 201

    def test_claimed_admin_role_is_checked(self, client):
        shipment_id = _create(client)

        response = client.post(
            f"/shipments/{shipment_id}/notes",
            json={"note": "Audit hold lifted"},
            headers={"X-Actor-Wallet": OUTSIDER, "X-Actor-Role": "admin"},
        )
        assert response.status_code == 403

    def test_note_follow_up_lifecycle(self, client):
        shipment_id = _create(client)
        note_id = client.post(
            f"/shipments/{shipment_id}/notes",
            json={"note": "Container 3 is two units short", "note_type": "SHORTFALL"},
            headers=TRANSPORTER_HEADERS,
        ).json()["note_id"]

        open_notes = client.get("/notes/open", headers=SUPPLIER_HEADERS).json()
        assert [n["note_id"] for n in open_notes["items"]] == [note_id]

        response = client.post(f"/shipments/{shipment_id}/notes/{note_id}/acknowledge", headers=SUPPLIER_HEADERS)
        assert response.json() == {"note_id": note_id, "status": "ACKNOWLEDGED"}

        response = client.post(f"/shipments/{shipment_id}/notes/{note_id}/investigate", headers=SUPPLIER_HEADERS)
        assert response.json()["status"] == "INVESTIGATING"

        response = client.post(
            f"/shipments/{shipment_id}/notes/{note_id}/resolve",
            json={"resolution": "Credit note issued"},
            headers=SUPPLIER_HEADERS,
        )
        assert response.json()["status"] == "RESOLVED"

        assert client.get("/notes/open", params={"supplier": SUPPLIER}).json()["total"] == 0

    def test_only_supplier_follows_up_notes(self, client):
        shipment_id = _create(client)
        note_id = client.post(
            f"/shipments/{shipment_id}/notes", json={"note": "Late pickup"}, headers=TRANSPORTER_HEADERS
        ).json()["note_id"]

        response = client.post(
            f"/shipments/{shipment_id}/notes/{note_id}/acknowledge", headers=TRANSPORTER_HEADERS
        )
        assert response.status_code == 403

    def test_closed_note_is_a_conflict(self, client):
        shipment_id = _create(client)
        note_id = client.post(
            f"/shipments/{shipment_id}/notes", json={"note": "Late pickup"}, headers=TRANSPORTER_HEADERS
        ).json()["note_id"]
        client.post(
            f"/shipments/{shipment_id}/notes/{note_id}/resolve",
            json={"resolution": "Duplicate", "dismiss": True},
            headers=SUPPLIER_HEADERS,
        )

        response = client.post(f"/shipments/{shipment_id}/notes/{note_id}/acknowledge", headers=SUPPLIER_HEADERS)
        assert response.status_code == 409

    def test_open_notes_require_a_supplier(self, client):
        assert client.get("/notes/open").status_code == 400


class TestContainerEndpoint:
    def test_container_with_parent_shipment(self, client):
        shipment_id = _create(client)
        container_id = _container_id(client, shipment_id)

        response = client.get(f"/containers/{container_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["container"]["container_id"] == container_id
        assert data["container"]["ordinal"] == 1
        assert data["shipment"]["shipment_id"] == shipment_id
        assert data["shipment"]["total_quantity"] == 10

    def test_unknown_container(self, client):
        assert client.get("/containers/CNT-000000000000-0001").status_code == 404


def _container_id(client, shipment_id):
    return client.get(f"/shipments/{shipment_id}").json()["containers"][0]["container_id"]
