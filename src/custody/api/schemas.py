"""Pydantic request/response schemas for the Custody API.

These are external contracts (anti-corruption layer) — separate from
internal Protean commands. The acting wallet and role travel in the
X-Actor-Wallet / X-Actor-Role headers, never in the body.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shipment Request Schemas
# ---------------------------------------------------------------------------
class CreateShipmentRequest(BaseModel):
    shipment_id: str | None = None
    batch_id: str
    product_name: str
    number_of_containers: int = Field(ge=1)
    quantity_per_container: int = Field(ge=1)
    assigned_transporter: str | None = None
    assigned_warehouse: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "batch_id": "BATCH-2026-0042",
                    "product_name": "Insulin pens",
                    "number_of_containers": 3,
                    "quantity_per_container": 10,
                    "assigned_transporter": "0x2222222222222222222222222222222222222222",
                    "assigned_warehouse": "0x3333333333333333333333333333333333333333",
                }
            ]
        }
    }


class AmendShipmentRequest(BaseModel):
    product_name: str | None = None
    batch_id: str | None = None
    number_of_containers: int | None = Field(default=None, ge=1)
    quantity_per_container: int | None = Field(default=None, ge=1)


class ReassignRequest(BaseModel):
    slot: str = Field(description="assigned_transporter or assigned_warehouse")
    wallet: str


class StageNextLegRequest(BaseModel):
    next_transporter: str | None = None
    retailer: str | None = None


class TransitionRequest(BaseModel):
    target_status: str
    note: str | None = None


class AttachDocumentRequest(BaseModel):
    filename: str
    content: str = Field(description="Base64-encoded file content")
    content_type: str | None = None


class CustodyNoteRequest(BaseModel):
    note: str
    note_type: str = "OTHER"
    severity: str = "LOW"
    container_id: str | None = None


class ResolveNoteRequest(BaseModel):
    resolution: str
    dismiss: bool = False


# ---------------------------------------------------------------------------
# Scan Schemas
# ---------------------------------------------------------------------------
class ScanRequest(BaseModel):
    qr_data: str
    action: str
    location: str | None = None
    idempotency_key: str | None = None
    tx_ref: str | None = None


class ScanResponse(BaseModel):
    scan_id: str
    result: str
    code: str | None = None
    reason: str | None = None
    container_id: str | None = None
    shipment_id: str | None = None
    action: str
    status_before: str | None = None
    status_after: str | None = None
    scanned_at: str | None = None
    replayed: bool = False


# ---------------------------------------------------------------------------
# Anchor Schemas
# ---------------------------------------------------------------------------
class ReconcileAnchorRequest(BaseModel):
    shipment_id: str
    supplier_wallet: str
    batch_id: str
    number_of_containers: int = Field(ge=1)
    quantity_per_container: int = Field(ge=1)
    tx_ref: str
    block_ref: int = Field(ge=0)
    anchored_at: datetime | None = None


class ReconcileResponse(BaseModel):
    shipment_id: str
    outcome: str


class SyncReportResponse(BaseModel):
    from_block: int
    to_block: int
    processed: int
    outcomes: dict
    skipped: list
    error: str | None = None


class SyncStateResponse(BaseModel):
    sync_id: str
    status: str
    last_synced_block: int
    events_processed: int
    last_error: str | None = None
    last_sync_at: datetime | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class ShipmentIdResponse(BaseModel):
    shipment_id: str


class DocumentReferenceResponse(BaseModel):
    reference: str


class NoteIdResponse(BaseModel):
    note_id: str


class NoteStatusResponse(BaseModel):
    note_id: str
    status: str


class TransitionResponse(BaseModel):
    shipment_id: str
    status: str


class ProgressResponse(BaseModel):
    shipment_id: str
    status: str | None = None
    leg: int
    anchored: bool
    total_containers: int
    created_count: int
    ready_count: int
    picked_up_count: int
    received_count: int
    delivered_count: int


class StatusResponse(BaseModel):
    status: str = "ok"
