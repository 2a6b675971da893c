"""FastAPI routes for the Custody domain: shipments, containers, notes, scans and anchors."""

from fastapi import APIRouter, Header, Query
from fastapi.responses import JSONResponse
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from custody.anchoring.reconciler import AnchorReconciler
from custody.anchoring.reconciliation import ReconcileAnchor
from custody.anchoring.sync_state import load_sync_state
from custody.api.errors import CODE_STATUS
from custody.api.schemas import (
    AmendShipmentRequest,
    AttachDocumentRequest,
    CreateShipmentRequest,
    CustodyNoteRequest,
    DocumentReferenceResponse,
    NoteIdResponse,
    NoteStatusResponse,
    ProgressResponse,
    ReassignRequest,
    ReconcileAnchorRequest,
    ReconcileResponse,
    ResolveNoteRequest,
    ScanRequest,
    ScanResponse,
    ShipmentIdResponse,
    StageNextLegRequest,
    StatusResponse,
    SyncReportResponse,
    SyncStateResponse,
    TransitionRequest,
    TransitionResponse,
)
from custody.ledger import queries
from custody.projections.shipment_progress import ShipmentProgressView
from custody.scanning.validator import ScanContainer
from custody.shipment.assignment import ReassignCustody, StageNextLeg
from custody.shipment.creation import CreateShipment
from custody.shipment.details import AmendShipmentDetails
from custody.shipment.dispatch import DispatchNextLeg
from custody.shipment.documents import AttachDocument, RemoveDocument
from custody.shipment.notes import AcknowledgeCustodyNote, AddCustodyNote, InvestigateCustodyNote, ResolveCustodyNote
from custody.shipment.transitions import AdvanceShipment

# ---------------------------------------------------------------------------
# Shipment Router
# ---------------------------------------------------------------------------
shipment_router = APIRouter(prefix="/shipments", tags=["shipments"])


@shipment_router.post("", status_code=201, response_model=ShipmentIdResponse)
async def create_shipment(
    body: CreateShipmentRequest,
    x_actor_wallet: str = Header(...),
    x_actor_role: str = Header(...),
) -> ShipmentIdResponse:
    command = CreateShipment(
        shipment_id=body.shipment_id,
        supplier_wallet=x_actor_wallet,
        actor_role=x_actor_role,
        batch_id=body.batch_id,
        product_name=body.product_name,
        number_of_containers=body.number_of_containers,
        quantity_per_container=body.quantity_per_container,
        assigned_transporter=body.assigned_transporter,
        assigned_warehouse=body.assigned_warehouse,
    )
    shipment_id = current_domain.process(command, asynchronous=False)
    return ShipmentIdResponse(shipment_id=shipment_id)


@shipment_router.get("")
async def list_shipments(
    status: str | None = None,
    wallet: str | None = None,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=queries.MAX_PER_PAGE),
    x_actor_wallet: str | None = Header(default=None),
) -> dict:
    """Shipments by status, or shipments where a wallet holds custody (defaults to the caller)."""
    if status:
        return queries.shipments_by_status(status, page=page, per_page=per_page)
    wallet = wallet or x_actor_wallet
    if not wallet:
        raise ValidationError({"wallet": ["Filter by status or wallet"]})
    return queries.shipments_for_actor(wallet, page=page, per_page=per_page)


@shipment_router.get("/summary")
async def shipment_status_summary() -> dict:
    return queries.status_summary()


@shipment_router.get("/{shipment_id}")
async def get_shipment(shipment_id: str, chain_fallback: bool = False) -> dict:
    return queries.shipment_detail(shipment_id, chain_fallback=chain_fallback)


@shipment_router.get("/{shipment_id}/containers/stats")
async def get_container_stats(shipment_id: str) -> dict:
    return queries.container_stats(shipment_id)


@shipment_router.get("/{shipment_id}/progress", response_model=ProgressResponse)
async def get_progress(shipment_id: str) -> ProgressResponse:
    view = current_domain.repository_for(ShipmentProgressView).get(shipment_id)
    return ProgressResponse(
        shipment_id=str(view.shipment_id),
        status=view.status,
        leg=view.leg or 1,
        anchored=bool(view.anchored),
        total_containers=view.total_containers or 0,
        created_count=view.created_count or 0,
        ready_count=view.ready_count or 0,
        picked_up_count=view.picked_up_count or 0,
        received_count=view.received_count or 0,
        delivered_count=view.delivered_count or 0,
    )


@shipment_router.get("/{shipment_id}/scans")
async def get_shipment_scans(
    shipment_id: str,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=queries.MAX_PER_PAGE),
) -> dict:
    return queries.scan_history(shipment_id=shipment_id, page=page, per_page=per_page)


@shipment_router.patch("/{shipment_id}", response_model=StatusResponse)
async def amend_shipment(
    shipment_id: str,
    body: AmendShipmentRequest,
    x_actor_wallet: str = Header(...),
    x_actor_role: str = Header(...),
) -> StatusResponse:
    command = AmendShipmentDetails(
        shipment_id=shipment_id,
        product_name=body.product_name,
        batch_id=body.batch_id,
        number_of_containers=body.number_of_containers,
        quantity_per_container=body.quantity_per_container,
        actor_wallet=x_actor_wallet,
        actor_role=x_actor_role,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@shipment_router.put("/{shipment_id}/assignments", response_model=StatusResponse)
async def reassign_custody(
    shipment_id: str,
    body: ReassignRequest,
    x_actor_wallet: str = Header(...),
    x_actor_role: str = Header(...),
) -> StatusResponse:
    command = ReassignCustody(
        shipment_id=shipment_id,
        slot=body.slot,
        wallet=body.wallet,
        actor_wallet=x_actor_wallet,
        actor_role=x_actor_role,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@shipment_router.put("/{shipment_id}/next-leg", response_model=StatusResponse)
async def stage_next_leg(
    shipment_id: str,
    body: StageNextLegRequest,
    x_actor_wallet: str = Header(...),
    x_actor_role: str = Header(...),
) -> StatusResponse:
    command = StageNextLeg(
        shipment_id=shipment_id,
        next_transporter=body.next_transporter,
        retailer=body.retailer,
        actor_wallet=x_actor_wallet,
        actor_role=x_actor_role,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@shipment_router.post("/{shipment_id}/dispatch", response_model=StatusResponse)
async def dispatch_next_leg(
    shipment_id: str,
    x_actor_wallet: str = Header(...),
    x_actor_role: str = Header(...),
) -> StatusResponse:
    command = DispatchNextLeg(shipment_id=shipment_id, actor_wallet=x_actor_wallet, actor_role=x_actor_role)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@shipment_router.post("/{shipment_id}/transitions", response_model=TransitionResponse)
async def request_transition(
    shipment_id: str,
    body: TransitionRequest,
    x_actor_wallet: str = Header(...),
    x_actor_role: str = Header(...),
) -> TransitionResponse:
    command = AdvanceShipment(
        shipment_id=shipment_id,
        target_status=body.target_status,
        actor_wallet=x_actor_wallet,
        actor_role=x_actor_role,
        note=body.note,
    )
    status = current_domain.process(command, asynchronous=False)
    return TransitionResponse(shipment_id=shipment_id, status=status)


@shipment_router.post("/{shipment_id}/documents", status_code=201, response_model=DocumentReferenceResponse)
async def attach_document(
    shipment_id: str,
    body: AttachDocumentRequest,
    x_actor_wallet: str = Header(...),
    x_actor_role: str = Header(...),
) -> DocumentReferenceResponse:
    command = AttachDocument(
        shipment_id=shipment_id,
        filename=body.filename,
        content=body.content,
        content_type=body.content_type,
        actor_wallet=x_actor_wallet,
        actor_role=x_actor_role,
    )
    reference = current_domain.process(command, asynchronous=False)
    return DocumentReferenceResponse(reference=reference)


@shipment_router.delete("/{shipment_id}/documents", response_model=StatusResponse)
async def remove_document(
    shipment_id: str,
    reference: str,
    x_actor_wallet: str = Header(...),
    x_actor_role: str = Header(...),
) -> StatusResponse:
    command = RemoveDocument(
        shipment_id=shipment_id,
        reference=reference,
        actor_wallet=x_actor_wallet,
        actor_role=x_actor_role,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@shipment_router.post("/{shipment_id}/notes", status_code=201, response_model=NoteIdResponse)
async def add_custody_note(
    shipment_id: str,
    body: CustodyNoteRequest,
    x_actor_wallet: str = Header(...),
    x_actor_role: str = Header(...),
) -> NoteIdResponse:
    command = AddCustodyNote(
        shipment_id=shipment_id,
        note=body.note,
        note_type=body.note_type,
        severity=body.severity,
        container_id=body.container_id,
        actor_wallet=x_actor_wallet,
        actor_role=x_actor_role,
    )
    note_id = current_domain.process(command, asynchronous=False)
    return NoteIdResponse(note_id=note_id)


@shipment_router.post("/{shipment_id}/notes/{note_id}/acknowledge", response_model=NoteStatusResponse)
async def acknowledge_custody_note(
    shipment_id: str,
    note_id: str,
    x_actor_wallet: str = Header(...),
    x_actor_role: str = Header(...),
) -> NoteStatusResponse:
    command = AcknowledgeCustodyNote(
        shipment_id=shipment_id, note_id=note_id, actor_wallet=x_actor_wallet, actor_role=x_actor_role
    )
    status = current_domain.process(command, asynchronous=False)
    return NoteStatusResponse(note_id=note_id, status=status)


@shipment_router.post("/{shipment_id}/notes/{note_id}/investigate", response_model=NoteStatusResponse)
async def investigate_custody_note(
    shipment_id: str,
    note_id: str,
    x_actor_wallet: str = Header(...),
    x_actor_role: str = Header(...),
) -> NoteStatusResponse:
    command = InvestigateCustodyNote(
        shipment_id=shipment_id, note_id=note_id, actor_wallet=x_actor_wallet, actor_role=x_actor_role
    )
    status = current_domain.process(command, asynchronous=False)
    return NoteStatusResponse(note_id=note_id, status=status)


@shipment_router.post("/{shipment_id}/notes/{note_id}/resolve", response_model=NoteStatusResponse)
async def resolve_custody_note(
    shipment_id: str,
    note_id: str,
    body: ResolveNoteRequest,
    x_actor_wallet: str = Header(...),
    x_actor_role: str = Header(...),
) -> NoteStatusResponse:
    command = ResolveCustodyNote(
        shipment_id=shipment_id,
        note_id=note_id,
        resolution=body.resolution,
        dismiss=body.dismiss,
        actor_wallet=x_actor_wallet,
        actor_role=x_actor_role,
    )
    status = current_domain.process(command, asynchronous=False)
    return NoteStatusResponse(note_id=note_id, status=status)


# ---------------------------------------------------------------------------
# Note Router
# ---------------------------------------------------------------------------
note_router = APIRouter(prefix="/notes", tags=["notes"])


@note_router.get("/open")
async def list_open_notes(
    supplier: str | None = None,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=queries.MAX_PER_PAGE),
    x_actor_wallet: str | None = Header(default=None),
) -> dict:
    """Unresolved notes on a supplier's shipments (defaults to the caller)."""
    supplier = supplier or x_actor_wallet
    if not supplier:
        raise ValidationError({"supplier": ["Supplier wallet is required"]})
    return queries.open_notes_for_supplier(supplier, page=page, per_page=per_page)


# ---------------------------------------------------------------------------
# Container Router
# ---------------------------------------------------------------------------
container_router = APIRouter(prefix="/containers", tags=["containers"])


@container_router.get("/{container_id}")
async def get_container(container_id: str) -> dict:
    return queries.container_detail(container_id)


# ---------------------------------------------------------------------------
# Scan Router
# ---------------------------------------------------------------------------
scan_router = APIRouter(prefix="/scans", tags=["scans"])


@scan_router.post("", response_model=ScanResponse)
async def scan_container(
    body: ScanRequest,
    x_actor_wallet: str = Header(...),
    x_actor_role: str = Header(...),
):
    """Record a QR scan.

    Accepted scans answer 201. Rejected scans are recorded too and answer
    with the status matching their rejection code, carrying the same body.
    """
    command = ScanContainer(
        raw_token=body.qr_data,
        action=body.action.strip().upper(),
        actor_wallet=x_actor_wallet,
        actor_role=x_actor_role,
        location=body.location,
        idempotency_key=body.idempotency_key,
        tx_ref=body.tx_ref,
    )
    outcome = current_domain.process(command, asynchronous=False)
    status_code = 201 if outcome["result"] == "ACCEPTED" else CODE_STATUS.get(outcome["code"], 400)
    return JSONResponse(status_code=status_code, content=ScanResponse(**outcome).model_dump())


@scan_router.get("")
async def list_scans(
    container_id: str | None = None,
    actor_wallet: str | None = None,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=queries.MAX_PER_PAGE),
) -> dict:
    return queries.scan_history(container_id=container_id, actor_wallet=actor_wallet, page=page, per_page=per_page)


# ---------------------------------------------------------------------------
# Anchor Router
# ---------------------------------------------------------------------------
anchor_router = APIRouter(prefix="/anchors", tags=["anchors"])


@anchor_router.post("", response_model=ReconcileResponse)
async def reconcile_anchor(body: ReconcileAnchorRequest) -> ReconcileResponse:
    """Apply an on-chain lock record delivered by a chain listener."""
    command = ReconcileAnchor(
        shipment_id=body.shipment_id,
        supplier_wallet=body.supplier_wallet,
        batch_id=body.batch_id,
        number_of_containers=body.number_of_containers,
        quantity_per_container=body.quantity_per_container,
        tx_ref=body.tx_ref,
        block_ref=body.block_ref,
        anchored_at=body.anchored_at,
    )
    outcome = current_domain.process(command, asynchronous=False)
    return ReconcileResponse(shipment_id=body.shipment_id.lower(), outcome=outcome)


@anchor_router.post("/{shipment_id}/reconcile", response_model=ReconcileResponse)
async def reconcile_from_chain(shipment_id: str) -> ReconcileResponse:
    """Look a shipment up on-chain and apply its lock record."""
    outcome = AnchorReconciler().reconcile_shipment(shipment_id)
    return ReconcileResponse(shipment_id=shipment_id, outcome=outcome)


@anchor_router.post("/sync", response_model=SyncReportResponse)
async def run_reconciler_pass() -> SyncReportResponse:
    report = AnchorReconciler().run_once()
    return SyncReportResponse(
        from_block=report.from_block,
        to_block=report.to_block,
        processed=report.processed,
        outcomes=report.outcomes,
        skipped=report.skipped,
        error=report.error,
    )


@anchor_router.get("/sync", response_model=SyncStateResponse)
async def get_sync_state() -> SyncStateResponse:
    state = load_sync_state()
    return SyncStateResponse(
        sync_id=str(state.sync_id),
        status=state.status,
        last_synced_block=state.last_synced_block or 0,
        events_processed=state.events_processed or 0,
        last_error=state.last_error,
        last_sync_at=state.last_sync_at,
    )


@anchor_router.post("/sync/stop", response_model=StatusResponse)
async def stop_reconciler() -> StatusResponse:
    AnchorReconciler().stop()
    return StatusResponse()


@anchor_router.post("/sync/resume", response_model=StatusResponse)
async def resume_reconciler() -> StatusResponse:
    AnchorReconciler().resume()
    return StatusResponse()
