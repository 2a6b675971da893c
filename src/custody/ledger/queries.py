"""Custody ledger — read-only queries over shipments, containers and scans.

Every read goes to the aggregate stores, which are written in the same unit
of work as the custody transitions themselves, so a reader never sees a
shipment status without the matching container state.
"""

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from custody.chain import get_chain
from custody.chain.port import ChainRecord
from custody.container.container import RANK, Container, ContainerStatus
from custody.container.quorum import QUORUM_TARGETS, load_containers
from custody.errors import ChainUnavailable
from custody.scanning.scan_log import ScanLog
from custody.shared.roles import ActorRole
from custody.shipment.shipment import Shipment, ShipmentStatus

logger = structlog.get_logger(__name__)

MAX_PER_PAGE = 100
# Upper bound for the in-memory merge of per-slot actor queries
_ACTOR_QUERY_LIMIT = 10_000

ACTOR_FIELDS = (
    "supplier_wallet",
    "assigned_transporter",
    "assigned_warehouse",
    "assigned_retailer",
    "next_transporter",
)


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------
def _iso(value):
    return value.isoformat() if value else None


def serialize_container(container) -> dict:
    return {
        "container_id": container.container_id,
        "shipment_id": container.shipment_id,
        "ordinal": container.ordinal,
        "quantity": container.quantity,
        "status": container.status,
        "leg": container.leg,
        "qr_token": container.qr_token,
        "last_actor": container.last_actor,
        "last_scanned_at": _iso(container.last_scanned_at),
    }


def serialize_note(note) -> dict:
    return {
        "note_id": str(note.id),
        "note_type": note.note_type,
        "severity": note.severity,
        "status": note.status,
        "note": note.note,
        "container_id": note.container_id,
        "leg": note.leg,
        "raised_by": note.raised_by,
        "raised_at": _iso(note.raised_at),
        "acknowledged_by": note.acknowledged_by,
        "acknowledged_at": _iso(note.acknowledged_at),
        "resolved_by": note.resolved_by,
        "resolved_at": _iso(note.resolved_at),
        "resolution": note.resolution,
    }


def serialize_shipment(shipment: Shipment, containers=None) -> dict:
    data = {
        "shipment_id": shipment.shipment_id,
        "supplier_wallet": shipment.supplier_wallet,
        "batch_id": shipment.batch_id,
        "product_name": shipment.product_name,
        "number_of_containers": shipment.number_of_containers,
        "quantity_per_container": shipment.quantity_per_container,
        "total_quantity": shipment.total_quantity,
        "status": shipment.status,
        "leg": shipment.leg,
        "leg_origin": shipment.leg_origin,
        "leg_destination": shipment.leg_destination,
        "assigned_transporter": shipment.assigned_transporter,
        "assigned_warehouse": shipment.assigned_warehouse,
        "assigned_retailer": shipment.assigned_retailer,
        "next_transporter": shipment.next_transporter,
        "anchor": (
            {
                "tx_ref": shipment.anchor.tx_ref,
                "block_ref": shipment.anchor.block_ref,
                "anchored_at": _iso(shipment.anchor.anchored_at),
            }
            if shipment.anchor
            else None
        ),
        "status_history": [
            {
                "status": entry.status,
                "leg": entry.leg,
                "changed_by": entry.changed_by,
                "changed_at": _iso(entry.changed_at),
                "note": entry.note,
            }
            for entry in sorted(shipment.status_history or [], key=lambda e: e.changed_at)
        ],
        "documents": [
            {"reference": doc.reference, "filename": doc.filename, "uploaded_at": _iso(doc.uploaded_at)}
            for doc in shipment.documents or []
        ],
        "notes": [serialize_note(note) for note in sorted(shipment.notes or [], key=lambda n: n.raised_at)],
        "created_at": _iso(shipment.created_at),
        "updated_at": _iso(shipment.updated_at),
    }
    if containers is not None:
        data["containers"] = [serialize_container(c) for c in containers]
    return data


def serialize_chain_record(record: ChainRecord) -> dict:
    return {
        "shipment_id": record.shipment_id,
        "supplier_wallet": record.supplier_wallet,
        "batch_id": record.batch_id,
        "number_of_containers": record.number_of_containers,
        "quantity_per_container": record.quantity_per_container,
        "total_quantity": record.number_of_containers * record.quantity_per_container,
        "tx_ref": record.tx_ref,
        "block_ref": record.block_ref,
        "anchored_at": _iso(record.anchored_at),
    }


def serialize_scan(scan: ScanLog) -> dict:
    return {
        "scan_id": str(scan.scan_id),
        "container_id": scan.container_id,
        "shipment_id": scan.shipment_id,
        "actor_wallet": scan.actor_wallet,
        "actor_role": scan.actor_role,
        "action": scan.action,
        "result": scan.result,
        "code": scan.code,
        "reason": scan.reason,
        "leg": scan.leg,
        "status_before": scan.status_before,
        "status_after": scan.status_after,
        "location": scan.location,
        "tx_ref": scan.tx_ref,
        "scanned_at": _iso(scan.scanned_at),
    }


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------
def _page_bounds(page: int, per_page: int) -> tuple[int, int]:
    if page < 1:
        raise ValidationError({"page": ["Page must be 1 or greater"]})
    if per_page < 1 or per_page > MAX_PER_PAGE:
        raise ValidationError({"per_page": [f"per_page must be between 1 and {MAX_PER_PAGE}"]})
    return (page - 1) * per_page, per_page


def _page(items: list, total: int, page: int, per_page: int) -> dict:
    return {
        "items": items,
        "page": page,
        "per_page": per_page,
        "total": total,
        "pages": (total + per_page - 1) // per_page,
    }


# ---------------------------------------------------------------------------
# Shipment queries
# ---------------------------------------------------------------------------
def shipment_detail(shipment_id: str, include_containers: bool = True, chain_fallback: bool = False) -> dict:
    """One shipment with its containers.

    With ``chain_fallback`` the chain is consulted when the ledger has no
    record or the record is not anchored yet; ``source`` reports which side
    answered.
    """
    try:
        shipment = current_domain.repository_for(Shipment).get(shipment_id)
    except ObjectNotFoundError:
        if not chain_fallback:
            raise
        record = get_chain().get_shipment(shipment_id)
        if record is None:
            raise
        logger.info("Shipment served from chain", shipment_id=shipment_id)
        return {**serialize_chain_record(record), "source": "chain"}

    containers = load_containers(shipment) if include_containers else None
    data = {**serialize_shipment(shipment, containers), "source": "ledger"}

    if chain_fallback and not shipment.is_anchored:
        try:
            record = get_chain().get_shipment(shipment_id)
        except ChainUnavailable as exc:
            logger.warning("Chain fallback unavailable", shipment_id=shipment_id, error=exc.message)
            record = None
        if record is not None:
            data["chain_record"] = serialize_chain_record(record)
            data["source"] = "ledger+chain"
    return data


def shipments_for_actor(wallet: str, page: int = 1, per_page: int = 20) -> dict:
    """Shipments where ``wallet`` holds any custody slot, current or staged, newest first."""
    offset, limit = _page_bounds(page, per_page)
    dao = current_domain.repository_for(Shipment)._dao
    wallet = wallet.strip().lower()

    found: dict[str, Shipment] = {}
    for field in ACTOR_FIELDS:
        for shipment in dao.query.filter(**{field: wallet}).limit(_ACTOR_QUERY_LIMIT).all().items:
            found[shipment.shipment_id] = shipment

    ordered = sorted(found.values(), key=lambda s: s.created_at, reverse=True)
    items = [serialize_shipment(s) for s in ordered[offset : offset + limit]]
    return _page(items, len(ordered), page, per_page)


def shipments_by_status(status: str, page: int = 1, per_page: int = 20) -> dict:
    try:
        status = ShipmentStatus(status).value
    except ValueError as exc:
        raise ValidationError({"status": [f"Unknown status {status}"]}) from exc
    offset, limit = _page_bounds(page, per_page)

    results = (
        current_domain.repository_for(Shipment)
        ._dao.query.filter(status=status)
        .order_by("-created_at")
        .offset(offset)
        .limit(limit)
        .all()
    )
    return _page([serialize_shipment(s) for s in results.items], results.total, page, per_page)


def status_summary() -> dict:
    """Number of shipments per status."""
    dao = current_domain.repository_for(Shipment)._dao
    return {status.value: dao.query.filter(status=status.value).all().total for status in ShipmentStatus}


def open_notes_for_supplier(supplier_wallet: str, page: int = 1, per_page: int = 20) -> dict:
    """Notes on the supplier's shipments that are not yet resolved or dismissed, newest first."""
    offset, limit = _page_bounds(page, per_page)
    supplier_wallet = supplier_wallet.strip().lower()
    shipments = (
        current_domain.repository_for(Shipment)
        ._dao.query.filter(supplier_wallet=supplier_wallet)
        .limit(_ACTOR_QUERY_LIMIT)
        .all()
        .items
    )

    notes = [
        {**serialize_note(note), "shipment_id": shipment.shipment_id, "batch_id": shipment.batch_id}
        for shipment in shipments
        for note in shipment.notes or []
        if note.is_open
    ]
    notes.sort(key=lambda n: n["raised_at"], reverse=True)
    return _page(notes[offset : offset + limit], len(notes), page, per_page)


# ---------------------------------------------------------------------------
# Container queries
# ---------------------------------------------------------------------------
def container_stats(shipment_id: str) -> dict:
    """Per-status container counts for a shipment, with progress toward the next quorum."""
    shipment = current_domain.repository_for(Shipment).get(shipment_id)
    containers = load_containers(shipment)
    counts = {status.value: 0 for status in ContainerStatus}
    for container in containers:
        counts[container.status] += 1

    required = {
        ShipmentStatus.READY_FOR_DISPATCH: QUORUM_TARGETS[ShipmentStatus.IN_TRANSIT],
        ShipmentStatus.IN_TRANSIT: QUORUM_TARGETS[
            ShipmentStatus.AT_WAREHOUSE if shipment.destination == ActorRole.WAREHOUSE else ShipmentStatus.DELIVERED
        ],
        ShipmentStatus.AT_WAREHOUSE: QUORUM_TARGETS[ShipmentStatus.DELIVERED],
    }.get(shipment.current_status)

    reached = 0
    if required is not None:
        reached = sum(1 for c in containers if c.rank >= RANK[required])
    return {
        "shipment_id": shipment.shipment_id,
        "status": shipment.status,
        "leg": shipment.leg,
        "total": len(containers),
        "counts": counts,
        "awaiting": required.value if required else None,
        "reached": reached,
    }


def container_detail(container_id: str) -> dict:
    """One container with a summary of its parent shipment (for QR lookups)."""
    container_id = (container_id or "").strip()
    if not container_id:
        raise ValidationError({"container_id": ["Container ID is required"]})
    container = current_domain.repository_for(Container).get(container_id)
    try:
        shipment = current_domain.repository_for(Shipment).get(container.shipment_id)
    except ObjectNotFoundError:
        logger.warning("Container without shipment", container_id=container.container_id)
        shipment = None

    return {
        "container": serialize_container(container),
        "shipment": (
            {
                "shipment_id": shipment.shipment_id,
                "batch_id": shipment.batch_id,
                "product_name": shipment.product_name,
                "supplier_wallet": shipment.supplier_wallet,
                "number_of_containers": shipment.number_of_containers,
                "quantity_per_container": shipment.quantity_per_container,
                "total_quantity": shipment.total_quantity,
                "status": shipment.status,
                "leg": shipment.leg,
            }
            if shipment
            else None
        ),
    }


# ---------------------------------------------------------------------------
# Scan history
# ---------------------------------------------------------------------------
def scan_history(
    shipment_id: str | None = None,
    container_id: str | None = None,
    actor_wallet: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    """Scan log entries, newest first, filtered by shipment, container and/or actor."""
    filters = {}
    if shipment_id:
        filters["shipment_id"] = shipment_id
    if container_id:
        filters["container_id"] = container_id
    if actor_wallet:
        filters["actor_wallet"] = actor_wallet.strip().lower()
    if not filters:
        raise ValidationError({"filter": ["Filter by shipment, container or actor"]})
    offset, limit = _page_bounds(page, per_page)

    results = (
        current_domain.repository_for(ScanLog)
        ._dao.query.filter(**filters)
        .order_by("-scanned_at")
        .offset(offset)
        .limit(limit)
        .all()
    )
    return _page([serialize_scan(s) for s in results.items], results.total, page, per_page)
