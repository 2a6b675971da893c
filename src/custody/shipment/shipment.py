"""Shipment aggregate (CQRS) — custody status and assignment chain of one batch.

A shipment visits READY_FOR_DISPATCH → IN_TRANSIT more than once, so its
status is always read together with the leg counter and the leg's custody
pair (origin, destination):

    leg 1: supplier  → warehouse   CREATED → READY_FOR_DISPATCH → IN_TRANSIT → AT_WAREHOUSE
    leg 2: warehouse → retailer    READY_FOR_DISPATCH → IN_TRANSIT → DELIVERED

Container-level quorum is evaluated outside the aggregate (it spans the
Container aggregates); the aggregate owns the edge table, the role rules and
the assignment chain.
"""

import hashlib
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import (
    DateTime,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from custody.domain import custody
from custody.errors import Conflict, ForbiddenActor, ForbiddenTransition
from custody.shared.roles import SYSTEM_ACTOR, ActorRole
from custody.shipment.events import (
    CustodyNoteAdded,
    CustodyNoteStatusChanged,
    CustodyReassigned,
    DocumentAttached,
    DocumentRemoved,
    NextLegStaged,
    ShipmentAnchored,
    ShipmentCreated,
    ShipmentDetailsAmended,
    ShipmentDispatched,
    ShipmentStatusChanged,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ShipmentStatus(Enum):
    CREATED = "CREATED"
    READY_FOR_DISPATCH = "READY_FOR_DISPATCH"
    IN_TRANSIT = "IN_TRANSIT"
    AT_WAREHOUSE = "AT_WAREHOUSE"
    DELIVERED = "DELIVERED"


class NoteType(Enum):
    DAMAGE = "DAMAGE"
    MISSING = "MISSING"
    TAMPER = "TAMPER"
    DELAY = "DELAY"
    SHORTFALL = "SHORTFALL"
    OTHER = "OTHER"


class NoteSeverity(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class NoteStatus(Enum):
    OPEN = "OPEN"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    INVESTIGATING = "INVESTIGATING"
    RESOLVED = "RESOLVED"
    DISMISSED = "DISMISSED"


# Notes still awaiting a resolution
OPEN_NOTE_STATUSES = frozenset({NoteStatus.OPEN, NoteStatus.ACKNOWLEDGED, NoteStatus.INVESTIGATING})

_NOTE_TRANSITIONS = {
    NoteStatus.OPEN: frozenset(
        {NoteStatus.ACKNOWLEDGED, NoteStatus.INVESTIGATING, NoteStatus.RESOLVED, NoteStatus.DISMISSED}
    ),
    NoteStatus.ACKNOWLEDGED: frozenset({NoteStatus.INVESTIGATING, NoteStatus.RESOLVED, NoteStatus.DISMISSED}),
    NoteStatus.INVESTIGATING: frozenset({NoteStatus.RESOLVED, NoteStatus.DISMISSED}),
}


class CustodySlot(Enum):
    TRANSPORTER = "assigned_transporter"
    WAREHOUSE = "assigned_warehouse"
    RETAILER = "assigned_retailer"
    NEXT_TRANSPORTER = "next_transporter"


# Role required to fill each custody slot
SLOT_ROLES = {
    CustodySlot.TRANSPORTER: ActorRole.TRANSPORTER,
    CustodySlot.WAREHOUSE: ActorRole.WAREHOUSE,
    CustodySlot.RETAILER: ActorRole.RETAILER,
    CustodySlot.NEXT_TRANSPORTER: ActorRole.TRANSPORTER,
}


# ---------------------------------------------------------------------------
# Transition rules
# ---------------------------------------------------------------------------
# (role, from) → statuses that role may move the shipment to
_ROLE_TRANSITIONS: dict[tuple[ActorRole, ShipmentStatus], frozenset[ShipmentStatus]] = {
    (ActorRole.SYSTEM, ShipmentStatus.CREATED): frozenset({ShipmentStatus.READY_FOR_DISPATCH}),
    (ActorRole.TRANSPORTER, ShipmentStatus.READY_FOR_DISPATCH): frozenset({ShipmentStatus.IN_TRANSIT}),
    (ActorRole.WAREHOUSE, ShipmentStatus.IN_TRANSIT): frozenset({ShipmentStatus.AT_WAREHOUSE}),
    (ActorRole.WAREHOUSE, ShipmentStatus.AT_WAREHOUSE): frozenset({ShipmentStatus.READY_FOR_DISPATCH}),
    (ActorRole.RETAILER, ShipmentStatus.AT_WAREHOUSE): frozenset({ShipmentStatus.DELIVERED}),
    (ActorRole.RETAILER, ShipmentStatus.IN_TRANSIT): frozenset({ShipmentStatus.DELIVERED}),
}

EDGES: frozenset[tuple[ShipmentStatus, ShipmentStatus]] = frozenset(
    (source, target) for (_, source), targets in _ROLE_TRANSITIONS.items() for target in targets
)

# Edges that only exist on a leg heading to a particular kind of party
_EDGE_DESTINATIONS = {
    (ShipmentStatus.IN_TRANSIT, ShipmentStatus.AT_WAREHOUSE): ActorRole.WAREHOUSE,
    (ShipmentStatus.IN_TRANSIT, ShipmentStatus.DELIVERED): ActorRole.RETAILER,
}

DOCUMENT_EDITABLE_STATUSES = frozenset({ShipmentStatus.CREATED, ShipmentStatus.READY_FOR_DISPATCH})


def allowed_targets(role: ActorRole | None, source: ShipmentStatus) -> frozenset[ShipmentStatus]:
    if role is None:
        return frozenset()
    return _ROLE_TRANSITIONS.get((role, source), frozenset())


def check_transition(
    source: ShipmentStatus,
    target: ShipmentStatus,
    role: ActorRole | None,
    leg_destination: ActorRole | None = None,
) -> None:
    """Raise unless ``role`` may move a shipment from ``source`` to ``target``.

    The edge is checked before the role, so an edge that exists for nobody is
    a ForbiddenTransition whoever asks.
    """
    if (source, target) not in EDGES:
        raise ForbiddenTransition(
            f"Cannot transition from {source.value} to {target.value}",
            from_status=source.value,
            to_status=target.value,
        )

    required_destination = _EDGE_DESTINATIONS.get((source, target))
    if required_destination is not None and leg_destination is not None and leg_destination != required_destination:
        raise ForbiddenTransition(
            f"Cannot transition from {source.value} to {target.value} on a leg bound for {leg_destination.value}",
            from_status=source.value,
            to_status=target.value,
        )

    if target not in allowed_targets(role, source):
        raise ForbiddenActor(
            f"Role {role.value if role else None} may not move a shipment from {source.value} to {target.value}",
            from_status=source.value,
            to_status=target.value,
        )


def derive_shipment_id(
    supplier_wallet: str,
    batch_id: str,
    product_name: str,
    number_of_containers: int,
    quantity_per_container: int,
) -> str:
    """Content-derived shipment id: the same identity fields always mint the same id."""
    canonical = "|".join(
        [
            supplier_wallet.lower(),
            batch_id.strip(),
            product_name.strip(),
            str(number_of_containers),
            str(quantity_per_container),
        ]
    )
    return "0x" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@custody.value_object(part_of="Shipment")
class Anchor:
    """Where and when the shipment identity was locked on-chain."""

    tx_ref = String(required=True, max_length=100)
    block_ref = Integer(required=True, min_value=0)
    anchored_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@custody.entity(part_of="Shipment")
class StatusChange:
    """One entry of the append-only status history."""

    status = String(required=True, choices=ShipmentStatus)
    leg = Integer(required=True, min_value=1)
    leg_origin = String(max_length=20)
    leg_destination = String(max_length=20)
    changed_by = String(required=True, max_length=42)
    changed_at = DateTime(required=True)
    note = String(max_length=500)


@custody.entity(part_of="Shipment")
class DocumentRef:
    """Reference to an attachment held by the document store."""

    reference = String(required=True, max_length=500)
    filename = String(max_length=255)
    uploaded_by = String(required=True, max_length=42)
    uploaded_at = DateTime(required=True)


@custody.entity(part_of="Shipment")
class CustodyNote:
    """Exception note with a follow-up lifecycle; never affects custody status."""

    note_type = String(required=True, choices=NoteType, default=NoteType.OTHER.value)
    severity = String(required=True, choices=NoteSeverity, default=NoteSeverity.LOW.value)
    note = Text(required=True)
    container_id = String(max_length=50)
    leg = Integer(required=True, min_value=1)
    raised_by = String(required=True, max_length=42)
    raised_at = DateTime(required=True)
    status = String(required=True, choices=NoteStatus, default=NoteStatus.OPEN.value)
    acknowledged_by = String(max_length=42)
    acknowledged_at = DateTime()
    resolved_by = String(max_length=42)
    resolved_at = DateTime()
    resolution = Text()

    @property
    def is_open(self) -> bool:
        return NoteStatus(self.status) in OPEN_NOTE_STATUSES


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@custody.aggregate
class Shipment:
    shipment_id = Identifier(identifier=True)
    supplier_wallet = String(required=True, max_length=42)
    batch_id = String(required=True, max_length=100)
    product_name = String(required=True, max_length=200)
    number_of_containers = Integer(required=True, min_value=1)
    quantity_per_container = Integer(required=True, min_value=1)
    status = String(choices=ShipmentStatus, default=ShipmentStatus.CREATED.value)
    leg = Integer(default=1, min_value=1)
    leg_origin = String(choices=ActorRole, default=ActorRole.SUPPLIER.value)
    leg_destination = String(choices=ActorRole, default=ActorRole.WAREHOUSE.value)
    assigned_transporter = String(max_length=42)
    assigned_warehouse = String(max_length=42)
    assigned_retailer = String(max_length=42)
    next_transporter = String(max_length=42)
    anchor = ValueObject(Anchor)
    status_history = HasMany(StatusChange)
    documents = HasMany(DocumentRef)
    notes = HasMany(CustodyNote)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def staging_slot_is_only_used_at_the_warehouse(self):
        if self.next_transporter and self.status != ShipmentStatus.AT_WAREHOUSE.value:
            raise ValidationError({"next_transporter": ["Next transporter can only be staged at the warehouse"]})

    @invariant.post
    def dispatchable_shipments_are_anchored(self):
        if self.status != ShipmentStatus.CREATED.value and self.anchor is None:
            raise ValidationError({"anchor": ["Shipment must be anchored on-chain before dispatch"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        supplier_wallet: str,
        batch_id: str,
        product_name: str,
        number_of_containers: int,
        quantity_per_container: int,
        assigned_transporter: str | None = None,
        assigned_warehouse: str | None = None,
        shipment_id: str | None = None,
    ):
        """Mint a draft shipment. Containers are minted alongside by the caller."""
        now = datetime.now(UTC)
        shipment_id = shipment_id or derive_shipment_id(
            supplier_wallet, batch_id, product_name, number_of_containers, quantity_per_container
        )
        shipment = cls(
            shipment_id=shipment_id,
            supplier_wallet=supplier_wallet,
            batch_id=batch_id,
            product_name=product_name,
            number_of_containers=number_of_containers,
            quantity_per_container=quantity_per_container,
            status=ShipmentStatus.CREATED.value,
            leg=1,
            leg_origin=ActorRole.SUPPLIER.value,
            leg_destination=ActorRole.WAREHOUSE.value,
            assigned_transporter=assigned_transporter,
            assigned_warehouse=assigned_warehouse,
            created_at=now,
            updated_at=now,
        )
        shipment.add_status_history(
            StatusChange(
                status=ShipmentStatus.CREATED.value,
                leg=1,
                leg_origin=ActorRole.SUPPLIER.value,
                leg_destination=ActorRole.WAREHOUSE.value,
                changed_by=supplier_wallet,
                changed_at=now,
                note="Shipment created",
            )
        )
        shipment.raise_(
            ShipmentCreated(
                shipment_id=shipment_id,
                supplier_wallet=supplier_wallet,
                batch_id=batch_id,
                product_name=product_name,
                number_of_containers=number_of_containers,
                quantity_per_container=quantity_per_container,
                total_quantity=shipment.total_quantity,
                assigned_transporter=assigned_transporter,
                assigned_warehouse=assigned_warehouse,
                created_at=now,
            )
        )
        return shipment

    # -------------------------------------------------------------------
    # Derived state
    # -------------------------------------------------------------------
    @property
    def total_quantity(self) -> int:
        return (self.number_of_containers or 0) * (self.quantity_per_container or 0)

    @property
    def current_status(self) -> ShipmentStatus:
        return ShipmentStatus(self.status)

    @property
    def destination(self) -> ActorRole:
        return ActorRole(self.leg_destination)

    @property
    def is_anchored(self) -> bool:
        return self.anchor is not None

    def assignee_for(self, role: ActorRole) -> str | None:
        """Wallet currently holding custody duty for ``role`` on this leg."""
        return {
            ActorRole.TRANSPORTER: self.assigned_transporter,
            ActorRole.WAREHOUSE: self.assigned_warehouse,
            ActorRole.RETAILER: self.assigned_retailer,
            ActorRole.SUPPLIER: self.supplier_wallet,
        }.get(role)

    def involves(self, wallet: str) -> bool:
        return wallet in (
            self.supplier_wallet,
            self.assigned_transporter,
            self.assigned_warehouse,
            self.assigned_retailer,
            self.next_transporter,
        )

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    def _write_status(self, target: ShipmentStatus, changed_by: str, note: str | None, now: datetime) -> None:
        """Append history and set status. Callers hold ``atomic_change``."""
        source = self.status
        self.status = target.value
        self.updated_at = now
        self.add_status_history(
            StatusChange(
                status=target.value,
                leg=self.leg,
                leg_origin=self.leg_origin,
                leg_destination=self.leg_destination,
                changed_by=changed_by,
                changed_at=now,
                note=note,
            )
        )
        self.raise_(
            ShipmentStatusChanged(
                shipment_id=self.shipment_id,
                from_status=source,
                to_status=target.value,
                leg=self.leg,
                changed_by=changed_by,
                changed_at=now,
                note=note,
            )
        )

    def advance(self, target: ShipmentStatus, actor_wallet: str, actor_role: ActorRole, note: str | None = None) -> None:
        """Move along a quorum-gated edge (pickup, warehouse receipt, delivery).

        The caller has already confirmed the container quorum for ``target``.
        """
        if target == ShipmentStatus.READY_FOR_DISPATCH:
            raise ForbiddenTransition(
                "READY_FOR_DISPATCH is entered by anchoring or by dispatching the next leg",
                from_status=self.status,
                to_status=target.value,
            )
        check_transition(self.current_status, target, actor_role, self.destination)

        now = datetime.now(UTC)
        with atomic_change(self):
            if target == ShipmentStatus.DELIVERED:
                self.next_transporter = None
            self._write_status(target, actor_wallet, note, now)

    # -------------------------------------------------------------------
    # Anchoring
    # -------------------------------------------------------------------
    def anchor_on_chain(self, tx_ref: str, block_ref: int, anchored_at: datetime) -> bool:
        """Apply the on-chain lock. Returns False when this lock was already applied."""
        if self.anchor is not None:
            if self.anchor.tx_ref == tx_ref:
                return False
            raise Conflict(
                f"Shipment {self.shipment_id} is already anchored by {self.anchor.tx_ref}",
                shipment_id=self.shipment_id,
                tx_ref=tx_ref,
            )
        check_transition(self.current_status, ShipmentStatus.READY_FOR_DISPATCH, ActorRole.SYSTEM)

        now = datetime.now(UTC)
        with atomic_change(self):
            self.anchor = Anchor(tx_ref=tx_ref, block_ref=block_ref, anchored_at=anchored_at)
            self._write_status(
                ShipmentStatus.READY_FOR_DISPATCH,
                SYSTEM_ACTOR,
                f"Anchored in block {block_ref}",
                now,
            )
        self.raise_(
            ShipmentAnchored(
                shipment_id=self.shipment_id,
                tx_ref=tx_ref,
                block_ref=block_ref,
                anchored_at=anchored_at,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Next-leg staging and dispatch
    # -------------------------------------------------------------------
    def stage_next_leg(self, staged_by: str, next_transporter: str | None = None, retailer: str | None = None) -> None:
        """Stage the onward transporter and/or the retailer while at the warehouse."""
        if self.current_status != ShipmentStatus.AT_WAREHOUSE:
            raise Conflict(
                f"Next leg can only be staged at the warehouse (shipment is {self.status})",
                shipment_id=self.shipment_id,
            )
        if not next_transporter and not retailer:
            raise ValidationError({"next_leg": ["Provide a next transporter, a retailer, or both"]})

        now = datetime.now(UTC)
        with atomic_change(self):
            if next_transporter:
                self.next_transporter = next_transporter
            if retailer:
                self.assigned_retailer = retailer
            self.updated_at = now
        self.raise_(
            NextLegStaged(
                shipment_id=self.shipment_id,
                next_transporter=self.next_transporter,
                assigned_retailer=self.assigned_retailer,
                staged_by=staged_by,
                staged_at=now,
            )
        )

    def dispatch_next_leg(self, actor_wallet: str, actor_role: ActorRole) -> None:
        """Promote the staged transporter and re-enter READY_FOR_DISPATCH on a new leg.

        Container readiness for the new leg is reset by the caller in the same
        unit of work.
        """
        if self.current_status == ShipmentStatus.CREATED:
            raise Conflict("Shipment must be anchored on-chain before dispatch", shipment_id=self.shipment_id)
        check_transition(self.current_status, ShipmentStatus.READY_FOR_DISPATCH, actor_role)
        if actor_wallet != self.assigned_warehouse:
            raise ForbiddenActor("Only the assigned warehouse can dispatch the next leg", wallet=actor_wallet)
        if not self.next_transporter or not self.assigned_retailer:
            raise Conflict(
                "Next transporter and retailer must be staged first",
                shipment_id=self.shipment_id,
                next_transporter=self.next_transporter,
                assigned_retailer=self.assigned_retailer,
            )

        now = datetime.now(UTC)
        with atomic_change(self):
            self.assigned_transporter = self.next_transporter
            self.next_transporter = None
            self.leg = self.leg + 1
            self.leg_origin = ActorRole.WAREHOUSE.value
            self.leg_destination = ActorRole.RETAILER.value
            self._write_status(
                ShipmentStatus.READY_FOR_DISPATCH,
                actor_wallet,
                f"Dispatched for leg {self.leg}",
                now,
            )
        self.raise_(
            ShipmentDispatched(
                shipment_id=self.shipment_id,
                leg=self.leg,
                assigned_transporter=self.assigned_transporter,
                assigned_retailer=self.assigned_retailer,
                dispatched_by=actor_wallet,
                dispatched_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Assignment and details
    # -------------------------------------------------------------------
    def reassign(self, slot: CustodySlot, wallet: str, reassigned_by: str) -> None:
        """Replace the first-leg transporter or warehouse before custody starts."""
        if slot not in (CustodySlot.TRANSPORTER, CustodySlot.WAREHOUSE):
            raise ValidationError({"slot": [f"{slot.value} is assigned through next-leg staging"]})
        if self.leg != 1 or self.current_status not in DOCUMENT_EDITABLE_STATUSES:
            raise Conflict(
                f"Custody can no longer be re-assigned (shipment is {self.status}, leg {self.leg})",
                shipment_id=self.shipment_id,
            )

        now = datetime.now(UTC)
        previous = getattr(self, slot.value)
        setattr(self, slot.value, wallet)
        self.updated_at = now
        self.raise_(
            CustodyReassigned(
                shipment_id=self.shipment_id,
                slot=slot.value,
                previous_wallet=previous,
                wallet=wallet,
                reassigned_by=reassigned_by,
                reassigned_at=now,
            )
        )

    def amend_details(self, product_name: str | None = None, **identity_fields) -> None:
        """Amend descriptive fields. Identity fields never change after minting."""
        changed = sorted(k for k, v in identity_fields.items() if v is not None and v != getattr(self, k, None))
        if changed:
            if self.is_anchored:
                raise Conflict(
                    f"Anchored identity fields are immutable: {', '.join(changed)}",
                    shipment_id=self.shipment_id,
                    fields=changed,
                )
            raise ValidationError({field: ["The container set is fixed at creation"] for field in changed})

        if product_name is None or product_name == self.product_name:
            return
        if self.is_anchored:
            raise Conflict("Shipment details are locked once anchored", shipment_id=self.shipment_id)

        now = datetime.now(UTC)
        self.product_name = product_name
        self.updated_at = now
        self.raise_(
            ShipmentDetailsAmended(
                shipment_id=self.shipment_id,
                product_name=product_name,
                amended_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------
    def assert_documents_editable(self) -> None:
        if self.current_status not in DOCUMENT_EDITABLE_STATUSES:
            raise Conflict(
                f"Documents cannot be changed while the shipment is {self.status}",
                shipment_id=self.shipment_id,
            )

    def attach_document(self, reference: str, uploaded_by: str, filename: str | None = None) -> None:
        self.assert_documents_editable()
        if any(doc.reference == reference for doc in self.documents or []):
            raise Conflict(f"Document {reference} is already attached", shipment_id=self.shipment_id)

        now = datetime.now(UTC)
        self.add_documents(DocumentRef(reference=reference, filename=filename, uploaded_by=uploaded_by, uploaded_at=now))
        self.updated_at = now
        self.raise_(
            DocumentAttached(
                shipment_id=self.shipment_id,
                reference=reference,
                filename=filename,
                uploaded_by=uploaded_by,
                uploaded_at=now,
            )
        )

    def remove_document(self, reference: str, removed_by: str) -> None:
        self.assert_documents_editable()
        document = next((doc for doc in self.documents or [] if doc.reference == reference), None)
        if document is None:
            raise ValidationError({"reference": ["Document is not attached to this shipment"]})

        now = datetime.now(UTC)
        self.remove_documents(document)
        self.updated_at = now
        self.raise_(
            DocumentRemoved(
                shipment_id=self.shipment_id,
                reference=reference,
                removed_by=removed_by,
                removed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Custody notes
    # -------------------------------------------------------------------
    def add_note(
        self,
        note: str,
        raised_by: str,
        note_type: NoteType = NoteType.OTHER,
        severity: NoteSeverity = NoteSeverity.LOW,
        container_id: str | None = None,
    ) -> CustodyNote:
        """Attach an exception note. Notes never move status or satisfy a quorum."""
        now = datetime.now(UTC)
        custody_note = CustodyNote(
            note_type=note_type.value,
            severity=severity.value,
            note=note,
            container_id=container_id,
            leg=self.leg,
            raised_by=raised_by,
            raised_at=now,
        )
        self.add_notes(custody_note)
        self.updated_at = now
        self.raise_(
            CustodyNoteAdded(
                shipment_id=self.shipment_id,
                note_id=str(custody_note.id),
                note_type=note_type.value,
                severity=severity.value,
                note=note,
                container_id=container_id,
                raised_by=raised_by,
                raised_at=now,
            )
        )
        return custody_note

    def change_note_status(
        self,
        note_id: str,
        target: NoteStatus,
        changed_by: str,
        resolution: str | None = None,
    ) -> CustodyNote:
        """Move a note along OPEN → ACKNOWLEDGED → INVESTIGATING → RESOLVED (or DISMISSED)."""
        custody_note = next((n for n in self.notes or [] if str(n.id) == str(note_id)), None)
        if custody_note is None:
            raise ObjectNotFoundError(f"Note {note_id} is not attached to shipment {self.shipment_id}")

        current = NoteStatus(custody_note.status)
        if target not in _NOTE_TRANSITIONS.get(current, frozenset()):
            raise Conflict(
                f"Note cannot move from {current.value} to {target.value}",
                shipment_id=self.shipment_id,
                note_id=str(note_id),
            )
        if target in (NoteStatus.RESOLVED, NoteStatus.DISMISSED) and not (resolution or "").strip():
            raise ValidationError({"resolution": ["A resolution is required to close a note"]})

        now = datetime.now(UTC)
        custody_note.status = target.value
        if custody_note.acknowledged_at is None:
            custody_note.acknowledged_by = changed_by
            custody_note.acknowledged_at = now
        if target in (NoteStatus.RESOLVED, NoteStatus.DISMISSED):
            custody_note.resolved_by = changed_by
            custody_note.resolved_at = now
            custody_note.resolution = resolution.strip()
        self.updated_at = now
        self.raise_(
            CustodyNoteStatusChanged(
                shipment_id=self.shipment_id,
                note_id=str(note_id),
                from_status=current.value,
                to_status=target.value,
                changed_by=changed_by,
                changed_at=now,
                resolution=custody_note.resolution,
            )
        )
        return custody_note
