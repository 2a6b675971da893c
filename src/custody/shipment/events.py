"""Shipment domain events — immutable facts about a shipment's custody.

All events are past tense, versioned, and carry what downstream projectors and
handlers need without reloading the aggregate.
"""

from protean.fields import DateTime, Identifier, Integer, String, Text

from custody.domain import custody


@custody.event(part_of="Shipment")
class ShipmentCreated:
    """A draft shipment and its fixed container set were minted."""

    __version__ = 1

    shipment_id = Identifier(required=True)
    supplier_wallet = String(required=True)
    batch_id = String(required=True)
    product_name = String(required=True)
    number_of_containers = Integer(required=True)
    quantity_per_container = Integer(required=True)
    total_quantity = Integer(required=True)
    assigned_transporter = String()
    assigned_warehouse = String()
    created_at = DateTime(required=True)


@custody.event(part_of="Shipment")
class ShipmentAnchored:
    """The on-chain lock record was applied to the shipment."""

    __version__ = 1

    shipment_id = Identifier(required=True)
    tx_ref = String(required=True)
    block_ref = Integer(required=True)
    anchored_at = DateTime(required=True)


@custody.event(part_of="Shipment")
class ShipmentStatusChanged:
    """The shipment moved along an edge of the custody graph."""

    __version__ = 1

    shipment_id = Identifier(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    leg = Integer(required=True)
    changed_by = String(required=True)
    changed_at = DateTime(required=True)
    note = String()


@custody.event(part_of="Shipment")
class NextLegStaged:
    """The warehouse staged the transporter and/or retailer for the next leg."""

    __version__ = 1

    shipment_id = Identifier(required=True)
    next_transporter = String()
    assigned_retailer = String()
    staged_by = String(required=True)
    staged_at = DateTime(required=True)


@custody.event(part_of="Shipment")
class ShipmentDispatched:
    """The staged next leg was promoted and the shipment is ready for pickup again."""

    __version__ = 1

    shipment_id = Identifier(required=True)
    leg = Integer(required=True)
    assigned_transporter = String(required=True)
    assigned_retailer = String(required=True)
    dispatched_by = String(required=True)
    dispatched_at = DateTime(required=True)


@custody.event(part_of="Shipment")
class CustodyReassigned:
    """A custody slot was re-assigned before the first pickup."""

    __version__ = 1

    shipment_id = Identifier(required=True)
    slot = String(required=True)
    previous_wallet = String()
    wallet = String(required=True)
    reassigned_by = String(required=True)
    reassigned_at = DateTime(required=True)


@custody.event(part_of="Shipment")
class ShipmentDetailsAmended:
    __version__ = 1

    shipment_id = Identifier(required=True)
    product_name = String(required=True)
    amended_at = DateTime(required=True)


@custody.event(part_of="Shipment")
class DocumentAttached:
    __version__ = 1

    shipment_id = Identifier(required=True)
    reference = String(required=True)
    filename = String()
    uploaded_by = String(required=True)
    uploaded_at = DateTime(required=True)


@custody.event(part_of="Shipment")
class DocumentRemoved:
    __version__ = 1

    shipment_id = Identifier(required=True)
    reference = String(required=True)
    removed_by = String(required=True)
    removed_at = DateTime(required=True)


@custody.event(part_of="Shipment")
class CustodyNoteAdded:
    """An actor recorded an exception note (damage, shortfall, ...) on the shipment."""

    __version__ = 1

    shipment_id = Identifier(required=True)
    note_id = Identifier(required=True)
    note_type = String(required=True)
    severity = String(required=True)
    note = Text(required=True)
    container_id = String()
    raised_by = String(required=True)
    raised_at = DateTime(required=True)


@custody.event(part_of="Shipment")
class CustodyNoteStatusChanged:
    """A custody note was acknowledged, taken under investigation, resolved or dismissed."""

    __version__ = 1

    shipment_id = Identifier(required=True)
    note_id = Identifier(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    changed_by = String(required=True)
    changed_at = DateTime(required=True)
    resolution = Text()
