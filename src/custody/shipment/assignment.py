"""Custody assignment — re-assignment before pickup and next-leg staging.

Every wallet written into a custody slot is resolved through the actor
directory first; anything short of an ACTIVE actor with exactly the slot's
role is a ForbiddenAssignment.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from custody.container.container import ContainerStatus
from custody.container.quorum import load_containers
from custody.directory import require_actor
from custody.domain import custody
from custody.errors import Conflict, ForbiddenActor
from custody.shared.roles import ActorRole, parse_role
from custody.shared.wallet import normalize_wallet
from custody.shipment.shipment import SLOT_ROLES, CustodySlot, Shipment, ShipmentStatus

logger = structlog.get_logger(__name__)


@custody.command(part_of="Shipment")
class ReassignCustody:
    shipment_id = Identifier(required=True)
    slot = String(required=True, max_length=30)  # assigned_transporter | assigned_warehouse
    wallet = String(required=True, max_length=42)
    actor_wallet = String(required=True, max_length=42)
    actor_role = String(required=True, max_length=20)


@custody.command(part_of="Shipment")
class StageNextLeg:
    shipment_id = Identifier(required=True)
    next_transporter = String(max_length=42)
    retailer = String(max_length=42)
    actor_wallet = String(required=True, max_length=42)
    actor_role = String(required=True, max_length=20)


def _parse_slot(value: str) -> CustodySlot:
    try:
        return CustodySlot(value)
    except ValueError as exc:
        raise ValidationError({"slot": [f"Unknown custody slot {value}"]}) from exc


@custody.command_handler(part_of=Shipment)
class AssignmentHandler:
    @handle(ReassignCustody)
    def reassign_custody(self, command):
        repo = current_domain.repository_for(Shipment)
        shipment = repo.get(command.shipment_id)

        actor_wallet = normalize_wallet(command.actor_wallet, "actor_wallet")
        if parse_role(command.actor_role) != ActorRole.SUPPLIER or actor_wallet != shipment.supplier_wallet:
            raise ForbiddenActor("Only the shipment's supplier can re-assign custody", wallet=actor_wallet)

        slot = _parse_slot(command.slot)
        wallet = normalize_wallet(command.wallet, slot.value)

        # READY_FOR_DISPATCH still allows re-assignment until the first container leaves
        containers = load_containers(shipment)
        if any(c.current_status not in (ContainerStatus.CREATED, ContainerStatus.READY_FOR_PICKUP) for c in containers):
            raise Conflict(
                "Custody can no longer be re-assigned once pickup has started",
                shipment_id=shipment.shipment_id,
            )

        require_actor(wallet, SLOT_ROLES[slot], slot.value)
        shipment.reassign(slot, wallet, reassigned_by=actor_wallet)
        repo.add(shipment)

        logger.info("Custody re-assigned", shipment_id=shipment.shipment_id, slot=slot.value, wallet=wallet)

    @handle(StageNextLeg)
    def stage_next_leg(self, command):
        repo = current_domain.repository_for(Shipment)
        shipment = repo.get(command.shipment_id)

        actor_wallet = normalize_wallet(command.actor_wallet, "actor_wallet")
        if parse_role(command.actor_role) != ActorRole.WAREHOUSE or actor_wallet != shipment.assigned_warehouse:
            raise ForbiddenActor("Only the assigned warehouse can stage the next leg", wallet=actor_wallet)

        next_transporter = None
        if command.next_transporter:
            next_transporter = normalize_wallet(command.next_transporter, "next_transporter")
        retailer = None
        if command.retailer:
            retailer = normalize_wallet(command.retailer, "retailer")

        if shipment.current_status != ShipmentStatus.AT_WAREHOUSE:
            raise Conflict(
                f"Next leg can only be staged at the warehouse (shipment is {shipment.status})",
                shipment_id=shipment.shipment_id,
            )

        if next_transporter:
            require_actor(next_transporter, SLOT_ROLES[CustodySlot.NEXT_TRANSPORTER], CustodySlot.NEXT_TRANSPORTER.value)
        if retailer:
            require_actor(retailer, SLOT_ROLES[CustodySlot.RETAILER], CustodySlot.RETAILER.value)

        shipment.stage_next_leg(staged_by=actor_wallet, next_transporter=next_transporter, retailer=retailer)
        repo.add(shipment)

        logger.info(
            "Next leg staged",
            shipment_id=shipment.shipment_id,
            next_transporter=shipment.next_transporter,
            assigned_retailer=shipment.assigned_retailer,
        )
