"""Shipment details amendment — command and handler."""

from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from custody.domain import custody
from custody.errors import ForbiddenActor
from custody.shared.roles import ActorRole, parse_role
from custody.shared.wallet import normalize_wallet
from custody.shipment.shipment import Shipment


@custody.command(part_of="Shipment")
class AmendShipmentDetails:
    shipment_id = Identifier(required=True)
    product_name = String(max_length=200)
    batch_id = String(max_length=100)
    number_of_containers = Integer(min_value=1)
    quantity_per_container = Integer(min_value=1)
    actor_wallet = String(required=True, max_length=42)
    actor_role = String(required=True, max_length=20)


@custody.command_handler(part_of=Shipment)
class AmendShipmentDetailsHandler:
    @handle(AmendShipmentDetails)
    def amend_details(self, command):
        repo = current_domain.repository_for(Shipment)
        shipment = repo.get(command.shipment_id)

        actor_wallet = normalize_wallet(command.actor_wallet, "actor_wallet")
        if parse_role(command.actor_role) != ActorRole.SUPPLIER or actor_wallet != shipment.supplier_wallet:
            raise ForbiddenActor("Only the shipment's supplier can amend its details", wallet=actor_wallet)

        shipment.amend_details(
            product_name=command.product_name.strip() if command.product_name else None,
            batch_id=command.batch_id.strip() if command.batch_id else None,
            number_of_containers=command.number_of_containers,
            quantity_per_container=command.quantity_per_container,
        )
        repo.add(shipment)
