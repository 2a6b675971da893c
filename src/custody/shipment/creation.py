"""Shipment creation — command and handler.

The shipment and its fixed container set are minted in one unit of work, so
a shipment without its containers (or vice versa) is never persisted.
"""

import re

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from custody.container.container import Container
from custody.directory import require_actor
from custody.domain import custody
from custody.errors import Conflict, ForbiddenActor
from custody.shared.roles import ActorRole, parse_role
from custody.shared.wallet import normalize_wallet
from custody.shipment.shipment import Shipment

logger = structlog.get_logger(__name__)

_SHIPMENT_ID = re.compile(r"^0x[a-f0-9]{64}$")


@custody.command(part_of="Shipment")
class CreateShipment:
    shipment_id = Identifier()  # Derived from the identity fields when omitted
    supplier_wallet = String(required=True, max_length=42)
    actor_role = String(required=True, max_length=20)
    batch_id = String(required=True, max_length=100)
    product_name = String(required=True, max_length=200)
    number_of_containers = Integer(required=True, min_value=1)
    quantity_per_container = Integer(required=True, min_value=1)
    assigned_transporter = String(max_length=42)
    assigned_warehouse = String(max_length=42)


@custody.command_handler(part_of=Shipment)
class CreateShipmentHandler:
    @handle(CreateShipment)
    def create_shipment(self, command):
        if parse_role(command.actor_role) != ActorRole.SUPPLIER:
            raise ForbiddenActor("Only suppliers can create shipments", role=command.actor_role)

        supplier_wallet = normalize_wallet(command.supplier_wallet, "supplier_wallet")
        batch_id = command.batch_id.strip()
        product_name = command.product_name.strip()
        if not batch_id:
            raise ValidationError({"batch_id": ["Batch ID is required"]})
        if not product_name:
            raise ValidationError({"product_name": ["Product name is required"]})

        shipment_id = None
        if command.shipment_id:
            shipment_id = str(command.shipment_id).strip().lower()
            if not _SHIPMENT_ID.match(shipment_id):
                raise ValidationError({"shipment_id": ["Shipment id must be 0x followed by 64 hex characters"]})

        transporter = None
        if command.assigned_transporter:
            transporter = normalize_wallet(command.assigned_transporter, "assigned_transporter")
            require_actor(transporter, ActorRole.TRANSPORTER, "assigned_transporter")
        warehouse = None
        if command.assigned_warehouse:
            warehouse = normalize_wallet(command.assigned_warehouse, "assigned_warehouse")
            require_actor(warehouse, ActorRole.WAREHOUSE, "assigned_warehouse")

        shipment = Shipment.create(
            supplier_wallet=supplier_wallet,
            batch_id=batch_id,
            product_name=product_name,
            number_of_containers=command.number_of_containers,
            quantity_per_container=command.quantity_per_container,
            assigned_transporter=transporter,
            assigned_warehouse=warehouse,
            shipment_id=shipment_id,
        )

        repo = current_domain.repository_for(Shipment)
        try:
            repo.get(shipment.shipment_id)
        except ObjectNotFoundError:
            pass
        else:
            raise Conflict(f"Shipment {shipment.shipment_id} already exists", shipment_id=shipment.shipment_id)

        repo.add(shipment)
        container_repo = current_domain.repository_for(Container)
        for ordinal in range(1, shipment.number_of_containers + 1):
            container_repo.add(Container.mint(shipment.shipment_id, ordinal, shipment.quantity_per_container))

        logger.info(
            "Shipment created",
            shipment_id=shipment.shipment_id,
            batch_id=batch_id,
            number_of_containers=shipment.number_of_containers,
            total_quantity=shipment.total_quantity,
        )
        return shipment.shipment_id
