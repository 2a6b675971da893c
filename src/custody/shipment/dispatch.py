"""Dispatch to the next leg — command and handler.

Promotion of the staged transporter, clearing of the staging slot, the reset
of every container and the status write are applied in a single unit of
work: either all of them are committed or none is.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from custody.container.container import Container
from custody.container.quorum import load_containers
from custody.domain import custody
from custody.shared.roles import parse_role
from custody.shared.wallet import normalize_wallet
from custody.shipment.shipment import Shipment

logger = structlog.get_logger(__name__)


@custody.command(part_of="Shipment")
class DispatchNextLeg:
    shipment_id = Identifier(required=True)
    actor_wallet = String(required=True, max_length=42)
    actor_role = String(required=True, max_length=20)


def dispatch_next_leg(shipment: Shipment, actor_wallet: str, actor_role) -> list[Container]:
    """Apply the dispatch edge to ``shipment`` and reset its containers. Caller persists both."""
    containers = load_containers(shipment)
    shipment.dispatch_next_leg(actor_wallet, actor_role)
    for container in containers:
        container.make_ready(shipment.leg)
    return containers


@custody.command_handler(part_of=Shipment)
class DispatchNextLegHandler:
    @handle(DispatchNextLeg)
    def dispatch(self, command):
        repo = current_domain.repository_for(Shipment)
        shipment = repo.get(command.shipment_id)
        actor_wallet = normalize_wallet(command.actor_wallet, "actor_wallet")

        containers = dispatch_next_leg(shipment, actor_wallet, parse_role(command.actor_role))

        repo.add(shipment)
        container_repo = current_domain.repository_for(Container)
        for container in containers:
            container_repo.add(container)

        logger.info(
            "Shipment dispatched for next leg",
            shipment_id=shipment.shipment_id,
            leg=shipment.leg,
            assigned_transporter=shipment.assigned_transporter,
        )
