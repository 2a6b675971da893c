"""Shipment transitions — explicit requests and quorum-driven advancement.

``AdvanceShipment`` lets an actor request an edge of the custody graph
directly. ``ContainerQuorumEventHandler`` reacts to every accepted container
scan, re-evaluates the quorum gate and, when satisfied, performs the same
transition on behalf of the scanning actor.

Concurrent final scans may both observe a satisfied quorum. The transition is
conditioned on the shipment's *current* status and persisted with the
aggregate's version, so only one of them writes; the other observes the
advanced status and does nothing.
"""

import structlog
from protean import handle
from protean.exceptions import ExpectedVersionError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from custody.container.container import Container, ContainerStatus
from custody.container.events import ContainerCustodyAdvanced
from custody.container.quorum import QUORUM_TARGETS, SHIPMENT_TARGETS, load_containers, quorum_for
from custody.domain import custody
from custody.errors import Conflict, CustodyError, ForbiddenActor
from custody.shared.roles import ActorRole, parse_role
from custody.shared.wallet import normalize_wallet
from custody.shipment.dispatch import dispatch_next_leg
from custody.shipment.shipment import EDGES, Shipment, ShipmentStatus, check_transition

logger = structlog.get_logger(__name__)


@custody.command(part_of="Shipment")
class AdvanceShipment:
    shipment_id = Identifier(required=True)
    target_status = String(required=True, choices=ShipmentStatus)
    actor_wallet = String(required=True, max_length=42)
    actor_role = String(required=True, max_length=20)
    note = String(max_length=500)


def _assert_assignee(shipment: Shipment, actor_wallet: str, actor_role: ActorRole | None) -> None:
    if actor_role is None or actor_role == ActorRole.SYSTEM:
        return
    if shipment.assignee_for(actor_role) != actor_wallet:
        raise ForbiddenActor(
            f"{actor_wallet} is not the {actor_role.value} assigned to this shipment",
            shipment_id=shipment.shipment_id,
            wallet=actor_wallet,
        )


def advance_shipment(
    shipment: Shipment,
    target: ShipmentStatus,
    actor_wallet: str,
    actor_role: ActorRole | None,
    note: str | None = None,
) -> list[Container]:
    """Move ``shipment`` to ``target`` if the gate allows it.

    Returns the containers the caller must persist alongside the shipment
    (only the dispatch edge touches containers).
    """
    if target == ShipmentStatus.READY_FOR_DISPATCH and shipment.current_status == ShipmentStatus.AT_WAREHOUSE:
        return dispatch_next_leg(shipment, actor_wallet, actor_role)

    # Edge and role are judged before the quorum
    check_transition(shipment.current_status, target, actor_role, shipment.destination)
    _assert_assignee(shipment, actor_wallet, actor_role)

    if not quorum_for(shipment, target):
        raise Conflict(
            f"Not every container has reached {QUORUM_TARGETS[target].value}",
            shipment_id=shipment.shipment_id,
            target_status=target.value,
        )

    shipment.advance(target, actor_wallet, actor_role, note=note)
    return []


@custody.command_handler(part_of=Shipment)
class AdvanceShipmentHandler:
    @handle(AdvanceShipment)
    def advance(self, command):
        repo = current_domain.repository_for(Shipment)
        shipment = repo.get(command.shipment_id)
        source = shipment.status

        containers = advance_shipment(
            shipment,
            ShipmentStatus(command.target_status),
            normalize_wallet(command.actor_wallet, "actor_wallet"),
            parse_role(command.actor_role),
            note=command.note,
        )

        repo.add(shipment)
        container_repo = current_domain.repository_for(Container)
        for container in containers:
            container_repo.add(container)

        logger.info(
            "Shipment advanced",
            shipment_id=shipment.shipment_id,
            from_status=source,
            to_status=shipment.status,
            leg=shipment.leg,
        )
        return shipment.status


def sources_for(target: ShipmentStatus) -> set[ShipmentStatus]:
    return {source for source, edge_target in EDGES if edge_target == target}


@custody.event_handler(part_of=Container, stream_category="custody::container")
class ContainerQuorumEventHandler:
    """Re-evaluates the quorum gate after each accepted container scan."""

    @handle(ContainerCustodyAdvanced)
    def on_container_advanced(self, event: ContainerCustodyAdvanced) -> None:
        target = SHIPMENT_TARGETS.get(ContainerStatus(event.to_status))
        if target is None:
            return

        repo = current_domain.repository_for(Shipment)
        shipment = repo.get(event.shipment_id)
        if shipment.current_status not in sources_for(target) or shipment.leg != event.leg:
            # Already advanced by a concurrent scan, or the event is from an earlier leg
            return

        containers = load_containers(shipment)
        if not quorum_for(shipment, target, containers):
            logger.debug(
                "Quorum not yet satisfied",
                shipment_id=shipment.shipment_id,
                target_status=target.value,
                ready=sum(1 for c in containers if c.status == event.to_status),
                total=shipment.number_of_containers,
            )
            return

        try:
            current_domain.process(
                AdvanceShipment(
                    shipment_id=shipment.shipment_id,
                    target_status=target.value,
                    actor_wallet=event.actor_wallet,
                    actor_role=event.actor_role,
                    note=f"All {shipment.number_of_containers} containers {event.to_status}",
                ),
                asynchronous=False,
            )
        except ExpectedVersionError:
            logger.info("Shipment already advanced by a concurrent scan", shipment_id=shipment.shipment_id)
        except CustodyError as exc:
            logger.warning(
                "Quorum satisfied but shipment did not advance",
                shipment_id=shipment.shipment_id,
                target_status=target.value,
                code=exc.code,
                error=exc.message,
            )
