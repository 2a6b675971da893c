"""Container quorum gate.

A shipment may only take a custody edge once every one of its containers has
independently reached the matching sub-state on the shipment's current leg.
The gate is a predicate re-evaluated over the container records each time;
it keeps no counter and has no side effects, so redundant evaluations are
harmless.
"""

from protean.utils.globals import current_domain

from custody.container.container import RANK, Container, ContainerStatus, derive_container_id
from custody.shipment.shipment import Shipment, ShipmentStatus

# Shipment target → container sub-state every container must have reached
QUORUM_TARGETS = {
    ShipmentStatus.IN_TRANSIT: ContainerStatus.PICKED_UP,
    ShipmentStatus.AT_WAREHOUSE: ContainerStatus.RECEIVED,
    ShipmentStatus.DELIVERED: ContainerStatus.DELIVERED,
}

# Container sub-state reached by a scan → shipment target it may unlock
SHIPMENT_TARGETS = {container_status: target for target, container_status in QUORUM_TARGETS.items()}


def load_containers(shipment: Shipment) -> list[Container]:
    """Read every container of ``shipment`` by its derived id, in ordinal order."""
    repo = current_domain.repository_for(Container)
    return [
        repo.get(derive_container_id(shipment.shipment_id, ordinal))
        for ordinal in range(1, shipment.number_of_containers + 1)
    ]


def quorum_satisfied(shipment: Shipment, containers: list[Container], required: ContainerStatus) -> bool:
    """True when all of the shipment's containers are at ``required`` or beyond on its current leg."""
    if len(containers) != shipment.number_of_containers:
        return False
    return all(
        container.shipment_id == shipment.shipment_id
        and container.leg == shipment.leg
        and RANK[container.current_status] >= RANK[required]
        for container in containers
    )


def quorum_for(shipment: Shipment, target: ShipmentStatus, containers: list[Container] | None = None) -> bool:
    """Evaluate the gate for a shipment-level target. Targets without a container quorum pass."""
    required = QUORUM_TARGETS.get(target)
    if required is None:
        return True
    if containers is None:
        containers = load_containers(shipment)
    return quorum_satisfied(shipment, containers, required)
