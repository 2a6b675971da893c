"""Shipment progress — dashboard view of container counts per sub-state."""

from protean.core.projector import on
from protean.exceptions import ObjectNotFoundError
from protean.fields import Boolean, DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from custody.container.container import Container, ContainerStatus
from custody.container.events import ContainerCustodyAdvanced, ContainerMinted, ContainerReadied
from custody.domain import custody
from custody.shipment.events import ShipmentAnchored, ShipmentCreated, ShipmentStatusChanged
from custody.shipment.shipment import Shipment

# Upper bound for one shipment's container read
_CONTAINER_QUERY_LIMIT = 10_000

# Container sub-state → counter field on the view
_COUNTERS = {
    ContainerStatus.CREATED.value: "created_count",
    ContainerStatus.READY_FOR_PICKUP.value: "ready_count",
    ContainerStatus.PICKED_UP.value: "picked_up_count",
    ContainerStatus.RECEIVED.value: "received_count",
    ContainerStatus.DELIVERED.value: "delivered_count",
}


@custody.projection
class ShipmentProgressView:
    shipment_id = Identifier(identifier=True, required=True)
    batch_id = String(max_length=100)
    product_name = String(max_length=200)
    status = String(max_length=30)
    leg = Integer(default=1)
    anchored = Boolean(default=False)
    total_containers = Integer(default=0)
    created_count = Integer(default=0)
    ready_count = Integer(default=0)
    picked_up_count = Integer(default=0)
    received_count = Integer(default=0)
    delivered_count = Integer(default=0)
    updated_at = DateTime()


@custody.projector(projector_for=ShipmentProgressView, aggregates=[Shipment, Container])
class ShipmentProgressProjector:
    """Counts are recomputed from the container records on every event, so a
    redelivered or reordered event leaves the view unchanged."""

    def _load(self, shipment_id):
        repo = current_domain.repository_for(ShipmentProgressView)
        try:
            return repo.get(shipment_id)
        except ObjectNotFoundError:
            return ShipmentProgressView(shipment_id=shipment_id)

    def _recount(self, view):
        containers = (
            current_domain.repository_for(Container)
            ._dao.query.filter(shipment_id=view.shipment_id)
            .limit(_CONTAINER_QUERY_LIMIT)
            .all()
            .items
        )
        for field in _COUNTERS.values():
            setattr(view, field, 0)
        for container in containers:
            field = _COUNTERS[container.status]
            setattr(view, field, getattr(view, field) + 1)

    def _refresh(self, shipment_id, at):
        view = self._load(shipment_id)
        self._recount(view)
        view.updated_at = at
        current_domain.repository_for(ShipmentProgressView).add(view)

    @on(ShipmentCreated)
    def on_shipment_created(self, event):
        view = self._load(event.shipment_id)
        view.batch_id = event.batch_id
        view.product_name = event.product_name
        view.status = "CREATED"
        view.leg = 1
        view.total_containers = event.number_of_containers
        view.updated_at = event.created_at
        self._recount(view)
        current_domain.repository_for(ShipmentProgressView).add(view)

    @on(ShipmentStatusChanged)
    def on_status_changed(self, event):
        view = self._load(event.shipment_id)
        view.status = event.to_status
        view.leg = event.leg
        view.updated_at = event.changed_at
        self._recount(view)
        current_domain.repository_for(ShipmentProgressView).add(view)

    @on(ShipmentAnchored)
    def on_shipment_anchored(self, event):
        view = self._load(event.shipment_id)
        view.anchored = True
        current_domain.repository_for(ShipmentProgressView).add(view)

    @on(ContainerMinted)
    def on_container_minted(self, event):
        self._refresh(event.shipment_id, event.minted_at)

    @on(ContainerReadied)
    def on_container_readied(self, event):
        self._refresh(event.shipment_id, event.readied_at)

    @on(ContainerCustodyAdvanced)
    def on_container_advanced(self, event):
        self._refresh(event.shipment_id, event.scanned_at)
