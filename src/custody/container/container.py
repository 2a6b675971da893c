"""Container aggregate — one physically scanned sub-unit of a shipment.

Containers are separate aggregates so that scans on different containers of
the same shipment are independent read-modify-write units. Each container
belongs to exactly one shipment (``shipment_id`` is a back-reference, not
ownership) and the set is fixed when the shipment is minted.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Identifier, Integer, String

from custody.container.events import ContainerCustodyAdvanced, ContainerMinted, ContainerReadied
from custody.domain import custody
from custody.errors import StaleOrOutOfOrderScan
from custody.shared.roles import ActorRole


class ContainerStatus(Enum):
    CREATED = "CREATED"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    PICKED_UP = "PICKED_UP"
    RECEIVED = "RECEIVED"
    DELIVERED = "DELIVERED"


class ScanAction(Enum):
    PICKUP = "PICKUP"
    RECEIVE = "RECEIVE"
    HANDOVER = "HANDOVER"
    DELIVER = "DELIVER"
    VERIFY = "VERIFY"


# Position along a leg; a higher rank supersedes a lower one
RANK = {
    ContainerStatus.CREATED: 0,
    ContainerStatus.READY_FOR_PICKUP: 1,
    ContainerStatus.PICKED_UP: 2,
    ContainerStatus.RECEIVED: 3,
    ContainerStatus.DELIVERED: 4,
}

# Role expected to perform each mutating action
ACTION_ROLES = {
    ScanAction.PICKUP: ActorRole.TRANSPORTER,
    ScanAction.HANDOVER: ActorRole.TRANSPORTER,
    ScanAction.RECEIVE: ActorRole.WAREHOUSE,
    ScanAction.DELIVER: ActorRole.RETAILER,
}

# (action, current) → (next, leg destination the edge requires or None)
_TRANSITIONS: dict[tuple[ScanAction, ContainerStatus], tuple[ContainerStatus, ActorRole | None]] = {
    (ScanAction.PICKUP, ContainerStatus.READY_FOR_PICKUP): (ContainerStatus.PICKED_UP, None),
    (ScanAction.HANDOVER, ContainerStatus.PICKED_UP): (ContainerStatus.PICKED_UP, None),
    (ScanAction.RECEIVE, ContainerStatus.PICKED_UP): (ContainerStatus.RECEIVED, ActorRole.WAREHOUSE),
    (ScanAction.DELIVER, ContainerStatus.RECEIVED): (ContainerStatus.DELIVERED, None),
    (ScanAction.DELIVER, ContainerStatus.PICKED_UP): (ContainerStatus.DELIVERED, ActorRole.RETAILER),
}


def derive_container_id(shipment_id: str, ordinal: int) -> str:
    stem = shipment_id[2:] if shipment_id.startswith("0x") else shipment_id
    return f"CNT-{stem[:12].upper()}-{ordinal:04d}"


def next_status(
    action: ScanAction,
    current: ContainerStatus,
    leg_destination: ActorRole | None = None,
) -> ContainerStatus | None:
    """The single legal sub-state after ``action``, or None if the scan is out of order."""
    if action == ScanAction.VERIFY:
        return current
    entry = _TRANSITIONS.get((action, current))
    if entry is None:
        return None
    target, required_destination = entry
    if required_destination is not None and leg_destination is not None and leg_destination != required_destination:
        return None
    return target


@custody.aggregate
class Container:
    container_id = Identifier(identifier=True)
    shipment_id = Identifier(required=True)
    ordinal = Integer(required=True, min_value=1)
    quantity = Integer(required=True, min_value=1)
    status = String(choices=ContainerStatus, default=ContainerStatus.CREATED.value)
    leg = Integer(default=1, min_value=1)
    last_actor = String(max_length=42)
    last_scanned_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def mint(cls, shipment_id: str, ordinal: int, quantity: int):
        """Mint one container of a shipment. It becomes ready for pickup once the shipment is anchored."""
        now = datetime.now(UTC)
        container = cls(
            container_id=derive_container_id(shipment_id, ordinal),
            shipment_id=shipment_id,
            ordinal=ordinal,
            quantity=quantity,
            status=ContainerStatus.CREATED.value,
            leg=1,
            created_at=now,
            updated_at=now,
        )
        container.raise_(
            ContainerMinted(
                container_id=container.container_id,
                shipment_id=shipment_id,
                ordinal=ordinal,
                quantity=quantity,
                minted_at=now,
            )
        )
        return container

    @property
    def current_status(self) -> ContainerStatus:
        return ContainerStatus(self.status)

    @property
    def rank(self) -> int:
        return RANK[self.current_status]

    @property
    def qr_token(self) -> str:
        from custody.scanning.token import encode_token

        return encode_token(self.container_id, self.shipment_id, self.ordinal)

    def make_ready(self, leg: int) -> None:
        """Reset the container to READY_FOR_PICKUP for ``leg``."""
        now = datetime.now(UTC)
        previous = self.status
        self.status = ContainerStatus.READY_FOR_PICKUP.value
        self.leg = leg
        self.updated_at = now
        self.raise_(
            ContainerReadied(
                container_id=self.container_id,
                shipment_id=self.shipment_id,
                from_status=previous,
                leg=leg,
                readied_at=now,
            )
        )

    def apply_scan(
        self,
        action: ScanAction,
        actor_wallet: str,
        actor_role: ActorRole,
        leg_destination: ActorRole | None = None,
    ) -> ContainerStatus:
        """Advance the sub-state for an authorised scan and return the new sub-state.

        Raises StaleOrOutOfOrderScan when the action does not fit the current
        sub-state. VERIFY and HANDOVER leave the sub-state unchanged.
        """
        source = self.current_status
        target = next_status(action, source, leg_destination)
        if target is None:
            raise StaleOrOutOfOrderScan(
                f"{action.value} is not valid while container is {source.value}",
                container_id=self.container_id,
                status=source.value,
                action=action.value,
            )
        if target == source:
            return target

        now = datetime.now(UTC)
        self.status = target.value
        self.last_actor = actor_wallet
        self.last_scanned_at = now
        self.updated_at = now
        self.raise_(
            ContainerCustodyAdvanced(
                container_id=self.container_id,
                shipment_id=self.shipment_id,
                ordinal=self.ordinal,
                from_status=source.value,
                to_status=target.value,
                leg=self.leg,
                action=action.value,
                actor_wallet=actor_wallet,
                actor_role=actor_role.value,
                scanned_at=now,
            )
        )
        return target
