"""Container domain events."""

from protean.fields import DateTime, Identifier, Integer, String

from custody.domain import custody


@custody.event(part_of="Container")
class ContainerMinted:
    __version__ = 1

    container_id = Identifier(required=True)
    shipment_id = Identifier(required=True)
    ordinal = Integer(required=True)
    quantity = Integer(required=True)
    minted_at = DateTime(required=True)


@custody.event(part_of="Container")
class ContainerReadied:
    """The container is ready for pickup on a (new) leg."""

    __version__ = 1

    container_id = Identifier(required=True)
    shipment_id = Identifier(required=True)
    from_status = String(required=True)
    leg = Integer(required=True)
    readied_at = DateTime(required=True)


@custody.event(part_of="Container")
class ContainerCustodyAdvanced:
    """An accepted scan moved the container to a new sub-state.

    The quorum gate re-evaluates the owning shipment every time this fires.
    """

    __version__ = 1

    container_id = Identifier(required=True)
    shipment_id = Identifier(required=True)
    ordinal = Integer(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    leg = Integer(required=True)
    action = String(required=True)
    actor_wallet = String(required=True)
    actor_role = String(required=True)
    scanned_at = DateTime(required=True)
