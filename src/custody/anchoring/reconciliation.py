"""Anchor reconciliation — apply one on-chain lock record to the off-chain shipment.

Idempotent on ``(shipment_id, tx_ref)``: re-applying a record that is already
reflected is a no-op. The whole upsert (shipment, anchor, status and
container readiness) is one unit of work, so a failure part-way leaves
nothing behind and the same chain event can simply be processed again.
"""

from datetime import UTC, datetime

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from custody.chain.port import ChainRecord
from custody.container.container import Container, ContainerStatus
from custody.container.quorum import load_containers
from custody.domain import custody
from custody.errors import Conflict
from custody.shared.wallet import normalize_wallet
from custody.shipment.shipment import Shipment

logger = structlog.get_logger(__name__)


class ReconcileOutcome:
    CREATED = "CREATED"
    ANCHORED = "ANCHORED"
    ALREADY_APPLIED = "ALREADY_APPLIED"


# Identity fields the chain is authoritative for
IDENTITY_FIELDS = ("supplier_wallet", "batch_id", "number_of_containers", "quantity_per_container")


@custody.command(part_of="Shipment")
class ReconcileAnchor:
    shipment_id = Identifier(required=True)
    supplier_wallet = String(required=True, max_length=42)
    batch_id = String(required=True, max_length=100)
    number_of_containers = Integer(required=True, min_value=1)
    quantity_per_container = Integer(required=True, min_value=1)
    tx_ref = String(required=True, max_length=100)
    block_ref = Integer(required=True, min_value=0)
    anchored_at = DateTime()


def command_from_record(record: ChainRecord) -> ReconcileAnchor:
    return ReconcileAnchor(
        shipment_id=record.shipment_id,
        supplier_wallet=record.supplier_wallet,
        batch_id=record.batch_id,
        number_of_containers=record.number_of_containers,
        quantity_per_container=record.quantity_per_container,
        tx_ref=record.tx_ref,
        block_ref=record.block_ref,
        anchored_at=record.anchored_at,
    )


def identity_mismatches(shipment: Shipment, on_chain: dict) -> list[str]:
    return [field for field in IDENTITY_FIELDS if getattr(shipment, field) != on_chain[field]]


@custody.command_handler(part_of=Shipment)
class ReconcileAnchorHandler:
    @handle(ReconcileAnchor)
    def reconcile(self, command):
        shipment_id = str(command.shipment_id).lower()
        supplier_wallet = normalize_wallet(command.supplier_wallet, "supplier_wallet")
        anchored_at = command.anchored_at or datetime.now(UTC)

        repo = current_domain.repository_for(Shipment)
        container_repo = current_domain.repository_for(Container)

        try:
            shipment = repo.get(shipment_id)
        except ObjectNotFoundError:
            shipment = None

        if shipment is None:
            # Locked on-chain without an off-chain draft: build it from the chain record
            shipment = Shipment.create(
                supplier_wallet=supplier_wallet,
                batch_id=command.batch_id,
                product_name=command.batch_id,
                number_of_containers=command.number_of_containers,
                quantity_per_container=command.quantity_per_container,
                shipment_id=shipment_id,
            )
            containers = [
                Container.mint(shipment_id, ordinal, command.quantity_per_container)
                for ordinal in range(1, command.number_of_containers + 1)
            ]
            outcome = ReconcileOutcome.CREATED
        else:
            mismatched = identity_mismatches(
                shipment,
                {
                    "supplier_wallet": supplier_wallet,
                    "batch_id": command.batch_id,
                    "number_of_containers": command.number_of_containers,
                    "quantity_per_container": command.quantity_per_container,
                },
            )
            if mismatched:
                logger.error(
                    "Blockchain mismatch",
                    shipment_id=shipment_id,
                    tx_ref=command.tx_ref,
                    fields=mismatched,
                )
                raise Conflict(
                    "Blockchain mismatch: on-chain identity differs from the off-chain shipment",
                    shipment_id=shipment_id,
                    fields=mismatched,
                )
            containers = None
            outcome = ReconcileOutcome.ANCHORED

        if not shipment.anchor_on_chain(command.tx_ref, command.block_ref, anchored_at):
            logger.debug("Anchor already applied", shipment_id=shipment_id, tx_ref=command.tx_ref)
            return ReconcileOutcome.ALREADY_APPLIED

        if containers is None:
            containers = load_containers(shipment)
        for container in containers:
            if container.current_status == ContainerStatus.CREATED:
                container.make_ready(shipment.leg)

        repo.add(shipment)
        for container in containers:
            container_repo.add(container)

        logger.info(
            "Shipment anchored",
            shipment_id=shipment_id,
            tx_ref=command.tx_ref,
            block_ref=command.block_ref,
            outcome=outcome,
        )
        return outcome
