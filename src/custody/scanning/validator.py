"""Scan validation — turns a physical QR scan into an accepted or rejected custody step.

Checks run in a fixed order, and the first failure decides the outcome:

1. Token integrity and identity (InvalidToken), before any business rule.
2. VERIFY is accepted for any actor without touching the container.
3. Role expected for the action (ForbiddenActor).
4. Wallet assigned to the shipment's current leg for that role (ForbiddenActor).
5. Container sub-state against the action (StaleOrOutOfOrderScan).

Rejections are returned to the caller, not raised: every scan, accepted or
rejected, must leave exactly one ScanLog entry, and raising would roll it back
with the rest of the unit of work.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import String
from protean.utils.globals import current_domain

from custody.container.container import ACTION_ROLES, Container, ScanAction
from custody.domain import custody
from custody.errors import CustodyError, ForbiddenActor, InvalidToken
from custody.scanning.scan_log import ScanLog, ScanResult, find_by_idempotency_key
from custody.scanning.token import decode_token, normalize_raw
from custody.shared.roles import ActorRole, parse_role
from custody.shared.wallet import normalize_wallet
from custody.shipment.shipment import Shipment

logger = structlog.get_logger(__name__)


@custody.command(part_of="Container")
class ScanContainer:
    raw_token = String(required=True, max_length=1000)
    action = String(required=True, choices=ScanAction)
    actor_wallet = String(required=True, max_length=42)
    actor_role = String(required=True, max_length=20)
    location = String(max_length=255)
    idempotency_key = String(max_length=100)
    tx_ref = String(max_length=100)


def validate_scan(
    raw_token: str,
    action: ScanAction,
    actor_wallet: str,
    actor_role: ActorRole | None,
    context: dict,
) -> Container | None:
    """Run the scan checks and apply the container transition.

    Returns the mutated container, or None when nothing needs saving. Fills
    ``context`` with whatever became known about the scan along the way, so a
    rejection is logged with as much identity as was established.
    """
    decoded = decode_token(raw_token)
    context["container_id"] = decoded.container_id

    try:
        container = current_domain.repository_for(Container).get(decoded.container_id)
    except ObjectNotFoundError as exc:
        raise InvalidToken("QR token references an unknown container", container_id=decoded.container_id) from exc

    if decoded.shipment_id != container.shipment_id or decoded.ordinal != container.ordinal:
        raise InvalidToken(
            "QR token does not match the container's identity",
            container_id=container.container_id,
        )

    context.update(
        shipment_id=container.shipment_id,
        ordinal=container.ordinal,
        leg=container.leg,
        status_before=container.status,
        status_after=container.status,
    )

    if action == ScanAction.VERIFY:
        return None

    expected_role = ACTION_ROLES[action]
    if actor_role != expected_role:
        raise ForbiddenActor(
            f"{action.value} must be performed by a {expected_role.value}",
            role=actor_role.value if actor_role else None,
        )

    try:
        shipment = current_domain.repository_for(Shipment).get(container.shipment_id)
    except ObjectNotFoundError as exc:
        raise InvalidToken("QR token references an unknown shipment", shipment_id=container.shipment_id) from exc

    if shipment.assignee_for(expected_role) != actor_wallet:
        raise ForbiddenActor(
            f"{actor_wallet} is not the {expected_role.value} assigned to leg {shipment.leg}",
            wallet=actor_wallet,
        )

    before = container.status
    after = container.apply_scan(action, actor_wallet, actor_role, shipment.destination)
    context["status_after"] = after.value
    return container if after.value != before else None


@custody.command_handler(part_of=Container)
class ScanContainerHandler:
    @handle(ScanContainer)
    def scan(self, command):
        actor_wallet = normalize_wallet(command.actor_wallet, "actor_wallet")
        actor_role = parse_role(command.actor_role)
        action = ScanAction(command.action)

        if command.idempotency_key:
            previous = find_by_idempotency_key(actor_wallet, command.idempotency_key)
            if previous is not None:
                logger.info("Scan replayed", scan_id=str(previous.scan_id), idempotency_key=command.idempotency_key)
                return {**previous.to_outcome(), "replayed": True}

        context: dict = {}
        try:
            container = validate_scan(command.raw_token, action, actor_wallet, actor_role, context)
            result, code, reason = ScanResult.ACCEPTED, None, None
        except CustodyError as exc:
            container = None
            result, code, reason = ScanResult.REJECTED, exc.code, exc.message

        entry = ScanLog.record(
            actor_wallet,
            action.value,
            result,
            actor_role=actor_role.value if actor_role else command.actor_role,
            code=code,
            reason=reason,
            raw_token=normalize_raw(command.raw_token)[:500],
            location=command.location,
            idempotency_key=command.idempotency_key,
            tx_ref=command.tx_ref,
            **context,
        )
        current_domain.repository_for(ScanLog).add(entry)
        if container is not None:
            current_domain.repository_for(Container).add(container)

        logger.info(
            "Scan recorded",
            scan_id=str(entry.scan_id),
            result=entry.result,
            code=code,
            action=action.value,
            container_id=entry.container_id,
            status_after=entry.status_after,
        )
        return {**entry.to_outcome(), "replayed": False}
