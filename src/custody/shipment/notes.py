"""Custody notes — exception reports raised by any party to a shipment.

A note is the only channel for partial-quantity findings (shortfall, damage,
missing container). Notes never change status and never satisfy a quorum.
The shipment's supplier (or an admin) follows a note up by acknowledging,
investigating and finally resolving or dismissing it.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Boolean, Identifier, String, Text
from protean.utils.globals import current_domain

from custody.container.container import Container
from custody.directory import is_admin
from custody.domain import custody
from custody.errors import ForbiddenActor
from custody.shared.roles import ActorRole, parse_role
from custody.shared.wallet import normalize_wallet
from custody.shipment.shipment import NoteSeverity, NoteStatus, NoteType, Shipment

logger = structlog.get_logger(__name__)


@custody.command(part_of="Shipment")
class AddCustodyNote:
    shipment_id = Identifier(required=True)
    note = Text(required=True)
    note_type = String(choices=NoteType, default=NoteType.OTHER.value)
    severity = String(choices=NoteSeverity, default=NoteSeverity.LOW.value)
    container_id = String(max_length=50)
    actor_wallet = String(required=True, max_length=42)
    actor_role = String(required=True, max_length=20)


@custody.command(part_of="Shipment")
class AcknowledgeCustodyNote:
    shipment_id = Identifier(required=True)
    note_id = Identifier(required=True)
    actor_wallet = String(required=True, max_length=42)
    actor_role = String(required=True, max_length=20)


@custody.command(part_of="Shipment")
class InvestigateCustodyNote:
    shipment_id = Identifier(required=True)
    note_id = Identifier(required=True)
    actor_wallet = String(required=True, max_length=42)
    actor_role = String(required=True, max_length=20)


@custody.command(part_of="Shipment")
class ResolveCustodyNote:
    shipment_id = Identifier(required=True)
    note_id = Identifier(required=True)
    resolution = Text(required=True)
    dismiss = Boolean(default=False)
    actor_wallet = String(required=True, max_length=42)
    actor_role = String(required=True, max_length=20)


def _authorize_follow_up(shipment: Shipment, actor_wallet: str, actor_role: str) -> None:
    role = parse_role(actor_role)
    if role == ActorRole.ADMIN and is_admin(actor_wallet):
        return
    if role != ActorRole.SUPPLIER or actor_wallet != shipment.supplier_wallet:
        raise ForbiddenActor("Only the shipment's supplier can follow up custody notes", wallet=actor_wallet)


@custody.command_handler(part_of=Shipment)
class CustodyNoteHandler:
    @handle(AddCustodyNote)
    def add_note(self, command):
        repo = current_domain.repository_for(Shipment)
        shipment = repo.get(command.shipment_id)

        actor_wallet = normalize_wallet(command.actor_wallet, "actor_wallet")
        if not shipment.involves(actor_wallet) and not (
            parse_role(command.actor_role) == ActorRole.ADMIN and is_admin(actor_wallet)
        ):
            raise ForbiddenActor("Only parties to the shipment can add custody notes", wallet=actor_wallet)

        text = (command.note or "").strip()
        if not text:
            raise ValidationError({"note": ["Note text is required"]})

        if command.container_id:
            try:
                container = current_domain.repository_for(Container).get(command.container_id)
            except ObjectNotFoundError as exc:
                raise ValidationError({"container_id": ["Unknown container"]}) from exc
            if container.shipment_id != shipment.shipment_id:
                raise ValidationError({"container_id": ["Container does not belong to this shipment"]})

        note = shipment.add_note(
            text,
            raised_by=actor_wallet,
            note_type=NoteType(command.note_type or NoteType.OTHER.value),
            severity=NoteSeverity(command.severity or NoteSeverity.LOW.value),
            container_id=command.container_id,
        )
        repo.add(shipment)

        logger.info(
            "Custody note added",
            shipment_id=shipment.shipment_id,
            note_type=command.note_type,
            severity=command.severity,
        )
        return str(note.id)

    def _change_status(self, command, target: NoteStatus, resolution: str | None = None) -> str:
        repo = current_domain.repository_for(Shipment)
        shipment = repo.get(command.shipment_id)
        actor_wallet = normalize_wallet(command.actor_wallet, "actor_wallet")
        _authorize_follow_up(shipment, actor_wallet, command.actor_role)

        note = shipment.change_note_status(command.note_id, target, changed_by=actor_wallet, resolution=resolution)
        repo.add(shipment)

        logger.info(
            "Custody note status changed",
            shipment_id=shipment.shipment_id,
            note_id=str(command.note_id),
            status=note.status,
        )
        return note.status

    @handle(AcknowledgeCustodyNote)
    def acknowledge_note(self, command):
        return self._change_status(command, NoteStatus.ACKNOWLEDGED)

    @handle(InvestigateCustodyNote)
    def investigate_note(self, command):
        return self._change_status(command, NoteStatus.INVESTIGATING)

    @handle(ResolveCustodyNote)
    def resolve_note(self, command):
        target = NoteStatus.DISMISSED if command.dismiss else NoteStatus.RESOLVED
        return self._change_status(command, target, resolution=command.resolution)
