"""Shipment documents — attach and remove commands and handler.

Content goes to the document store; the shipment keeps only the reference.
Documents can be changed while the shipment is CREATED or READY_FOR_DISPATCH.
"""

import base64
import binascii

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from custody.directory import is_admin
from custody.documents import get_document_store
from custody.domain import custody
from custody.errors import ForbiddenActor
from custody.shared.roles import ActorRole, parse_role
from custody.shared.wallet import normalize_wallet
from custody.shipment.shipment import Shipment

logger = structlog.get_logger(__name__)


@custody.command(part_of="Shipment")
class AttachDocument:
    shipment_id = Identifier(required=True)
    filename = String(required=True, max_length=255)
    content = Text(required=True)  # base64-encoded file content
    content_type = String(max_length=100)
    actor_wallet = String(required=True, max_length=42)
    actor_role = String(required=True, max_length=20)


@custody.command(part_of="Shipment")
class RemoveDocument:
    shipment_id = Identifier(required=True)
    reference = String(required=True, max_length=500)
    actor_wallet = String(required=True, max_length=42)
    actor_role = String(required=True, max_length=20)


def _authorize_supplier(shipment: Shipment, actor_wallet: str, actor_role: str) -> None:
    role = parse_role(actor_role)
    if role == ActorRole.ADMIN and is_admin(actor_wallet):
        return
    if role != ActorRole.SUPPLIER or actor_wallet != shipment.supplier_wallet:
        raise ForbiddenActor("Only the shipment's supplier can manage its documents", wallet=actor_wallet)


@custody.command_handler(part_of=Shipment)
class DocumentHandler:
    @handle(AttachDocument)
    def attach_document(self, command):
        repo = current_domain.repository_for(Shipment)
        shipment = repo.get(command.shipment_id)
        actor_wallet = normalize_wallet(command.actor_wallet, "actor_wallet")
        _authorize_supplier(shipment, actor_wallet, command.actor_role)
        shipment.assert_documents_editable()

        try:
            content = base64.b64decode(command.content, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValidationError({"content": ["Document content must be base64 encoded"]}) from exc

        store = get_document_store()
        reference = store.put(shipment.shipment_id, command.filename, content, command.content_type)
        try:
            shipment.attach_document(reference, uploaded_by=actor_wallet, filename=command.filename)
        except Exception:
            store.remove(shipment.shipment_id, reference)
            raise
        repo.add(shipment)

        logger.info("Document attached", shipment_id=shipment.shipment_id, reference=reference)
        return reference

    @handle(RemoveDocument)
    def remove_document(self, command):
        repo = current_domain.repository_for(Shipment)
        shipment = repo.get(command.shipment_id)
        actor_wallet = normalize_wallet(command.actor_wallet, "actor_wallet")
        _authorize_supplier(shipment, actor_wallet, command.actor_role)

        shipment.remove_document(command.reference, removed_by=actor_wallet)
        get_document_store().remove(shipment.shipment_id, command.reference)
        repo.add(shipment)

        logger.info("Document removed", shipment_id=shipment.shipment_id, reference=command.reference)
