"""ScanLog aggregate — permanent, append-only record of every scan attempt.

Entries are only ever created; nothing in the domain mutates or deletes one.
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from custody.domain import custody


class ScanResult(Enum):
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


@custody.event(part_of="ScanLog")
class ScanRecorded:
    __version__ = 1

    scan_id = Identifier(required=True)
    container_id = String()
    shipment_id = String()
    actor_wallet = String(required=True)
    actor_role = String()
    action = String(required=True)
    result = String(required=True)
    code = String()
    reason = String()
    scanned_at = DateTime(required=True)


@custody.aggregate
class ScanLog:
    scan_id = Identifier(identifier=True)
    container_id = String(max_length=50)
    shipment_id = String(max_length=66)
    ordinal = Integer()
    actor_wallet = String(required=True, max_length=42)
    actor_role = String(max_length=20)
    action = String(required=True, max_length=20)
    result = String(required=True, choices=ScanResult)
    code = String(max_length=50)
    reason = String(max_length=500)
    leg = Integer()
    status_before = String(max_length=30)
    status_after = String(max_length=30)
    raw_token = String(max_length=500)
    location = String(max_length=255)
    idempotency_key = String(max_length=100)
    tx_ref = String(max_length=100)
    scanned_at = DateTime(required=True)

    @classmethod
    def record(cls, actor_wallet: str, action: str, result: ScanResult, **details):
        scan = cls(
            scan_id=str(uuid4()),
            actor_wallet=actor_wallet,
            action=action,
            result=result.value,
            scanned_at=details.pop("scanned_at", None) or datetime.now(UTC),
            **details,
        )
        scan.raise_(
            ScanRecorded(
                scan_id=scan.scan_id,
                container_id=scan.container_id,
                shipment_id=scan.shipment_id,
                actor_wallet=scan.actor_wallet,
                actor_role=scan.actor_role,
                action=scan.action,
                result=scan.result,
                code=scan.code,
                reason=scan.reason,
                scanned_at=scan.scanned_at,
            )
        )
        return scan

    @property
    def accepted(self) -> bool:
        return self.result == ScanResult.ACCEPTED.value

    def to_outcome(self) -> dict:
        """The structured result returned to the scanning client."""
        return {
            "scan_id": str(self.scan_id),
            "result": self.result,
            "code": self.code,
            "reason": self.reason,
            "container_id": self.container_id,
            "shipment_id": self.shipment_id,
            "action": self.action,
            "status_before": self.status_before,
            "status_after": self.status_after,
            "scanned_at": self.scanned_at.isoformat() if self.scanned_at else None,
        }


def find_by_idempotency_key(actor_wallet: str, idempotency_key: str) -> ScanLog | None:
    repo = current_domain.repository_for(ScanLog)
    return repo._dao.query.filter(actor_wallet=actor_wallet, idempotency_key=idempotency_key).all().first
