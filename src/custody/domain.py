"""Custody bounded context — shipment custody across a fixed chain of handlers.

Tracks a shipment and its containers from supplier to retailer. Physical QR
scans drive container sub-states, container quorum drives shipment status, and
an on-chain record anchors each shipment's identity. Uses CQRS: the Shipment,
Container and ScanLog aggregates are the authoritative projection, read-only
consumers query them through the custody ledger.
"""

from protean.domain import Domain

from custody.utils.logging import get_logger

logger = get_logger(__name__)

# Domain Composition Root
custody = Domain(name="custody")
