"""Custody domain API package."""

from custody.api.errors import register_custody_exception_handlers
from custody.api.routes import anchor_router, container_router, note_router, scan_router, shipment_router

__all__ = [
    "shipment_router",
    "container_router",
    "note_router",
    "scan_router",
    "anchor_router",
    "register_custody_exception_handlers",
]
