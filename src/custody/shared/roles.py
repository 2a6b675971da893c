"""Actor roles known to the custody chain."""

from enum import Enum


class ActorRole(Enum):
    SUPPLIER = "supplier"
    TRANSPORTER = "transporter"
    WAREHOUSE = "warehouse"
    RETAILER = "retailer"
    ADMIN = "admin"
    SYSTEM = "system"


# Wallet recorded for transitions performed by the platform itself
SYSTEM_ACTOR = "SYSTEM"


def parse_role(value: str | ActorRole | None) -> ActorRole | None:
    """Return the ActorRole for a role string, or None if it is not recognised."""
    if isinstance(value, ActorRole):
        return value
    if not value:
        return None
    try:
        return ActorRole(str(value).strip().lower())
    except ValueError:
        return None
