"""Wallet address helpers."""

import re

from protean.exceptions import ValidationError

_WALLET_PATTERN = re.compile(r"^0x[a-f0-9]{40}$")


def normalize_wallet(value: str | None, field: str = "wallet") -> str:
    """Lower-case and validate an Ethereum-style wallet address."""
    normalized = (value or "").strip().lower()
    if not _WALLET_PATTERN.match(normalized):
        raise ValidationError({field: [f"{value!r} is not a valid wallet address"]})
    return normalized


def is_wallet(value: str | None) -> bool:
    return bool(value) and bool(_WALLET_PATTERN.match(value.strip().lower()))
