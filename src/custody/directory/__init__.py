"""Actor directory factory and assignment check.

Uses FakeActorDirectory by default. Set ACTOR_DIRECTORY_ADAPTER=http (with
ACTOR_DIRECTORY_URL) to resolve actors against the identity service.
"""

import os

import structlog

from custody.directory.port import ActorDirectory, ActorRecord
from custody.errors import CustodyError, ForbiddenAssignment
from custody.shared.roles import ActorRole

logger = structlog.get_logger(__name__)

_directory: ActorDirectory | None = None


def get_directory() -> ActorDirectory:
    """Return the configured actor directory (singleton)."""
    global _directory
    if _directory is None:
        adapter = os.environ.get("ACTOR_DIRECTORY_ADAPTER", "fake")
        if adapter == "fake":
            from custody.directory.fake_adapter import FakeActorDirectory

            _directory = FakeActorDirectory()
        elif adapter == "http":
            from custody.directory.http_adapter import HttpActorDirectory

            _directory = HttpActorDirectory(
                base_url=os.environ["ACTOR_DIRECTORY_URL"],
                timeout=float(os.environ.get("ACTOR_DIRECTORY_TIMEOUT", "5")),
            )
        else:
            raise ValueError(f"Unknown actor directory adapter: {adapter}")
    return _directory


def set_directory(directory: ActorDirectory) -> None:
    global _directory
    _directory = directory


def reset_directory() -> None:
    global _directory
    _directory = None


def require_actor(wallet: str, role: ActorRole, slot: str) -> ActorRecord:
    """Confirm that ``wallet`` is an ACTIVE actor holding exactly ``role``.

    Any lookup failure counts as a refusal: an assignment is only accepted on a
    positive answer from the directory.
    """
    try:
        record = get_directory().resolve(wallet)
    except CustodyError as exc:
        logger.warning("Actor lookup failed", wallet=wallet, slot=slot, error=exc.message)
        raise ForbiddenAssignment(f"Could not verify {slot} {wallet}", slot=slot, wallet=wallet) from exc

    if record is None:
        raise ForbiddenAssignment(f"{slot} {wallet} is not a registered actor", slot=slot, wallet=wallet)
    if not record.active:
        raise ForbiddenAssignment(f"{slot} {wallet} is not active", slot=slot, wallet=wallet)
    if record.role != role:
        raise ForbiddenAssignment(
            f"{slot} {wallet} must hold role {role.value}",
            slot=slot,
            wallet=wallet,
            role=record.role.value if record.role else None,
        )
    return record


def is_admin(wallet: str) -> bool:
    """True only when the directory confirms ``wallet`` as an active admin."""
    try:
        require_actor(wallet, ActorRole.ADMIN, "admin")
    except ForbiddenAssignment:
        return False
    return True
