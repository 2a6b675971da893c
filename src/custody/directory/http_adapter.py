"""HTTP actor directory adapter.

Queries the identity service at ``GET {base_url}/actors/{wallet}``, which
answers ``{"wallet", "role", "active", "name", "organization"}`` or 404.
"""

import requests
import structlog

from custody.directory.port import ActorDirectory, ActorRecord
from custody.errors import StoreUnavailable
from custody.shared.roles import parse_role

logger = structlog.get_logger(__name__)


class HttpActorDirectory(ActorDirectory):
    def __init__(self, base_url: str, timeout: float = 5.0, session: requests.Session | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def resolve(self, wallet: str) -> ActorRecord | None:
        url = f"{self.base_url}/actors/{wallet.lower()}"
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("Actor directory unreachable", url=url, error=str(exc))
            raise StoreUnavailable("Actor directory unreachable", url=url) from exc

        if response.status_code == 404:
            return None
        if not 200 <= response.status_code < 300:
            logger.warning("Actor directory error", url=url, status_code=response.status_code)
            raise StoreUnavailable("Actor directory error", status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            raise StoreUnavailable("Actor directory returned a malformed response", url=url) from exc
        if not isinstance(payload, dict):
            raise StoreUnavailable("Actor directory returned a malformed response", url=url)
        return ActorRecord(
            wallet=str(payload.get("wallet") or wallet).lower(),
            role=parse_role(payload.get("role")),
            active=bool(payload.get("active", False)),
            name=payload.get("name"),
            organization=payload.get("organization"),
        )
