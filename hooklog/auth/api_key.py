"""API key authentication for the operator endpoints."""
from fastapi import HTTPException, Request, Security
from fastapi.security import APIKeyHeader
from typing import Iterable, Optional
import structlog

log = structlog.get_logger()

API_KEY_HEADER = "X-Hooklog-Key"

api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


class APIKeyRegistry:
    """
    In-memory API key registry.

    Keys come from the comma-separated ``API_KEYS`` setting at startup.
    """

    def __init__(self, keys: Iterable[str] = ()):
        self._keys: set[str] = set()
        for key in keys:
            key = key.strip()
            if key:
                self._keys.add(key)
        log.info("api_keys.loaded", count=len(self._keys))

    @classmethod
    def from_csv(cls, raw: str) -> "APIKeyRegistry":
        return cls(raw.split(",") if raw else ())

    def validate(self, key: str) -> bool:
        return key in self._keys

    def count(self) -> int:
        return len(self._keys)


async def verify_api_key(request: Request, api_key: Optional[str] = Security(api_key_header)) -> str:
    """
    Dependency guarding operator routes.

    Open when REQUIRE_AUTH is off or no keys are configured.

    Raises:
        HTTPException: 401 when the key is missing, 403 when it is unknown
    """
    settings = request.app.state.settings
    registry: APIKeyRegistry = request.app.state.api_keys

    if not settings.REQUIRE_AUTH or registry.count() == 0:
        log.debug("auth.skipped", require_auth=settings.REQUIRE_AUTH, keys=registry.count())
        return "anonymous"

    if not api_key:
        log.warning("auth.failed", reason="missing_key")
        raise HTTPException(
            status_code=401,
            detail=f"Missing API key. Provide {API_KEY_HEADER} header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not registry.validate(api_key):
        log.warning("auth.failed", reason="invalid_key")
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    log.debug("auth.success")
    return api_key
