import logging
import secrets

from fastapi import Header, HTTPException

from .config import settings

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"


def require_api_key(x_api_key: str | None = Header(default=None, alias=API_KEY_HEADER)) -> None:
    """Reject requests without the server key. An unset MOBIUS_API_KEY leaves the API open."""
    expected = settings.api_key
    if not expected:
        return
    if not x_api_key or not secrets.compare_digest(x_api_key.encode(), expected.encode()):
        logger.info("Rejected request: %s header missing or wrong", API_KEY_HEADER)
        raise HTTPException(status_code=401, detail="Invalid API key")
