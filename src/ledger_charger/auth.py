"""Bearer-key authentication and rate limiting for the status API."""

import secrets
import logging
from typing import Awaitable, Callable, Optional

from fastapi import HTTPException, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

security = HTTPBearer()

# Shared by every app instance; keyed by client address
limiter = Limiter(key_func=get_remote_address)


def api_key_verifier(expected_key: Optional[str]) -> Callable[..., Awaitable[str]]:
    """Build a FastAPI dependency that checks the bearer token.

    Args:
        expected_key: The key clients must present. When unset, every
            protected request fails with 500 instead of being let through.

    Returns:
        An async dependency returning the verified key.
    """

    async def verify_api_key(credentials: HTTPAuthorizationCredentials = Security(security)) -> str:
        if not expected_key:
            logger.error("Status API key is not configured; refusing protected request")
            raise HTTPException(status_code=500, detail="Server configuration error")
        if not secrets.compare_digest(credentials.credentials.encode(), expected_key.encode()):
            logger.warning("Rejected status API request with an invalid key")
            raise HTTPException(status_code=401, detail="Invalid API key")
        return credentials.credentials

    return verify_api_key
